"""
Schemas para Certificados: primera dosis, dosis siguientes, refuerzos
y proyección para el personal.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def _not_in_future(v: date | None, label: str) -> date | None:
    if v is not None and v > date.today():
        raise ValueError(f"{label} no puede ser una fecha futura")
    return v


# ── Identidad del paciente ─────────────────────────────

class PatientIdentity(BaseModel):
    patient_name: str = Field(..., min_length=1, max_length=200)
    father_name: str = Field(..., min_length=1, max_length=200)
    mother_name: str = Field(..., min_length=1, max_length=200)
    date_of_birth: date
    gender: str = Field(..., pattern=r"^(male|female|other)$")
    nationality: str = Field(..., min_length=1, max_length=100)
    nid_number: str | None = Field(None, max_length=50)
    passport_number: str | None = Field(None, max_length=50)
    permanent_address: str = Field(..., min_length=1, max_length=500)
    phone_number: str = Field(..., min_length=3, max_length=30)

    @field_validator("date_of_birth")
    @classmethod
    def validate_birth_date(cls, v: date) -> date:
        return _not_in_future(v, "La fecha de nacimiento")

    @field_validator("nid_number", "passport_number")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        cleaned = v.strip()
        return cleaned or None


class IdentityUpdate(BaseModel):
    """Corrección de datos del paciente; no toca la serie de dosis."""
    patient_name: str | None = Field(None, min_length=1, max_length=200)
    father_name: str | None = Field(None, min_length=1, max_length=200)
    mother_name: str | None = Field(None, min_length=1, max_length=200)
    date_of_birth: date | None = None
    gender: str | None = Field(None, pattern=r"^(male|female|other)$")
    nationality: str | None = Field(None, min_length=1, max_length=100)
    nid_number: str | None = Field(None, max_length=50)
    passport_number: str | None = Field(None, max_length=50)
    permanent_address: str | None = Field(None, min_length=1, max_length=500)
    phone_number: str | None = Field(None, min_length=3, max_length=30)

    model_config = {"extra": "forbid"}

    @field_validator("date_of_birth")
    @classmethod
    def validate_birth_date(cls, v: date | None) -> date | None:
        return _not_in_future(v, "La fecha de nacimiento")

    @field_validator("nid_number", "passport_number")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        cleaned = v.strip()
        return cleaned or None


# ── Requests ───────────────────────────────────────────

class DoseBase(BaseModel):
    vaccine_id: UUID
    provider_id: UUID
    date_administered: date

    @field_validator("date_administered")
    @classmethod
    def validate_date(cls, v: date) -> date:
        return _not_in_future(v, "La fecha de aplicación")


class FirstDoseCreate(PatientIdentity, DoseBase):
    pass


class SubsequentDoseCreate(DoseBase):
    previous_certificate_no: str = Field(
        ..., description="Número del certificado anterior (123 o P-000123)"
    )
    dose_number: int | None = Field(
        None, ge=1, description="Si se omite se usa la siguiente dosis de la serie"
    )


class BoosterDoseCreate(DoseBase):
    pass


# ── Responses ──────────────────────────────────────────

class VaccinationRecordResponse(BaseModel):
    id: UUID
    vaccine_id: UUID
    vaccine_name: str
    dose_number: int
    date_administered: date
    vaccination_center: str
    vaccinated_by_id: UUID
    vaccinated_by_name: str
    provider_id: UUID

    model_config = {"from_attributes": True}


class BoosterDoseResponse(BaseModel):
    id: UUID
    vaccine_id: UUID
    vaccine_name: str
    date_administered: date
    vaccination_center: str
    vaccinated_by_id: UUID
    vaccinated_by_name: str
    provider_id: UUID
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class CertificateResponse(PatientIdentity):
    id: UUID
    certificate_no: int
    previous_certificate_id: UUID | None = None
    vaccine_id: UUID
    dose_number: int
    date_administered: date
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Enriquecidos
    display_no: str
    verification_token: str
    vaccine_name: str
    total_dose: int
    series_complete: bool
    state: str
    next_dose_number: int | None = None
    vaccinations: list[VaccinationRecordResponse] = []
    booster_doses: list[BoosterDoseResponse] = []

    model_config = {"from_attributes": True}

    # Los datos ya almacenados no se revalidan contra la fecha de hoy
    @field_validator("date_of_birth")
    @classmethod
    def validate_birth_date(cls, v: date) -> date:
        return v


class LineageEntry(BaseModel):
    id: UUID
    certificate_no: int
    display_no: str
    dose_number: int
    date_administered: date
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
