"""
Schemas de la verificación pública de certificados.
Solo datos que ya figuran impresos en el certificado: sin ids internos,
sin ids de operador, sin teléfono ni dirección.
"""

from datetime import date

from pydantic import BaseModel


class PublicDose(BaseModel):
    dose_number: int
    vaccine_name: str
    date_administered: date
    vaccination_center: str
    vaccinated_by_name: str
    provider_name: str | None = None


class PublicBooster(BaseModel):
    vaccine_name: str
    date_administered: date
    vaccination_center: str
    vaccinated_by_name: str
    provider_name: str | None = None


class CertificateVerification(BaseModel):
    display_no: str
    is_active: bool
    patient_name: str
    father_name: str
    mother_name: str
    date_of_birth: date
    gender: str
    nationality: str
    nid_number: str | None = None
    passport_number: str | None = None
    vaccine_name: str
    total_dose: int
    dose_number: int
    date_administered: date
    series_complete: bool
    vaccinations: list[PublicDose]
    booster_doses: list[PublicBooster] = []
