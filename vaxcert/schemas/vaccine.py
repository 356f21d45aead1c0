"""
Schemas para el catálogo de vacunas y proveedores.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ── Provider ───────────────────────────────────────────

class ProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El nombre del proveedor es obligatorio")
        return cleaned


class ProviderResponse(BaseModel):
    id: UUID
    name: str

    model_config = {"from_attributes": True}


# ── Vaccine ────────────────────────────────────────────

class VaccineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    total_dose: int = Field(..., ge=1, le=10)
    providers: list[ProviderCreate] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("El nombre de la vacuna es obligatorio")
        return cleaned

    @field_validator("providers")
    @classmethod
    def unique_providers(cls, v: list[ProviderCreate]) -> list[ProviderCreate]:
        names = [p.name.lower() for p in v]
        if len(names) != len(set(names)):
            raise ValueError("Los proveedores de una vacuna no pueden repetirse")
        return v


class VaccineUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    total_dose: int | None = Field(None, ge=1, le=10)


class VaccineResponse(BaseModel):
    id: UUID
    name: str
    total_dose: int
    providers: list[ProviderResponse] = []
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
