"""
Modelos de Certificado: snapshot de vacunación de un paciente.

Certificate: un registro por evento de dosis regular. Al aplicar la dosis N>1
se crea un certificado nuevo (fork) que copia el historial y el anterior queda
inactivo. Nunca se borra físicamente.
VaccinationRecord: dosis regular; se copia en cada certificado sucesor.
BoosterDose: refuerzo; se agrega al certificado existente sin fork.
CertificateSequence: contador de números de certificado (SELECT FOR UPDATE).
"""

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vaxcert.database import Base

# Campos de identidad del paciente; se copian tal cual en cada fork
IDENTITY_FIELDS = (
    "patient_name",
    "father_name",
    "mother_name",
    "date_of_birth",
    "gender",
    "nationality",
    "nid_number",
    "passport_number",
    "permanent_address",
    "phone_number",
)


class CertificateSequence(Base):
    __tablename__ = "certificate_sequences"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<CertificateSequence {self.name} #{self.last_number}>"


class Certificate(Base):
    __tablename__ = "certificates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    certificate_no: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True,
        comment="Número correlativo asignado al crear; nunca se reutiliza"
    )
    previous_certificate_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("certificates.id"),
        comment="Certificado reemplazado por este (null = primera dosis)"
    )

    # ── Identidad del paciente ───────────────────────
    patient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    father_name: Mapped[str] = mapped_column(String(200), nullable=False)
    mother_name: Mapped[str] = mapped_column(String(200), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    nationality: Mapped[str] = mapped_column(String(100), nullable=False)
    nid_number: Mapped[str | None] = mapped_column(
        String(50), comment="Documento nacional de identidad"
    )
    passport_number: Mapped[str | None] = mapped_column(String(50))
    permanent_address: Mapped[str] = mapped_column(String(500), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(30), nullable=False)

    # ── Estado de la serie ───────────────────────────
    vaccine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccines.id"), nullable=False
    )
    dose_number: Mapped[int] = mapped_column(
        Integer, nullable=False,
        comment="Dosis que representa este snapshot"
    )
    date_administered: Mapped[date] = mapped_column(
        Date, nullable=False, comment="Fecha de la última dosis regular"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ────────────────────────────────────
    vaccine: Mapped["Vaccine"] = relationship("Vaccine")  # noqa: F821
    vaccinations: Mapped[list["VaccinationRecord"]] = relationship(
        "VaccinationRecord",
        back_populates="certificate",
        cascade="all, delete-orphan",
        order_by="VaccinationRecord.dose_number",
    )
    booster_doses: Mapped[list["BoosterDose"]] = relationship(
        "BoosterDose",
        back_populates="certificate",
        cascade="all, delete-orphan",
        order_by="BoosterDose.date_administered",
    )

    __table_args__ = (
        Index("idx_certificate_nid_vaccine", "nid_number", "vaccine_id"),
        Index("idx_certificate_passport_vaccine", "passport_number", "vaccine_id"),
        # Un solo sucesor por certificado
        Index(
            "uq_certificate_single_successor",
            "previous_certificate_id",
            unique=True,
            postgresql_where=text("previous_certificate_id IS NOT NULL"),
        ),
    )

    def identity(self) -> dict:
        return {field: getattr(self, field) for field in IDENTITY_FIELDS}

    def __repr__(self) -> str:
        return f"<Certificate #{self.certificate_no} dose={self.dose_number} active={self.is_active}>"


class VaccinationRecord(Base):
    __tablename__ = "vaccination_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    certificate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("certificates.id"), nullable=False
    )
    vaccine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccines.id"), nullable=False
    )
    vaccine_name: Mapped[str] = mapped_column(
        String(200), nullable=False,
        comment="Nombre de la vacuna al momento de la dosis (no se actualiza)"
    )
    dose_number: Mapped[int] = mapped_column(Integer, nullable=False)
    date_administered: Mapped[date] = mapped_column(Date, nullable=False)
    vaccination_center: Mapped[str] = mapped_column(String(200), nullable=False)
    vaccinated_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    vaccinated_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccine_providers.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    certificate: Mapped["Certificate"] = relationship(
        "Certificate", back_populates="vaccinations"
    )
    provider: Mapped["VaccineProvider"] = relationship("VaccineProvider")  # noqa: F821

    __table_args__ = (
        UniqueConstraint(
            "certificate_id", "dose_number", name="uq_vaccination_certificate_dose"
        ),
        Index("idx_vaccination_vaccine", "vaccine_id"),
    )

    def __repr__(self) -> str:
        return f"<VaccinationRecord cert={self.certificate_id} dose={self.dose_number}>"


class BoosterDose(Base):
    __tablename__ = "booster_doses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    certificate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("certificates.id"), nullable=False, index=True
    )
    vaccine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccines.id"), nullable=False
    )
    vaccine_name: Mapped[str] = mapped_column(String(200), nullable=False)
    date_administered: Mapped[date] = mapped_column(Date, nullable=False)
    vaccination_center: Mapped[str] = mapped_column(String(200), nullable=False)
    vaccinated_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    vaccinated_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccine_providers.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    certificate: Mapped["Certificate"] = relationship(
        "Certificate", back_populates="booster_doses"
    )
    provider: Mapped["VaccineProvider"] = relationship("VaccineProvider")  # noqa: F821

    def __repr__(self) -> str:
        return f"<BoosterDose cert={self.certificate_id} date={self.date_administered}>"
