"""
Modelos de catálogo de vacunas.

Vaccine: vacuna con su número total de dosis del esquema.
VaccineProvider: laboratorio/proveedor asociado a una vacuna.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vaxcert.database import Base


class Vaccine(Base):
    __tablename__ = "vaccines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(
        String(200), nullable=False, unique=True,
        comment="Nombre comercial de la vacuna (ej: Pfizer-BioNTech)"
    )
    total_dose: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1,
        comment="Número total de dosis del esquema; inmutable una vez registradas dosis"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # ── Relaciones ────────────────────────────────────
    providers: Mapped[list["VaccineProvider"]] = relationship(
        "VaccineProvider",
        back_populates="vaccine",
        cascade="all, delete-orphan",
        order_by="VaccineProvider.name",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("total_dose >= 1", name="ck_vaccine_total_dose_positive"),
    )

    def __repr__(self) -> str:
        return f"<Vaccine {self.name} ({self.total_dose} dosis)>"


class VaccineProvider(Base):
    __tablename__ = "vaccine_providers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    vaccine_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vaccines.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    vaccine: Mapped["Vaccine"] = relationship("Vaccine", back_populates="providers")

    __table_args__ = (
        UniqueConstraint("vaccine_id", "name", name="uq_vaccine_provider_name"),
    )

    def __repr__(self) -> str:
        return f"<VaccineProvider {self.name}>"
