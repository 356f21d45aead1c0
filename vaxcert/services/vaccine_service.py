"""
Servicio de catálogo de vacunas: CRUD de vacunas y proveedores.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vaxcert.core.exceptions import (
    ConflictException,
    ProviderNotFound,
    VaccineInUse,
    VaccineNotFound,
)
from vaxcert.models.certificate import BoosterDose, VaccinationRecord
from vaxcert.models.vaccine import Vaccine, VaccineProvider
from vaxcert.schemas.vaccine import ProviderCreate, VaccineCreate, VaccineUpdate

logger = logging.getLogger(__name__)


async def get_vaccine(db: AsyncSession, vaccine_id: UUID) -> Vaccine:
    """Carga una vacuna con sus proveedores o lanza VaccineNotFound."""
    result = await db.execute(
        select(Vaccine)
        .where(Vaccine.id == vaccine_id)
        .options(selectinload(Vaccine.providers))
        .execution_options(populate_existing=True)
    )
    vaccine = result.scalar_one_or_none()
    if not vaccine:
        raise VaccineNotFound()
    return vaccine


def get_provider(vaccine: Vaccine, provider_id: UUID) -> VaccineProvider:
    """Proveedor de la vacuna; un proveedor de otra vacuna cuenta como inexistente."""
    provider = next((p for p in vaccine.providers if p.id == provider_id), None)
    if provider is None:
        raise ProviderNotFound()
    return provider


async def _ensure_unique_name(
    db: AsyncSession, name: str, exclude_id: UUID | None = None
) -> None:
    query = select(Vaccine.id).where(func.lower(Vaccine.name) == name.lower())
    if exclude_id is not None:
        query = query.where(Vaccine.id != exclude_id)
    if await db.scalar(query):
        raise ConflictException(f"Ya existe una vacuna con el nombre '{name}'")


async def _has_doses(db: AsyncSession, vaccine_id: UUID) -> bool:
    records = await db.scalar(
        select(func.count(VaccinationRecord.id)).where(
            VaccinationRecord.vaccine_id == vaccine_id
        )
    )
    boosters = await db.scalar(
        select(func.count(BoosterDose.id)).where(BoosterDose.vaccine_id == vaccine_id)
    )
    return bool(records or boosters)


async def create_vaccine(db: AsyncSession, data: VaccineCreate) -> Vaccine:
    """Crea una vacuna con sus proveedores iniciales."""
    await _ensure_unique_name(db, data.name)
    vaccine = Vaccine(
        name=data.name,
        total_dose=data.total_dose,
        providers=[VaccineProvider(name=p.name) for p in data.providers],
    )
    db.add(vaccine)
    await db.commit()
    logger.info(f"Vacuna creada: {vaccine.name} ({vaccine.total_dose} dosis)")
    return await get_vaccine(db, vaccine.id)


async def list_vaccines(db: AsyncSession) -> list[Vaccine]:
    result = await db.execute(
        select(Vaccine).options(selectinload(Vaccine.providers)).order_by(Vaccine.name)
    )
    return list(result.scalars().all())


async def update_vaccine(
    db: AsyncSession, vaccine_id: UUID, data: VaccineUpdate
) -> Vaccine:
    """
    Actualiza nombre y/o total de dosis.
    El total de dosis no cambia una vez que hay dosis registradas: alteraría
    la completitud de certificados ya emitidos.
    """
    vaccine = await get_vaccine(db, vaccine_id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)

    if "name" in update_data and update_data["name"] != vaccine.name:
        await _ensure_unique_name(db, update_data["name"], exclude_id=vaccine.id)

    if (
        "total_dose" in update_data
        and update_data["total_dose"] != vaccine.total_dose
        and await _has_doses(db, vaccine.id)
    ):
        raise VaccineInUse(
            "No se puede cambiar el total de dosis de una vacuna con dosis registradas"
        )

    for key, value in update_data.items():
        setattr(vaccine, key, value)

    await db.commit()
    return await get_vaccine(db, vaccine.id)


async def add_provider(
    db: AsyncSession, vaccine_id: UUID, data: ProviderCreate
) -> Vaccine:
    vaccine = await get_vaccine(db, vaccine_id)
    if any(p.name.lower() == data.name.lower() for p in vaccine.providers):
        raise ConflictException(f"El proveedor '{data.name}' ya existe para {vaccine.name}")

    db.add(VaccineProvider(vaccine_id=vaccine.id, name=data.name))
    await db.commit()
    return await get_vaccine(db, vaccine.id)


async def delete_vaccine(db: AsyncSession, vaccine_id: UUID) -> None:
    """Elimina una vacuna sin certificados asociados."""
    vaccine = await get_vaccine(db, vaccine_id)
    if await _has_doses(db, vaccine.id):
        raise VaccineInUse("No se puede eliminar una vacuna con dosis registradas")

    await db.delete(vaccine)
    await db.commit()
    logger.info(f"Vacuna eliminada: {vaccine.name}")
