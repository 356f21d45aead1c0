"""
Endpoints del catálogo de vacunas y proveedores.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.auth.dependencies import get_current_user, require_role
from vaxcert.database import get_db
from vaxcert.models.user import User, UserRole
from vaxcert.schemas.vaccine import (
    ProviderCreate,
    VaccineCreate,
    VaccineResponse,
    VaccineUpdate,
)
from vaxcert.services import vaccine_service

router = APIRouter()


@router.get("", response_model=list[VaccineResponse])
async def list_vaccines(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Lista vacunas con sus proveedores."""
    return await vaccine_service.list_vaccines(db)


@router.get("/{vaccine_id}", response_model=VaccineResponse)
async def get_vaccine(
    vaccine_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await vaccine_service.get_vaccine(db, vaccine_id)


@router.post("", response_model=VaccineResponse, status_code=201)
async def create_vaccine(
    data: VaccineCreate,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Crea una vacuna con sus proveedores. Solo admin."""
    return await vaccine_service.create_vaccine(db, data)


@router.put("/{vaccine_id}", response_model=VaccineResponse)
async def update_vaccine(
    vaccine_id: UUID,
    data: VaccineUpdate,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Actualiza nombre o total de dosis. Solo admin."""
    return await vaccine_service.update_vaccine(db, vaccine_id, data)


@router.post("/{vaccine_id}/providers", response_model=VaccineResponse, status_code=201)
async def add_provider(
    vaccine_id: UUID,
    data: ProviderCreate,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await vaccine_service.add_provider(db, vaccine_id, data)


@router.delete("/{vaccine_id}", status_code=204)
async def delete_vaccine(
    vaccine_id: UUID,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Elimina una vacuna sin dosis registradas. Solo admin."""
    await vaccine_service.delete_vaccine(db, vaccine_id)
    return Response(status_code=204)
