"""
Endpoints de certificados: primera dosis, dosis siguientes (fork),
refuerzos, consulta, linaje y administración.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.api.v1.auth import get_client_ip
from vaxcert.auth.dependencies import get_current_user
from vaxcert.core.identifiers import format_display
from vaxcert.database import get_db
from vaxcert.models.user import User
from vaxcert.schemas.certificate import (
    BoosterDoseCreate,
    CertificateResponse,
    FirstDoseCreate,
    IdentityUpdate,
    LineageEntry,
    SubsequentDoseCreate,
)
from vaxcert.services import certificate_service
from vaxcert.services.certificate_service import Operator, build_certificate_response

router = APIRouter()


# ── Registro de dosis ──────────────────────────────────

@router.post("", response_model=CertificateResponse, status_code=201)
async def create_first_dose(
    data: FirstDoseCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Registra la primera dosis de un paciente y emite su certificado."""
    certificate = await certificate_service.create_first_dose(
        db, data, Operator.from_user(user), ip_address=get_client_ip(request)
    )
    return build_certificate_response(certificate)


@router.post("/append-dose", response_model=CertificateResponse, status_code=201)
async def append_dose(
    data: SubsequentDoseCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Registra la dosis siguiente sobre un certificado existente.
    Devuelve el certificado nuevo; el anterior queda inactivo.
    """
    certificate = await certificate_service.append_subsequent_dose(
        db, data, Operator.from_user(user), ip_address=get_client_ip(request)
    )
    return build_certificate_response(certificate)


@router.post("/{certificate_id}/boosters", response_model=CertificateResponse, status_code=201)
async def append_booster(
    certificate_id: UUID,
    data: BoosterDoseCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Agrega un refuerzo a un certificado con el esquema completo."""
    certificate = await certificate_service.append_booster(
        db, certificate_id, data, Operator.from_user(user),
        ip_address=get_client_ip(request),
    )
    return build_certificate_response(certificate)


# ── Consulta ───────────────────────────────────────────

@router.get("/by-number/{certificate_no}", response_model=CertificateResponse)
async def get_certificate_by_number(
    certificate_no: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Busca por número visible (`P-000123`) o número plano (`123`)."""
    number = certificate_service.parse_certificate_no(certificate_no)
    certificate = await certificate_service.get_certificate_by_no(db, number)
    return build_certificate_response(certificate)


@router.get("/{certificate_id}", response_model=CertificateResponse)
async def get_certificate(
    certificate_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    certificate = await certificate_service.get_certificate(db, certificate_id)
    return build_certificate_response(certificate)


@router.get("/{certificate_id}/lineage", response_model=list[LineageEntry])
async def get_lineage(
    certificate_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cadena de certificados del paciente para la vacuna, del más antiguo al vigente."""
    chain = await certificate_service.get_lineage(db, certificate_id)
    return [
        LineageEntry(
            id=c.id,
            certificate_no=c.certificate_no,
            display_no=format_display(c.certificate_no),
            dose_number=c.dose_number,
            date_administered=c.date_administered,
            is_active=c.is_active,
            created_at=c.created_at,
        )
        for c in chain
    ]


# ── Administración ─────────────────────────────────────

@router.patch("/{certificate_id}", response_model=CertificateResponse)
async def edit_identity(
    certificate_id: UUID,
    data: IdentityUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Corrige datos de identidad del paciente sin alterar la serie de dosis."""
    certificate = await certificate_service.edit_identity_fields(
        db, certificate_id, data, user_id=user.id, ip_address=get_client_ip(request)
    )
    return build_certificate_response(certificate)


@router.delete("/{certificate_id}", status_code=204)
async def deactivate_certificate(
    certificate_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Baja lógica del certificado (no se borra)."""
    await certificate_service.deactivate(
        db, certificate_id, user_id=user.id, ip_address=get_client_ip(request)
    )
    return Response(status_code=204)
