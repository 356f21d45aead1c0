"""
Endpoint público de verificación de certificados (sin autenticación).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.database import get_db
from vaxcert.schemas.verification import CertificateVerification
from vaxcert.services import verification_service

router = APIRouter()


@router.get("/{token}", response_model=CertificateVerification)
async def verify_certificate(
    token: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Verifica un certificado desde el enlace público.
    Acepta el token cifrado y, por compatibilidad, el número plano.
    """
    return await verification_service.resolve(db, token)
