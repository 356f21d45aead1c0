"""
Servicio de verificación pública: resuelve el token de un enlace de
verificación y arma una proyección de solo lectura del certificado.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.core.exceptions import InvalidToken
from vaxcert.core.identifiers import decode_token, format_display, parse_display
from vaxcert.models.certificate import Certificate
from vaxcert.schemas.verification import (
    CertificateVerification,
    PublicBooster,
    PublicDose,
)
from vaxcert.services.certificate_service import get_certificate_by_no, ledger_snapshot

logger = logging.getLogger(__name__)


def resolve_certificate_no(token: str) -> int:
    """
    Token → número de certificado. Si el token no descifra se intenta leerlo
    como número plano (`123` o `P-000123`), que es lo que traían los enlaces
    emitidos antes de cifrar el número.
    """
    certificate_no = decode_token(token)
    if certificate_no is not None:
        return certificate_no

    try:
        certificate_no = parse_display(token)
    except ValueError:
        logger.warning("Token de verificación inválido (len=%s)", len(token or ""))
        raise InvalidToken()

    logger.warning("Verificación con enlace legado para %s", format_display(certificate_no))
    return certificate_no


def build_public_projection(certificate: Certificate) -> CertificateVerification:
    snapshot = ledger_snapshot(certificate)
    return CertificateVerification(
        display_no=format_display(certificate.certificate_no),
        is_active=certificate.is_active,
        patient_name=certificate.patient_name,
        father_name=certificate.father_name,
        mother_name=certificate.mother_name,
        date_of_birth=certificate.date_of_birth,
        gender=certificate.gender,
        nationality=certificate.nationality,
        nid_number=certificate.nid_number,
        passport_number=certificate.passport_number,
        vaccine_name=certificate.vaccine.name,
        total_dose=certificate.vaccine.total_dose,
        dose_number=certificate.dose_number,
        date_administered=certificate.date_administered,
        series_complete=snapshot.series_complete,
        vaccinations=[
            PublicDose(
                dose_number=v.dose_number,
                vaccine_name=v.vaccine_name,
                date_administered=v.date_administered,
                vaccination_center=v.vaccination_center,
                vaccinated_by_name=v.vaccinated_by_name,
                provider_name=v.provider.name if v.provider else None,
            )
            for v in sorted(certificate.vaccinations, key=lambda r: r.dose_number)
        ],
        booster_doses=[
            PublicBooster(
                vaccine_name=b.vaccine_name,
                date_administered=b.date_administered,
                vaccination_center=b.vaccination_center,
                vaccinated_by_name=b.vaccinated_by_name,
                provider_name=b.provider.name if b.provider else None,
            )
            for b in certificate.booster_doses
        ],
    )


async def resolve(db: AsyncSession, token: str) -> CertificateVerification:
    """
    Verifica un certificado a partir del token público.
    Los certificados inactivos se devuelven igual, con `is_active=false`.
    """
    certificate_no = resolve_certificate_no(token)
    certificate = await get_certificate_by_no(db, certificate_no)
    return build_public_projection(certificate)
