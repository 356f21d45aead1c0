"""
Servicio de Certificados: linaje de certificados y registro de dosis.

Cada dosis regular N>1 hace un "fork": el certificado vigente se desactiva y
se crea uno nuevo con un número correlativo nuevo, la identidad del paciente
copiada y todo el historial de dosis copiado más la dosis nueva. Ambos cambios
van en una sola transacción. Los refuerzos se agregan al certificado vigente
sin fork.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vaxcert.config import get_settings
from vaxcert.core.exceptions import (
    ActiveLineageExists,
    CertificateNotFound,
    ConcurrentModification,
    TransactionFailed,
    ValidationException,
    VaccineMismatch,
)
from vaxcert.core.identifiers import (
    MAX_CERTIFICATE_NO,
    encode_token,
    format_display,
    parse_display,
)
from vaxcert.models.certificate import (
    IDENTITY_FIELDS,
    BoosterDose,
    Certificate,
    CertificateSequence,
    VaccinationRecord,
)
from vaxcert.models.user import User
from vaxcert.models.vaccine import Vaccine, VaccineProvider
from vaxcert.schemas.certificate import (
    BoosterDoseCreate,
    BoosterDoseResponse,
    CertificateResponse,
    FirstDoseCreate,
    IdentityUpdate,
    SubsequentDoseCreate,
    VaccinationRecordResponse,
)
from vaxcert.services import dose_ledger
from vaxcert.services.audit_service import log_action
from vaxcert.services.vaccine_service import get_provider, get_vaccine

logger = logging.getLogger(__name__)

settings = get_settings()

T = TypeVar("T")

_SEQUENCE_NAME = "certificate"
_OPTIONAL_IDENTITY_FIELDS = {"nid_number", "passport_number"}


class Operator:
    """Operador autenticado que aplica la dosis (se copia en cada registro)."""

    def __init__(self, id: UUID, display_name: str, center: str):
        self.id = id
        self.display_name = display_name
        self.center = center

    @classmethod
    def from_user(cls, user: User) -> "Operator":
        return cls(id=user.id, display_name=user.full_name, center=user.center)


# ── Lectura ───────────────────────────────────────────

def _certificate_query():
    return (
        select(Certificate)
        .options(
            selectinload(Certificate.vaccine),
            selectinload(Certificate.vaccinations).selectinload(VaccinationRecord.provider),
            selectinload(Certificate.booster_doses).selectinload(BoosterDose.provider),
        )
        .execution_options(populate_existing=True)
    )


async def get_certificate(db: AsyncSession, certificate_id: UUID) -> Certificate:
    result = await db.execute(
        _certificate_query().where(Certificate.id == certificate_id)
    )
    certificate = result.scalar_one_or_none()
    if not certificate:
        raise CertificateNotFound()
    return certificate


async def get_certificate_by_no(db: AsyncSession, certificate_no: int) -> Certificate:
    if not 0 <= certificate_no <= MAX_CERTIFICATE_NO:
        raise CertificateNotFound(
            f"Certificado {format_display(certificate_no)} no encontrado"
        )
    result = await db.execute(
        _certificate_query().where(Certificate.certificate_no == certificate_no)
    )
    certificate = result.scalar_one_or_none()
    if not certificate:
        raise CertificateNotFound(
            f"Certificado {format_display(certificate_no)} no encontrado"
        )
    return certificate


def parse_certificate_no(value: str) -> int:
    """`123` o `P-000123` → 123; ValidationException si no es un número."""
    try:
        return parse_display(value)
    except ValueError:
        raise ValidationException(f"Número de certificado inválido: {value}")


def ledger_snapshot(certificate: Certificate) -> dose_ledger.LedgerSnapshot:
    return dose_ledger.LedgerSnapshot(
        total_dose=certificate.vaccine.total_dose,
        doses=[v.dose_number for v in certificate.vaccinations],
        booster_count=len(certificate.booster_doses),
        is_active=certificate.is_active,
    )


def build_certificate_response(certificate: Certificate) -> CertificateResponse:
    """Proyección para el personal: incluye número visible y token público."""
    snapshot = ledger_snapshot(certificate)
    return CertificateResponse(
        id=certificate.id,
        certificate_no=certificate.certificate_no,
        previous_certificate_id=certificate.previous_certificate_id,
        **certificate.identity(),
        vaccine_id=certificate.vaccine_id,
        dose_number=certificate.dose_number,
        date_administered=certificate.date_administered,
        is_active=certificate.is_active,
        created_at=certificate.created_at,
        updated_at=certificate.updated_at,
        display_no=format_display(certificate.certificate_no),
        verification_token=encode_token(certificate.certificate_no),
        vaccine_name=certificate.vaccine.name,
        total_dose=certificate.vaccine.total_dose,
        series_complete=snapshot.series_complete,
        state=snapshot.state.value,
        next_dose_number=snapshot.next_dose_number,
        vaccinations=[
            VaccinationRecordResponse.model_validate(v) for v in certificate.vaccinations
        ],
        booster_doses=[
            BoosterDoseResponse.model_validate(b) for b in certificate.booster_doses
        ],
    )


# ── Helpers de escritura ──────────────────────────────

async def _lock_sequence(db: AsyncSession) -> CertificateSequence:
    """
    Bloquea la fila del contador (SELECT FOR UPDATE) hasta el commit.
    Serializa la emisión de números y las verificaciones de linaje activo.
    """
    result = await db.execute(
        select(CertificateSequence)
        .where(CertificateSequence.name == _SEQUENCE_NAME)
        .with_for_update()
    )
    seq = result.scalar_one_or_none()

    if not seq:
        seq = CertificateSequence(name=_SEQUENCE_NAME, last_number=0)
        db.add(seq)
        await db.flush()
    return seq


async def _next_certificate_no(db: AsyncSession) -> int:
    """Siguiente número de certificado; dos instancias no asignan el mismo."""
    seq = await _lock_sequence(db)
    seq.last_number += 1
    await db.flush()
    return seq.last_number


def _new_record(
    vaccine: Vaccine,
    provider: VaccineProvider,
    dose_number: int,
    data: FirstDoseCreate | SubsequentDoseCreate,
    operator: Operator,
) -> VaccinationRecord:
    return VaccinationRecord(
        vaccine_id=vaccine.id,
        vaccine_name=vaccine.name,
        dose_number=dose_number,
        date_administered=data.date_administered,
        vaccination_center=operator.center,
        vaccinated_by_id=operator.id,
        vaccinated_by_name=operator.display_name,
        provider_id=provider.id,
    )


def _copy_record(record: VaccinationRecord) -> VaccinationRecord:
    # Copia, no referencia: el historial sobrevive aunque se purgue el predecesor
    return VaccinationRecord(
        vaccine_id=record.vaccine_id,
        vaccine_name=record.vaccine_name,
        dose_number=record.dose_number,
        date_administered=record.date_administered,
        vaccination_center=record.vaccination_center,
        vaccinated_by_id=record.vaccinated_by_id,
        vaccinated_by_name=record.vaccinated_by_name,
        provider_id=record.provider_id,
    )


async def _commit_transition(
    db: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    description: str,
) -> T:
    """
    Ejecuta `work` y hace commit como una sola transacción, con timeout.
    Ante cualquier fallo se hace rollback; los errores de base de datos y el
    timeout se reportan como TransactionFailed y no se reintentan.
    """

    async def _apply() -> T:
        outcome = await work()
        await db.commit()
        return outcome

    try:
        return await asyncio.wait_for(
            _apply(), timeout=settings.DB_OPERATION_TIMEOUT_SECONDS
        )
    except (ConcurrentModification, ActiveLineageExists):
        await db.rollback()
        raise
    except asyncio.TimeoutError:
        await db.rollback()
        logger.error("Timeout en %s; transacción revertida", description)
        raise TransactionFailed()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Error de base de datos en %s: %s", description, e)
        raise TransactionFailed()


# ── Primera dosis ─────────────────────────────────────

async def _find_active_lineage(
    db: AsyncSession,
    vaccine_id: UUID,
    nid_number: str | None,
    passport_number: str | None,
    exclude_id: UUID | None = None,
) -> Certificate | None:
    documents = []
    if nid_number:
        documents.append(Certificate.nid_number == nid_number)
    if passport_number:
        documents.append(Certificate.passport_number == passport_number)
    if not documents:
        return None

    query = select(Certificate).where(
        Certificate.vaccine_id == vaccine_id,
        Certificate.is_active.is_(True),
        or_(*documents),
    )
    if exclude_id is not None:
        query = query.where(Certificate.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def _ensure_no_active_lineage(
    db: AsyncSession,
    vaccine_id: UUID,
    nid_number: str | None,
    passport_number: str | None,
    exclude_id: UUID | None = None,
) -> None:
    """
    Lanza ActiveLineageExists si el documento ya tiene un certificado activo
    para la vacuna. Debe llamarse con la fila del contador bloqueada.
    """
    existing = await _find_active_lineage(
        db, vaccine_id, nid_number, passport_number, exclude_id=exclude_id
    )
    if existing:
        logger.warning(
            "Linaje activo %s ya existe para vacuna %s",
            existing.certificate_no, vaccine_id,
        )
        raise ActiveLineageExists(format_display(existing.certificate_no))


async def create_first_dose(
    db: AsyncSession,
    data: FirstDoseCreate,
    operator: Operator,
    ip_address: str | None = None,
) -> Certificate:
    """Abre un linaje nuevo: certificado con la dosis 1, activo."""
    vaccine = await get_vaccine(db, data.vaccine_id)
    provider = get_provider(vaccine, data.provider_id)
    dose_number = dose_ledger.plan_regular_dose([], vaccine.total_dose, 1)

    identity = data.model_dump(include=set(IDENTITY_FIELDS))

    async def _work() -> Certificate:
        certificate_no = await _next_certificate_no(db)
        await _ensure_no_active_lineage(
            db, vaccine.id, data.nid_number, data.passport_number
        )
        certificate = Certificate(
            certificate_no=certificate_no,
            **identity,
            vaccine_id=vaccine.id,
            dose_number=dose_number,
            date_administered=data.date_administered,
            is_active=True,
            vaccinations=[_new_record(vaccine, provider, dose_number, data, operator)],
        )
        db.add(certificate)
        await db.flush()
        await log_action(
            db,
            user_id=operator.id,
            entity="certificate",
            entity_id=str(certificate.id),
            action="create",
            new_data={
                "certificate_no": certificate.certificate_no,
                "vaccine_id": vaccine.id,
                "dose_number": dose_number,
            },
            ip_address=ip_address,
        )
        return certificate

    certificate = await _commit_transition(db, _work, description="create_first_dose")
    logger.info(
        "Certificado %s creado (dosis 1/%s)",
        certificate.certificate_no, vaccine.total_dose,
    )
    return await get_certificate(db, certificate.id)


# ── Dosis siguientes (fork) ───────────────────────────

async def append_subsequent_dose(
    db: AsyncSession,
    data: SubsequentDoseCreate,
    operator: Operator,
    ip_address: str | None = None,
) -> Certificate:
    """
    Registra la dosis N>1 sobre el certificado `previous_certificate_no`:
    desactiva el anterior y crea el sucesor con el historial copiado.
    Todas las validaciones corren antes de tocar la base.
    """
    previous_no = parse_certificate_no(data.previous_certificate_no)
    previous = await get_certificate_by_no(db, previous_no)
    vaccine = await get_vaccine(db, data.vaccine_id)

    if previous.vaccine_id != vaccine.id:
        logger.warning(
            "Dosis rechazada: vacuna %s no coincide con certificado %s",
            vaccine.id, previous_no,
        )
        raise VaccineMismatch(
            certificate_vaccine=previous.vaccine.name, requested_vaccine=vaccine.name
        )

    provider = get_provider(vaccine, data.provider_id)

    if not previous.is_active:
        logger.warning("Dosis rechazada: certificado %s ya no está activo", previous_no)
        raise ConcurrentModification(
            f"El certificado {format_display(previous_no)} ya fue reemplazado o desactivado",
            certificate_no=format_display(previous_no),
        )

    existing_doses = [v.dose_number for v in previous.vaccinations]
    try:
        dose_number = dose_ledger.plan_regular_dose(
            existing_doses, vaccine.total_dose, data.dose_number
        )
    except ValidationException as e:
        logger.warning("Dosis rechazada para certificado %s: %s", previous_no, e.detail)
        raise

    history = [_copy_record(v) for v in previous.vaccinations]
    identity = previous.identity()

    async def _work() -> Certificate:
        # Compare-and-set: solo un fork puede desactivar al predecesor
        result = await db.execute(
            update(Certificate)
            .where(
                Certificate.id == previous.id,
                Certificate.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Fork concurrente detectado sobre certificado %s", previous_no
            )
            raise ConcurrentModification(
                f"El certificado {format_display(previous_no)} fue reemplazado por otra operación",
                certificate_no=format_display(previous_no),
            )

        successor = Certificate(
            certificate_no=await _next_certificate_no(db),
            previous_certificate_id=previous.id,
            **identity,
            vaccine_id=vaccine.id,
            dose_number=dose_number,
            date_administered=data.date_administered,
            is_active=True,
            vaccinations=history
            + [_new_record(vaccine, provider, dose_number, data, operator)],
        )
        db.add(successor)
        await db.flush()

        await log_action(
            db,
            user_id=operator.id,
            entity="certificate",
            entity_id=str(previous.id),
            action="deactivate",
            old_data={"is_active": True},
            new_data={"is_active": False, "superseded_by": successor.certificate_no},
            ip_address=ip_address,
        )
        await log_action(
            db,
            user_id=operator.id,
            entity="certificate",
            entity_id=str(successor.id),
            action="fork",
            new_data={
                "certificate_no": successor.certificate_no,
                "previous_certificate_no": previous_no,
                "dose_number": dose_number,
            },
            ip_address=ip_address,
        )
        return successor

    successor = await _commit_transition(db, _work, description="append_subsequent_dose")
    logger.info(
        "Certificado %s reemplaza a %s (dosis %s/%s)",
        successor.certificate_no, previous_no, dose_number, vaccine.total_dose,
    )
    return await get_certificate(db, successor.id)


# ── Refuerzos ─────────────────────────────────────────

async def append_booster(
    db: AsyncSession,
    certificate_id: UUID,
    data: BoosterDoseCreate,
    operator: Operator,
    ip_address: str | None = None,
) -> Certificate:
    """
    Agrega un refuerzo al certificado (sin fork: no cambia dose_number ni
    is_active). Requiere el esquema completo de la vacuna del certificado.
    El refuerzo puede ser de otra vacuna del catálogo.
    """
    certificate = await get_certificate(db, certificate_id)
    vaccine = await get_vaccine(db, data.vaccine_id)
    provider = get_provider(vaccine, data.provider_id)

    if not certificate.is_active:
        raise ConcurrentModification(
            "No se pueden agregar refuerzos a un certificado inactivo",
            certificate_no=format_display(certificate.certificate_no),
        )

    try:
        dose_ledger.can_accept_booster(
            [v.dose_number for v in certificate.vaccinations],
            certificate.vaccine.total_dose,
        )
    except ValidationException as e:
        logger.warning(
            "Refuerzo rechazado para certificado %s: %s",
            certificate.certificate_no, e.detail,
        )
        raise

    async def _work() -> BoosterDose:
        # Bloquea la fila y confirma que sigue vigente (un fork pudo ganar la carrera)
        still_active = await db.scalar(
            select(Certificate.is_active)
            .where(Certificate.id == certificate.id)
            .with_for_update()
        )
        if not still_active:
            raise ConcurrentModification(
                "El certificado fue reemplazado mientras se registraba el refuerzo",
                certificate_no=format_display(certificate.certificate_no),
            )

        booster = BoosterDose(
            certificate_id=certificate.id,
            vaccine_id=vaccine.id,
            vaccine_name=vaccine.name,
            date_administered=data.date_administered,
            vaccination_center=operator.center,
            vaccinated_by_id=operator.id,
            vaccinated_by_name=operator.display_name,
            provider_id=provider.id,
        )
        db.add(booster)
        await db.flush()
        await log_action(
            db,
            user_id=operator.id,
            entity="certificate",
            entity_id=str(certificate.id),
            action="booster",
            new_data={"booster_id": booster.id, "vaccine_id": vaccine.id},
            ip_address=ip_address,
        )
        return booster

    await _commit_transition(db, _work, description="append_booster")
    logger.info("Refuerzo agregado al certificado %s", certificate.certificate_no)
    return await get_certificate(db, certificate.id)


# ── Administración ────────────────────────────────────

async def deactivate(
    db: AsyncSession,
    certificate_id: UUID,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> None:
    """Baja lógica sin sucesor. Es terminal; repetirla no cambia nada."""
    certificate = await get_certificate(db, certificate_id)
    if not certificate.is_active:
        return

    async def _work() -> None:
        certificate.is_active = False
        await log_action(
            db,
            user_id=user_id,
            entity="certificate",
            entity_id=str(certificate.id),
            action="deactivate",
            old_data={"is_active": True},
            new_data={"is_active": False},
            ip_address=ip_address,
        )

    certificate_no = certificate.certificate_no
    await _commit_transition(db, _work, description="deactivate")
    logger.info("Certificado %s desactivado", certificate_no)


async def edit_identity_fields(
    db: AsyncSession,
    certificate_id: UUID,
    patch: IdentityUpdate,
    user_id: UUID | None = None,
    ip_address: str | None = None,
) -> Certificate:
    """
    Corrige datos del paciente en un certificado; no altera la serie.
    Si cambia un documento (DNI o pasaporte) de un certificado activo, el
    documento nuevo no puede tener ya otro linaje activo para la vacuna.
    """
    certificate = await get_certificate(db, certificate_id)
    update_data = patch.model_dump(exclude_unset=True)

    missing = [
        key for key, value in update_data.items()
        if value is None and key not in _OPTIONAL_IDENTITY_FIELDS
    ]
    if missing:
        raise ValidationException(f"Campos obligatorios no pueden quedar vacíos: {', '.join(missing)}")

    old_data = {key: getattr(certificate, key) for key in update_data}
    changed = {k: v for k, v in update_data.items() if old_data[k] != v}
    if not changed:
        return certificate

    documents_changed = certificate.is_active and bool(
        _OPTIONAL_IDENTITY_FIELDS & changed.keys()
    )
    nid_number = changed.get("nid_number", certificate.nid_number)
    passport_number = changed.get("passport_number", certificate.passport_number)
    certificate_no = certificate.certificate_no

    async def _work() -> None:
        if documents_changed:
            await _lock_sequence(db)
            await _ensure_no_active_lineage(
                db, certificate.vaccine_id, nid_number, passport_number,
                exclude_id=certificate.id,
            )
        for key, value in changed.items():
            setattr(certificate, key, value)
        await log_action(
            db,
            user_id=user_id,
            entity="certificate",
            entity_id=str(certificate.id),
            action="update",
            old_data={k: old_data[k] for k in changed},
            new_data=changed,
            ip_address=ip_address,
        )

    await _commit_transition(db, _work, description="edit_identity_fields")
    logger.info(
        "Certificado %s: datos de identidad corregidos (%s)",
        certificate_no, ", ".join(changed),
    )
    return await get_certificate(db, certificate_id)


async def get_lineage(db: AsyncSession, certificate_id: UUID) -> list[Certificate]:
    """Cadena completa del linaje, del certificado más antiguo al más nuevo."""
    certificate = await get_certificate(db, certificate_id)

    chain = [certificate]
    current = certificate
    while current.previous_certificate_id is not None:
        current = await db.scalar(
            select(Certificate)
            .where(Certificate.id == current.previous_certificate_id)
            .execution_options(populate_existing=True)
        )
        if current is None:
            break
        chain.insert(0, current)

    current = certificate
    while True:
        successor = await db.scalar(
            select(Certificate)
            .where(Certificate.previous_certificate_id == current.id)
            .execution_options(populate_existing=True)
        )
        if successor is None:
            break
        chain.append(successor)
        current = successor

    return chain
