"""
Tests del servicio de certificados: primera dosis, fork por dosis siguiente,
refuerzos, concurrencia y administración.
"""

import asyncio
from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import SQLAlchemyError

from vaxcert.core.exceptions import (
    ActiveLineageExists,
    CertificateNotFound,
    ConcurrentModification,
    DoseLimitExceeded,
    ProviderNotFound,
    SequenceError,
    SeriesIncomplete,
    TransactionFailed,
    VaccineMismatch,
    VaccineNotFound,
    ValidationException,
)
from vaxcert.core.identifiers import format_display
from vaxcert.models.audit_log import AuditLog
from vaxcert.models.certificate import Certificate
from vaxcert.schemas.certificate import (
    BoosterDoseCreate,
    FirstDoseCreate,
    IdentityUpdate,
    SubsequentDoseCreate,
)
from vaxcert.services import certificate_service
from vaxcert.services.dose_ledger import CertificateState


def _first_dose(patient_data, vaccine, when):
    return FirstDoseCreate(
        **patient_data,
        vaccine_id=vaccine.id,
        provider_id=vaccine.providers[0].id,
        date_administered=when,
    )


def _next_dose(certificate, vaccine, when, dose_number=None):
    return SubsequentDoseCreate(
        previous_certificate_no=format_display(certificate.certificate_no),
        vaccine_id=vaccine.id,
        provider_id=vaccine.providers[0].id,
        date_administered=when,
        dose_number=dose_number,
    )


# ── Primera dosis ──────────────────────────────────────

async def test_first_dose_opens_lineage(db_session, vaccine, operator, patient_data, yesterday):
    cert = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )

    assert cert.certificate_no == 1
    assert cert.is_active
    assert cert.dose_number == 1
    assert cert.previous_certificate_id is None
    assert [v.dose_number for v in cert.vaccinations] == [1]

    record = cert.vaccinations[0]
    assert record.vaccination_center == "Centro Test"
    assert record.vaccinated_by_name == "Ana Vacunadora"
    assert record.vaccine_name == vaccine.name

    audit = await db_session.scalar(
        select(AuditLog).where(AuditLog.entity_id == str(cert.id))
    )
    assert audit.action == "create"


async def test_certificate_numbers_are_sequential(
    db_session, vaccine, operator, patient_data, yesterday
):
    first = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    other_patient = {**patient_data, "nid_number": "11112222"}
    second = await certificate_service.create_first_dose(
        db_session, _first_dose(other_patient, vaccine, yesterday), operator
    )
    assert second.certificate_no == first.certificate_no + 1


async def test_second_active_lineage_rejected(
    db_session, vaccine, operator, patient_data, yesterday
):
    await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    with pytest.raises(ActiveLineageExists) as exc_info:
        await certificate_service.create_first_dose(
            db_session, _first_dose(patient_data, vaccine, yesterday), operator
        )
    assert exc_info.value.detail["certificate_no"] == "P-000001"


async def test_rejected_first_dose_does_not_consume_number(
    session_factory, db_session, vaccine, operator, patient_data, yesterday
):
    duplicate = _first_dose(patient_data, vaccine, yesterday)
    other = _first_dose({**patient_data, "nid_number": "11112222"}, vaccine, yesterday)
    await certificate_service.create_first_dose(db_session, duplicate, operator)
    with pytest.raises(ActiveLineageExists):
        await certificate_service.create_first_dose(db_session, duplicate, operator)

    async with session_factory() as session:
        cert = await certificate_service.create_first_dose(session, other, operator)
        assert cert.certificate_no == 2


async def test_vaccine_providers_stay_loaded_after_commit(
    db_session, vaccine, operator, patient_data, yesterday
):
    await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    assert "providers" not in inspect(vaccine).unloaded
    assert vaccine.providers[0].name == "Pfizer"


async def test_same_patient_other_vaccine_allowed(
    db_session, vaccine, other_vaccine, operator, patient_data, yesterday
):
    await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    cert = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, other_vaccine, yesterday), operator
    )
    assert cert.vaccine_id == other_vaccine.id


async def test_first_dose_unknown_vaccine(db_session, vaccine, operator, patient_data, yesterday):
    data = FirstDoseCreate(
        **patient_data,
        vaccine_id=uuid4(),
        provider_id=vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(VaccineNotFound):
        await certificate_service.create_first_dose(db_session, data, operator)


async def test_first_dose_provider_of_other_vaccine(
    db_session, vaccine, other_vaccine, operator, patient_data, yesterday
):
    data = FirstDoseCreate(
        **patient_data,
        vaccine_id=vaccine.id,
        provider_id=other_vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(ProviderNotFound):
        await certificate_service.create_first_dose(db_session, data, operator)

    total = await db_session.scalar(select(func.count(Certificate.id)))
    assert total == 0


# ── Dosis siguientes ───────────────────────────────────

async def test_full_scenario_fork_then_booster(
    db_session, vaccine, other_vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, date(2024, 1, 10)), operator
    )
    b = await certificate_service.append_subsequent_dose(
        db_session, _next_dose(a, vaccine, date(2024, 2, 10)), operator
    )

    assert b.certificate_no != a.certificate_no
    assert b.previous_certificate_id == a.id
    assert b.is_active
    assert b.dose_number == 2
    assert [v.dose_number for v in b.vaccinations] == [1, 2]
    assert b.identity() == a.identity()

    a = await certificate_service.get_certificate(db_session, a.id)
    assert not a.is_active
    # El predecesor conserva su propio historial
    assert [v.dose_number for v in a.vaccinations] == [1]

    snapshot = certificate_service.ledger_snapshot(b)
    assert snapshot.state == CertificateState.ACTIVE_COMPLETE

    # Refuerzo de otra marca: no hace fork
    boosted = await certificate_service.append_booster(
        db_session,
        b.id,
        BoosterDoseCreate(
            vaccine_id=other_vaccine.id,
            provider_id=other_vaccine.providers[0].id,
            date_administered=yesterday,
        ),
        operator,
    )
    assert boosted.id == b.id
    assert boosted.dose_number == 2
    assert boosted.is_active
    assert [bd.vaccine_name for bd in boosted.booster_doses] == ["Janssen"]

    actions = (
        await db_session.scalars(select(AuditLog.action).order_by(AuditLog.created_at))
    ).all()
    assert {"create", "deactivate", "fork", "booster"} <= set(actions)


async def test_third_dose_of_two_dose_vaccine(
    db_session, vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    b = await certificate_service.append_subsequent_dose(
        db_session, _next_dose(a, vaccine, yesterday), operator
    )
    with pytest.raises(DoseLimitExceeded):
        await certificate_service.append_subsequent_dose(
            db_session, _next_dose(b, vaccine, yesterday), operator
        )

    b = await certificate_service.get_certificate(db_session, b.id)
    assert b.is_active


async def test_skipping_a_dose_is_sequence_error(
    db_session, make_vaccine, operator, patient_data, yesterday
):
    three_dose = await make_vaccine("Sinopharm", 3)
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, three_dose, yesterday), operator
    )
    with pytest.raises(SequenceError):
        await certificate_service.append_subsequent_dose(
            db_session, _next_dose(a, three_dose, yesterday, dose_number=3), operator
        )


async def test_vaccine_mismatch(
    db_session, vaccine, other_vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    with pytest.raises(VaccineMismatch):
        await certificate_service.append_subsequent_dose(
            db_session, _next_dose(a, other_vaccine, yesterday), operator
        )

    a = await certificate_service.get_certificate(db_session, a.id)
    assert a.is_active


async def test_unknown_previous_certificate(db_session, vaccine, operator, yesterday):
    data = SubsequentDoseCreate(
        previous_certificate_no="P-999999",
        vaccine_id=vaccine.id,
        provider_id=vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(CertificateNotFound):
        await certificate_service.append_subsequent_dose(db_session, data, operator)


async def test_malformed_previous_certificate_no(db_session, vaccine, operator, yesterday):
    data = SubsequentDoseCreate(
        previous_certificate_no="no-es-un-numero",
        vaccine_id=vaccine.id,
        provider_id=vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(ValidationException):
        await certificate_service.append_subsequent_dose(db_session, data, operator)


async def test_append_on_inactive_certificate(
    db_session, make_vaccine, operator, patient_data, yesterday
):
    three_dose = await make_vaccine("Moderna", 3)
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, three_dose, yesterday), operator
    )
    await certificate_service.append_subsequent_dose(
        db_session, _next_dose(a, three_dose, yesterday), operator
    )
    with pytest.raises(ConcurrentModification):
        await certificate_service.append_subsequent_dose(
            db_session, _next_dose(a, three_dose, yesterday), operator
        )


async def test_concurrent_forks_only_one_wins(
    session_factory, db_session, vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    data = _next_dose(a, vaccine, yesterday)

    async def _attempt():
        async with session_factory() as session:
            return await certificate_service.append_subsequent_dose(session, data, operator)

    results = await asyncio.gather(_attempt(), _attempt(), return_exceptions=True)

    successes = [r for r in results if isinstance(r, Certificate)]
    failures = [r for r in results if not isinstance(r, Certificate)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (ConcurrentModification, TransactionFailed))

    async with session_factory() as session:
        active = (
            await session.scalars(
                select(Certificate).where(
                    Certificate.vaccine_id == vaccine.id,
                    Certificate.is_active.is_(True),
                )
            )
        ).all()
    assert [c.id for c in active] == [successes[0].id]


# ── Refuerzos ──────────────────────────────────────────

async def test_booster_before_series_complete(
    db_session, vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    booster = BoosterDoseCreate(
        vaccine_id=vaccine.id,
        provider_id=vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(SeriesIncomplete):
        await certificate_service.append_booster(db_session, a.id, booster, operator)


async def test_booster_on_single_dose_vaccine(
    db_session, other_vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, other_vaccine, yesterday), operator
    )
    booster = BoosterDoseCreate(
        vaccine_id=other_vaccine.id,
        provider_id=other_vaccine.providers[0].id,
        date_administered=yesterday,
    )
    cert = await certificate_service.append_booster(db_session, a.id, booster, operator)
    cert = await certificate_service.append_booster(db_session, a.id, booster, operator)
    assert len(cert.booster_doses) == 2
    assert cert.vaccinations[0].dose_number == 1


async def test_booster_on_inactive_certificate(
    db_session, other_vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, other_vaccine, yesterday), operator
    )
    await certificate_service.deactivate(db_session, a.id, user_id=operator.id)
    booster = BoosterDoseCreate(
        vaccine_id=other_vaccine.id,
        provider_id=other_vaccine.providers[0].id,
        date_administered=yesterday,
    )
    with pytest.raises(ConcurrentModification):
        await certificate_service.append_booster(db_session, a.id, booster, operator)


# ── Administración ─────────────────────────────────────

async def test_deactivate_is_idempotent(db_session, vaccine, operator, patient_data, yesterday):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    await certificate_service.deactivate(db_session, a.id, user_id=operator.id)
    await certificate_service.deactivate(db_session, a.id, user_id=operator.id)

    a = await certificate_service.get_certificate(db_session, a.id)
    assert not a.is_active

    deactivations = await db_session.scalar(
        select(func.count(AuditLog.id)).where(
            AuditLog.entity_id == str(a.id), AuditLog.action == "deactivate"
        )
    )
    assert deactivations == 1

    # Sin linaje activo se puede abrir uno nuevo
    again = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    assert again.is_active


async def test_edit_identity_fields(db_session, vaccine, operator, patient_data, yesterday):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    updated = await certificate_service.edit_identity_fields(
        db_session,
        a.id,
        IdentityUpdate(patient_name="Juan Alberto Pérez", passport_number="  "),
        user_id=operator.id,
    )
    assert updated.patient_name == "Juan Alberto Pérez"
    assert updated.passport_number is None
    assert updated.dose_number == 1
    assert updated.certificate_no == a.certificate_no

    audit = await db_session.scalar(
        select(AuditLog).where(AuditLog.entity_id == str(a.id), AuditLog.action == "update")
    )
    assert audit.old_data == {"patient_name": "Juan Pérez"}


async def test_edit_identity_rejects_clearing_required_field(
    db_session, vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    with pytest.raises(ValidationException):
        await certificate_service.edit_identity_fields(
            db_session, a.id, IdentityUpdate(patient_name=None), user_id=operator.id
        )


async def test_lineage_oldest_to_newest(
    db_session, make_vaccine, operator, patient_data, yesterday
):
    three_dose = await make_vaccine("AstraZeneca", 3)
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, three_dose, yesterday), operator
    )
    b = await certificate_service.append_subsequent_dose(
        db_session, _next_dose(a, three_dose, yesterday), operator
    )
    c = await certificate_service.append_subsequent_dose(
        db_session, _next_dose(b, three_dose, yesterday), operator
    )

    for start in (a, b, c):
        chain = await certificate_service.get_lineage(db_session, start.id)
        assert [x.id for x in chain] == [a.id, b.id, c.id]
        assert [x.is_active for x in chain] == [False, False, True]


async def test_deactivate_rolls_back_on_database_error(
    db_session, vaccine, operator, patient_data, yesterday, monkeypatch
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    certificate_id = a.id

    async def _broken_log_action(*args, **kwargs):
        raise SQLAlchemyError("boom")

    monkeypatch.setattr(certificate_service, "log_action", _broken_log_action)
    with pytest.raises(TransactionFailed):
        await certificate_service.deactivate(db_session, certificate_id, user_id=operator.id)

    a = await certificate_service.get_certificate(db_session, certificate_id)
    assert a.is_active


async def test_edit_document_into_existing_lineage_rejected(
    db_session, vaccine, operator, patient_data, yesterday
):
    await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    other_patient = {**patient_data, "nid_number": "11112222", "passport_number": "PX998877"}
    b = await certificate_service.create_first_dose(
        db_session, _first_dose(other_patient, vaccine, yesterday), operator
    )
    certificate_id = b.id

    with pytest.raises(ActiveLineageExists) as exc_info:
        await certificate_service.edit_identity_fields(
            db_session,
            certificate_id,
            IdentityUpdate(nid_number=patient_data["nid_number"]),
            user_id=operator.id,
        )
    assert exc_info.value.detail["certificate_no"] == "P-000001"

    b = await certificate_service.get_certificate(db_session, certificate_id)
    assert b.nid_number == "11112222"


async def test_edit_document_of_inactive_certificate_skips_lineage_check(
    db_session, vaccine, operator, patient_data, yesterday
):
    await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    other_patient = {**patient_data, "nid_number": "11112222"}
    b = await certificate_service.create_first_dose(
        db_session, _first_dose(other_patient, vaccine, yesterday), operator
    )
    await certificate_service.deactivate(db_session, b.id, user_id=operator.id)

    updated = await certificate_service.edit_identity_fields(
        db_session,
        b.id,
        IdentityUpdate(nid_number=patient_data["nid_number"]),
        user_id=operator.id,
    )
    assert updated.nid_number == patient_data["nid_number"]
    assert not updated.is_active


async def test_edit_keeping_own_document_is_allowed(
    db_session, vaccine, operator, patient_data, yesterday
):
    a = await certificate_service.create_first_dose(
        db_session, _first_dose(patient_data, vaccine, yesterday), operator
    )
    updated = await certificate_service.edit_identity_fields(
        db_session, a.id, IdentityUpdate(passport_number="PX112233"), user_id=operator.id
    )
    assert updated.passport_number == "PX112233"
    assert updated.is_active
