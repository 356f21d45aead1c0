"""
Ledger de dosis: reglas de secuencia sobre el estado actual de un certificado.

Lógica pura, sin acceso a base de datos: recibe el total de dosis de la vacuna
y los números de dosis ya registrados, y decide si se puede agregar una dosis
regular o un refuerzo. Los servicios la llaman antes de cualquier mutación.
"""

import enum
from collections.abc import Iterable

from vaxcert.core.exceptions import DoseLimitExceeded, SeriesIncomplete, SequenceError


class CertificateState(str, enum.Enum):
    """Estado de un certificado dentro de su linaje."""
    ACTIVE_INCOMPLETE = "active_incomplete"
    ACTIVE_COMPLETE = "active_complete"
    INACTIVE = "inactive"


def next_regular_dose_number(existing_doses: Iterable[int]) -> int:
    return max(existing_doses, default=0) + 1


def can_accept_regular_dose(dose_number: int, total_dose: int) -> None:
    """Lanza DoseLimitExceeded si la dosis supera el esquema."""
    if dose_number > total_dose:
        raise DoseLimitExceeded(dose_number=dose_number, total_dose=total_dose)


def is_series_complete(existing_doses: Iterable[int], total_dose: int) -> bool:
    # Igualdad estricta: si el esquema de la vacuna cambió después de emitir
    # certificados, esos certificados no quedan habilitados para refuerzo.
    return len(list(existing_doses)) == total_dose


def can_accept_booster(existing_doses: Iterable[int], total_dose: int) -> None:
    """Lanza SeriesIncomplete salvo que el esquema esté completo."""
    doses = list(existing_doses)
    if not is_series_complete(doses, total_dose):
        raise SeriesIncomplete(doses_recorded=len(doses), total_dose=total_dose)


def check_contiguous(existing_doses: Iterable[int]) -> bool:
    """True si las dosis forman la secuencia 1..n sin huecos ni repetidos."""
    doses = sorted(existing_doses)
    return doses == list(range(1, len(doses) + 1))


def plan_regular_dose(
    existing_doses: Iterable[int],
    total_dose: int,
    requested_dose_number: int | None = None,
) -> int:
    """
    Calcula y valida el número de la próxima dosis regular.

    El límite del esquema se verifica antes que la secuencia: pedir la dosis 3
    de una vacuna de 2 dosis es DoseLimitExceeded aunque falten dosis previas.
    Si `requested_dose_number` es None se usa la siguiente de la serie.
    """
    doses = list(existing_doses)
    expected = next_regular_dose_number(doses)
    target = expected if requested_dose_number is None else requested_dose_number

    can_accept_regular_dose(target, total_dose)
    if target != expected:
        raise SequenceError(
            expected_dose_number=expected, requested_dose_number=target
        )
    return target


class LedgerSnapshot:
    """Resumen del estado de dosis de un certificado."""

    def __init__(
        self,
        total_dose: int,
        doses: Iterable[int],
        booster_count: int = 0,
        is_active: bool = True,
    ):
        self.total_dose = total_dose
        self.doses = tuple(sorted(doses))
        self.booster_count = booster_count
        self.is_active = is_active

    @property
    def series_complete(self) -> bool:
        return is_series_complete(self.doses, self.total_dose)

    @property
    def next_dose_number(self) -> int | None:
        if self.series_complete or not self.is_active:
            return None
        nxt = next_regular_dose_number(self.doses)
        return nxt if nxt <= self.total_dose else None

    @property
    def state(self) -> CertificateState:
        if not self.is_active:
            return CertificateState.INACTIVE
        if self.series_complete:
            return CertificateState.ACTIVE_COMPLETE
        return CertificateState.ACTIVE_INCOMPLETE
