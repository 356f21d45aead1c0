"""
Excepciones HTTP personalizadas para la API.

Las genéricas (401/403/404/409/422) se usan en toda la app; las de dominio
(secuencia de dosis, linaje de certificados, token público) heredan de ellas
y exponen un `code` estable dentro de `detail` para que el cliente pueda
reaccionar sin parsear el mensaje.
"""

from typing import Any

from fastapi import HTTPException, status


class CredentialsException(HTTPException):
    """Error de credenciales inválidas (401)."""

    def __init__(self, detail: str = "Credenciales inválidas"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(HTTPException):
    """Error de permisos insuficientes (403)."""

    def __init__(self, detail: str = "No tiene permisos para realizar esta acción"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class NotFoundException(HTTPException):
    """Recurso no encontrado (404)."""

    def __init__(self, resource: str = "Recurso", detail: Any = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} no encontrado",
        )


class ConflictException(HTTPException):
    """Conflicto de datos (409), ej: nombre de vacuna duplicado."""

    def __init__(self, detail: Any = "El recurso ya existe"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class ValidationException(HTTPException):
    """Error de validación de negocio (422)."""

    def __init__(self, detail: Any = "Error de validación"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
        )


# ── Errores de dominio ───────────────────────────────

def _detail(code: str, message: str, **extra: Any) -> dict:
    return {"code": code, "message": message, **extra}


class SequenceError(ValidationException):
    """El número de dosis solicitado no es el siguiente de la serie."""

    code = "SequenceError"

    def __init__(self, expected_dose_number: int, requested_dose_number: int):
        self.expected_dose_number = expected_dose_number
        self.requested_dose_number = requested_dose_number
        super().__init__(
            _detail(
                self.code,
                f"La siguiente dosis debe ser la {expected_dose_number}, "
                f"se solicitó la {requested_dose_number}",
                expected_dose_number=expected_dose_number,
                requested_dose_number=requested_dose_number,
            )
        )


class DoseLimitExceeded(ValidationException):
    """El número de dosis supera el total del esquema de la vacuna."""

    code = "DoseLimitExceeded"

    def __init__(self, dose_number: int, total_dose: int):
        self.dose_number = dose_number
        self.total_dose = total_dose
        super().__init__(
            _detail(
                self.code,
                f"La vacuna solo tiene {total_dose} dosis; no se puede registrar la {dose_number}",
                dose_number=dose_number,
                total_dose=total_dose,
            )
        )


class SeriesIncomplete(ValidationException):
    """Refuerzo solicitado antes de completar el esquema."""

    code = "SeriesIncomplete"

    def __init__(self, doses_recorded: int, total_dose: int):
        self.doses_recorded = doses_recorded
        self.total_dose = total_dose
        super().__init__(
            _detail(
                self.code,
                "No se puede registrar un refuerzo antes de completar el esquema "
                f"({doses_recorded}/{total_dose} dosis)",
                doses_recorded=doses_recorded,
                total_dose=total_dose,
            )
        )


class VaccineMismatch(ValidationException):
    """La vacuna solicitada no coincide con la del linaje del certificado."""

    code = "VaccineMismatch"

    def __init__(self, certificate_vaccine: str, requested_vaccine: str):
        super().__init__(
            _detail(
                self.code,
                "La vacuna no coincide con la del certificado anterior",
                certificate_vaccine=certificate_vaccine,
                requested_vaccine=requested_vaccine,
            )
        )


class VaccineNotFound(NotFoundException):
    code = "VaccineNotFound"

    def __init__(self, message: str = "Vacuna no encontrada"):
        super().__init__(detail=_detail(self.code, message))


class ProviderNotFound(NotFoundException):
    code = "ProviderNotFound"

    def __init__(self, message: str = "Proveedor no encontrado para la vacuna seleccionada"):
        super().__init__(detail=_detail(self.code, message))


class CertificateNotFound(NotFoundException):
    code = "CertificateNotFound"

    def __init__(self, message: str = "Certificado no encontrado"):
        super().__init__(detail=_detail(self.code, message))


class InvalidToken(HTTPException):
    """Token de verificación ilegible (400)."""

    code = "InvalidToken"

    def __init__(self, message: str = "Token de verificación inválido"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_detail(self.code, message),
        )


class ConcurrentModification(ConflictException):
    """El certificado anterior ya no está activo (otro fork lo reemplazó)."""

    code = "ConcurrentModification"

    def __init__(self, message: str = "El certificado ya fue reemplazado o desactivado", **extra: Any):
        super().__init__(_detail(self.code, message, **extra))


class ActiveLineageExists(ConflictException):
    """Ya existe un certificado activo del paciente para esa vacuna."""

    code = "ActiveLineageExists"

    def __init__(self, certificate_no: str):
        super().__init__(
            _detail(
                self.code,
                "El paciente ya tiene un certificado activo para esta vacuna; "
                "registre la dosis sobre ese certificado",
                certificate_no=certificate_no,
            )
        )


class VaccineInUse(ConflictException):
    code = "VaccineInUse"

    def __init__(self, message: str = "La vacuna ya tiene dosis registradas"):
        super().__init__(_detail(self.code, message))


class TransactionFailed(HTTPException):
    """La transacción fue revertida (error de base de datos o timeout)."""

    code = "TransactionFailed"

    def __init__(self, message: str = "No se pudo completar la operación; no se aplicó ningún cambio"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_detail(self.code, message),
        )
