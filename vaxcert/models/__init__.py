"""
Modelos SQLAlchemy: exportar todos para que Alembic los detecte.
"""

from vaxcert.models.user import User, UserRole
from vaxcert.models.vaccine import Vaccine, VaccineProvider
from vaxcert.models.certificate import (
    BoosterDose,
    Certificate,
    CertificateSequence,
    VaccinationRecord,
)
from vaxcert.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Vaccine",
    "VaccineProvider",
    "Certificate",
    "CertificateSequence",
    "VaccinationRecord",
    "BoosterDose",
    "AuditLog",
]
