"""
Gestión de JWT con RS256 (claves asimétricas) para operadores.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from vaxcert.config import get_settings

settings = get_settings()

ACCESS_TOKEN_TYPE = "access"


def create_access_token(user_id: UUID, role: str, center: str) -> str:
    """Crea un access token JWT RS256."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "center": center,
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(
        payload,
        settings.jwt_private_key,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_token(token: str) -> dict:
    """
    Decodifica y verifica un token JWT.
    Lanza jwt.InvalidTokenError si el token es inválido o expirado.
    """
    return jwt.decode(
        token,
        settings.jwt_public_key,
        algorithms=[settings.JWT_ALGORITHM],
    )
