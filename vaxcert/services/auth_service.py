"""
Servicio de autenticación de operadores.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.auth.jwt import create_access_token
from vaxcert.core.exceptions import CredentialsException
from vaxcert.core.security import verify_password
from vaxcert.models.user import User
from vaxcert.schemas.auth import LoginRequest, LoginResponse, UserLoginData
from vaxcert.services.audit_service import log_action

logger = logging.getLogger(__name__)


async def login(
    db: AsyncSession,
    data: LoginRequest,
    ip_address: str | None = None,
) -> LoginResponse:
    """Autentica un operador con email y contraseña."""
    result = await db.execute(
        select(User).where(User.email == data.email, User.is_active.is_(True))
    )
    user = result.scalar_one_or_none()

    if not user:
        logger.warning("Login fallido: usuario no encontrado para email=%s", data.email)
        raise CredentialsException("Email o contraseña incorrectos")

    if not verify_password(data.password, user.hashed_password):
        logger.warning("Login fallido: contraseña incorrecta para user_id=%s", user.id)
        raise CredentialsException("Email o contraseña incorrectos")

    user.last_login = datetime.now(timezone.utc)
    await db.flush()

    await log_action(
        db,
        user_id=user.id,
        entity="user",
        entity_id=str(user.id),
        action="login",
        ip_address=ip_address,
    )
    await db.commit()

    access_token = create_access_token(user.id, user.role.value, user.center)

    return LoginResponse(
        user=UserLoginData(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            role=user.role,
            center=user.center,
        ),
        access_token=access_token,
    )
