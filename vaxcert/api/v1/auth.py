"""
Endpoints de autenticación de operadores.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vaxcert.auth.dependencies import get_current_user
from vaxcert.database import get_db
from vaxcert.models.user import User
from vaxcert.schemas.auth import LoginRequest, LoginResponse, UserLoginData
from vaxcert.services import auth_service

router = APIRouter()


def get_client_ip(request: Request) -> str | None:
    """Obtiene la IP del cliente desde los headers o la conexión."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Autentica un operador con email y contraseña."""
    return await auth_service.login(db, data, ip_address=get_client_ip(request))


@router.get("/me", response_model=UserLoginData)
async def me(user: User = Depends(get_current_user)):
    """Datos del operador autenticado."""
    return UserLoginData(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        full_name=user.full_name,
        role=user.role,
        center=user.center,
    )
