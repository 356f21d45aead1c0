"""
Schemas de autenticación de operadores.
"""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from vaxcert.models.user import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)


class UserLoginData(BaseModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: UserRole
    center: str


class LoginResponse(BaseModel):
    user: UserLoginData
    access_token: str
    token_type: str = "bearer"
