"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from vaxcert.api.v1.auth import router as auth_router
from vaxcert.api.v1.vaccines import router as vaccines_router
from vaxcert.api.v1.certificates import router as certificates_router
from vaxcert.api.v1.verify import router as verify_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    auth_router,
    prefix="/auth",
    tags=["Autenticación"],
)

api_v1_router.include_router(
    vaccines_router,
    prefix="/vaccines",
    tags=["Vacunas"],
)

api_v1_router.include_router(
    certificates_router,
    prefix="/certificates",
    tags=["Certificados"],
)

api_v1_router.include_router(
    verify_router,
    prefix="/verify",
    tags=["Verificación pública"],
)
