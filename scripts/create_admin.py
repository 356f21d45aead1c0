"""
Crea un operador ADMIN (o STAFF) inicial.

Uso:
    python scripts/create_admin.py admin@hospital.org "Centro Central" --password Secreta123
    python scripts/create_admin.py staff@hospital.org "Centro Norte" --role staff
"""

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

from sqlalchemy import select

# Agregar el directorio raíz al path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from vaxcert.core.security import hash_password  # noqa: E402
from vaxcert.database import async_session_factory, engine  # noqa: E402
from vaxcert.models.user import User, UserRole  # noqa: E402


async def create_user(
    email: str,
    center: str,
    password: str,
    role: UserRole,
    first_name: str,
    last_name: str,
) -> None:
    async with async_session_factory() as db:
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none():
            print(f"ERROR: ya existe un usuario con email {email}")
            sys.exit(1)

        user = User(
            email=email,
            hashed_password=hash_password(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
            center=center,
        )
        db.add(user)
        await db.commit()
        print(f"✅ Usuario {role.value} creado: {email} ({center})")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Crear operador de VaxCert")
    parser.add_argument("email")
    parser.add_argument("center", help="Centro de vacunación del operador")
    parser.add_argument("--password", help="Si se omite se pide por consola")
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ADMIN.value)
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="VaxCert")
    args = parser.parse_args()

    password = args.password or getpass.getpass("Contraseña: ")
    if len(password) < 8:
        print("ERROR: la contraseña debe tener al menos 8 caracteres")
        sys.exit(1)

    asyncio.run(create_user(
        email=args.email,
        center=args.center,
        password=password,
        role=UserRole(args.role),
        first_name=args.first_name,
        last_name=args.last_name,
    ))


if __name__ == "__main__":
    main()
