"""
Fixtures compartidas para Pytest.
Configura base de datos de test, operadores, catálogo y clientes HTTP.
"""

import os

# Debe existir antes de importar vaxcert (get_settings queda cacheado)
os.environ.setdefault("CERTIFICATE_TOKEN_KEY", "test-certificate-token-key-0123456789")
os.environ.setdefault("DEBUG", "false")

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import date, timedelta  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from vaxcert.auth.dependencies import get_current_user  # noqa: E402
from vaxcert.core.identifiers import reset_cipher  # noqa: E402
from vaxcert.core.security import hash_password  # noqa: E402
from vaxcert.database import Base, get_db  # noqa: E402
from vaxcert.main import app  # noqa: E402
from vaxcert.models.user import User, UserRole  # noqa: E402
from vaxcert.models.vaccine import Vaccine, VaccineProvider  # noqa: E402
from vaxcert.services.certificate_service import Operator  # noqa: E402

# ── Engine de test (SQLite async) ─────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# NullPool: cada sesión abre su propia conexión (tests de concurrencia)
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
def fresh_cipher():
    """El cifrador de tokens se reconstruye con la clave vigente en cada test."""
    reset_cipher()
    yield
    reset_cipher()


@pytest_asyncio.fixture
async def setup_database():
    """Crea y destruye las tablas para cada test que usa la DB."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(setup_database) -> AsyncGenerator[AsyncSession, None]:
    """Provee una sesión de DB de test."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def session_factory(setup_database) -> async_sessionmaker[AsyncSession]:
    """Para tests que necesitan varias sesiones independientes."""
    return test_session_factory


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Crea un operador STAFF de test."""
    user = User(
        id=uuid4(),
        email="staff@test.com",
        hashed_password=hash_password("TestPass123"),
        role=UserRole.STAFF,
        first_name="Ana",
        last_name="Vacunadora",
        center="Centro Test",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Crea un operador ADMIN de test."""
    user = User(
        id=uuid4(),
        email="admin@test.com",
        hashed_password=hash_password("TestPass123"),
        role=UserRole.ADMIN,
        first_name="Admin",
        last_name="Test",
        center="Centro Central",
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def operator(test_user: User) -> Operator:
    return Operator.from_user(test_user)


async def _create_vaccine(
    db: AsyncSession, name: str, total_dose: int, providers: list[str]
) -> Vaccine:
    vaccine = Vaccine(
        name=name,
        total_dose=total_dose,
        providers=[VaccineProvider(name=p) for p in providers],
    )
    db.add(vaccine)
    await db.commit()
    return vaccine


@pytest_asyncio.fixture
async def vaccine(db_session: AsyncSession) -> Vaccine:
    """Vacuna de 2 dosis con un proveedor."""
    return await _create_vaccine(db_session, "Pfizer-BioNTech", 2, ["Pfizer"])


@pytest_asyncio.fixture
async def other_vaccine(db_session: AsyncSession) -> Vaccine:
    """Vacuna de 1 dosis (también usada como refuerzo de otra marca)."""
    return await _create_vaccine(db_session, "Janssen", 1, ["Johnson & Johnson"])


@pytest.fixture
def make_vaccine(db_session: AsyncSession):
    async def _make(name: str, total_dose: int, providers: list[str] | None = None) -> Vaccine:
        return await _create_vaccine(db_session, name, total_dose, providers or ["Lab"])
    return _make


@pytest.fixture
def patient_data() -> dict:
    """Identidad de paciente válida (sin vacuna)."""
    return {
        "patient_name": "Juan Pérez",
        "father_name": "Carlos Pérez",
        "mother_name": "María Gómez",
        "date_of_birth": date(1990, 5, 17),
        "gender": "male",
        "nationality": "Peruana",
        "nid_number": "45678912",
        "passport_number": None,
        "permanent_address": "Av. Siempre Viva 742",
        "phone_number": "+51987654321",
    }


@pytest.fixture
def yesterday() -> date:
    return date.today() - timedelta(days=1)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, test_user: User) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test autenticado como operador STAFF."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_current_user] = lambda: test_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(client: AsyncClient, admin_user: User) -> AsyncClient:
    """Mismo cliente, autenticado como ADMIN."""
    app.dependency_overrides[get_current_user] = lambda: admin_user
    return client


@pytest_asyncio.fixture
async def anon_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Cliente sin autenticación (endpoints públicos)."""

    async def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
