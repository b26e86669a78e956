"""Shared fixtures: in-memory database, API client and seeded users"""
import os
import tempfile
from dataclasses import dataclass
from typing import Dict

# Set up test environment BEFORE importing anything that uses settings
TEST_STORAGE = tempfile.mkdtemp(prefix="land_registry_test_")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_PATH"] = TEST_STORAGE
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["PAYMENT_GATEWAY_SUCCESS_RATE"] = "1.0"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("FROM_EMAIL", None)

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import land_registry.models  # noqa: F401
from land_registry.database import Base, get_db
from land_registry.main import app
from land_registry.models.user import User, UserRole
from land_registry.services.auth import AuthService
from land_registry.services.payment_gateway import SimulatedPaymentGateway, get_payment_gateway


PASSWORD = "Password123"
PDF_BYTES = b"%PDF-1.4\n% test document\n"
REQUIRED_TYPES = ("title_deed", "id_copy", "application_form", "tax_clearance")


@dataclass
class Actor:
    user: User
    headers: Dict[str, str]


def auth_headers(user: User) -> Dict[str, str]:
    token = AuthService.create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway(success_rate=1.0)


@pytest_asyncio.fixture
async def client(session_maker, gateway):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_actor(session_maker, email: str, role: UserRole) -> Actor:
    async with session_maker() as session:
        user = await AuthService(session).create_user(
            email=email, password=PASSWORD, full_name=email.split("@")[0].title(), role=role
        )
    return Actor(user=user, headers=auth_headers(user))


@pytest_asyncio.fixture
async def owner(session_maker):
    return await _create_actor(session_maker, "owner@example.com", UserRole.USER)


@pytest_asyncio.fixture
async def other_owner(session_maker):
    return await _create_actor(session_maker, "neighbour@example.com", UserRole.USER)


@pytest_asyncio.fixture
async def officer(session_maker):
    return await _create_actor(session_maker, "officer@example.com", UserRole.LAND_OFFICER)


@pytest_asyncio.fixture
async def admin(session_maker):
    return await _create_actor(session_maker, "admin@example.com", UserRole.ADMIN)


# Workflow helpers

async def create_property(client, actor: Actor, plot_number: str = "BL-001", **overrides) -> dict:
    payload = {
        "plot_number": plot_number,
        "property_type": "residential",
        "area": 250.0,
        "sub_city": "Bole",
        "kebele": "03",
    }
    payload.update(overrides)
    response = await client.post("/api/properties", json=payload, headers=actor.headers)
    assert response.status_code == 201, response.text
    return response.json()


async def upload_document(client, actor: Actor, property_id: int, document_type: str,
                          filename: str = "scan.pdf", content: bytes = PDF_BYTES,
                          content_type: str = "application/pdf"):
    return await client.post(
        f"/api/documents/property/{property_id}",
        data={"document_type": document_type},
        files={"file": (filename, content, content_type)},
        headers=actor.headers,
    )


async def upload_required_documents(client, actor: Actor, property_id: int) -> list:
    documents = []
    for document_type in REQUIRED_TYPES:
        response = await upload_document(client, actor, property_id, document_type)
        assert response.status_code == 201, response.text
        documents.append(response.json())
    return documents


async def validated_property(client, owner: Actor, officer: Actor, plot_number: str = "BL-001") -> dict:
    """Create a property and take it to documents_validated"""
    property_obj = await create_property(client, owner, plot_number=plot_number)
    documents = await upload_required_documents(client, owner, property_obj["id"])
    for document in documents:
        response = await client.put(
            f"/api/documents/{document['id']}/verify", json={"notes": "Checked"}, headers=officer.headers
        )
        assert response.status_code == 200, response.text

    response = await client.get(f"/api/properties/{property_obj['id']}", headers=owner.headers)
    assert response.json()["status"] == "documents_validated"
    return response.json()
