"""
Test configuration and shared fixtures for the template engine test suite.

Tests run against an in-memory SQLite database by default (set
TEST_DATABASE_URL to run against PostgreSQL). Each test gets a fresh schema,
so tests never see each other's rows.
"""

import os

# Must be set before core.database builds the application engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from typing import Any, Dict, Generator, List, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from auth.dependencies import UserContext, get_current_user
from core.database import Base, get_db
from models import MedicalRecordTemplate, TemplateUsage  # noqa: F401  (registers tables)
from services.jwt_service import JWTService, TokenPayload


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite://")

TENANT_ID = "tenant_alpha"
OTHER_TENANT_ID = "tenant_beta"
ADMIN_USER_ID = 101
PRACTITIONER_USER_ID = 202


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a database engine with a freshly created schema.

    In-memory SQLite uses StaticPool so every connection (including the
    TestClient worker thread) sees the same database.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session configured like the application's SessionLocal."""
    TestSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestSession()

    yield session

    session.rollback()
    session.close()


def make_template(
    db_session: Session,
    tenant_id: str = TENANT_ID,
    name: str = "General Consultation",
    template_type: str = "consultation",
    specialty: Optional[str] = None,
    fields: Optional[Dict[str, Any]] = None,
    default_values: Optional[Dict[str, Any]] = None,
    validation_rules: Optional[Dict[str, Any]] = None,
    is_default: bool = False,
    is_active: bool = True,
    created_by: Optional[int] = ADMIN_USER_ID,
) -> MedicalRecordTemplate:
    """
    Insert a template row directly, bypassing the service.

    Useful for arranging state (e.g. inactive templates) that the service
    would never produce on its own. Callers are responsible for keeping the
    default bucket consistent.
    """
    template = MedicalRecordTemplate(
        tenant_id=tenant_id,
        name=name,
        template_type=template_type,
        specialty=specialty,
        fields=fields if fields is not None else {"diagnosis": {"type": "text", "required": True}},
        default_values=default_values or {},
        validation_rules=validation_rules or {},
        is_default=is_default,
        is_active=is_active,
        created_by=created_by,
        updated_by=created_by,
    )
    db_session.add(template)
    db_session.commit()
    db_session.refresh(template)
    return template


def active_defaults(db_session: Session, tenant_id: str, template_type: str,
                    specialty: Optional[str]) -> List[MedicalRecordTemplate]:
    """All active defaults in a bucket, read straight from the database."""
    db_session.expire_all()
    query = db_session.query(MedicalRecordTemplate).filter(
        MedicalRecordTemplate.tenant_id == tenant_id,
        MedicalRecordTemplate.template_type == template_type,
        MedicalRecordTemplate.is_default == True,
        MedicalRecordTemplate.is_active == True,
    )
    if specialty is None:
        query = query.filter(MedicalRecordTemplate.specialty.is_(None))
    else:
        query = query.filter(MedicalRecordTemplate.specialty == specialty)
    return query.all()


def create_jwt_token(user_id: int, tenant_id: str, roles: List[str]) -> str:
    """Create a JWT token for a tenant user."""
    return JWTService.create_access_token(
        TokenPayload(sub=str(user_id), tenant_id=tenant_id, roles=roles)
    )


@pytest.fixture
def admin_context() -> UserContext:
    return UserContext(user_id=ADMIN_USER_ID, tenant_id=TENANT_ID, roles=["admin"], email="admin@example.com")


@pytest.fixture
def practitioner_context() -> UserContext:
    return UserContext(user_id=PRACTITIONER_USER_ID, tenant_id=TENANT_ID, roles=["practitioner"])


@pytest.fixture
def client(db_session) -> Generator[TestClient, None, None]:
    """
    TestClient whose requests use the test session.

    Authentication is not overridden here; tests either send a bearer token
    or override get_current_user themselves.
    """
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def as_user(client):
    """Switch the authenticated user for subsequent requests."""
    from main import app

    def _as_user(user: UserContext) -> TestClient:
        app.dependency_overrides[get_current_user] = lambda: user
        return client

    return _as_user
