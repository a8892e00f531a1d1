"""
Test configuration and fixtures.

Provides:
- Fresh SQLite schema per test (services commit and roll back freely)
- Manager/property/questionnaire factories
- JWT cookie minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import tempfile
import uuid
from typing import AsyncGenerator, Generator

# Settings are read at import time
_DB_PATH = os.path.join(tempfile.gettempdir(), f"rentema-test-{os.getpid()}.db")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_PATH}")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-length-for-hs256")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from rentema.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from rentema.core.security import create_session_token
from rentema.db.base import Base
from rentema.db.enums import CriteriaOperator, ResponseType
from rentema.db.models import Property, PropertyManager
from rentema.db.session import SessionLocal, engine
from rentema.main import app
from rentema.services import availability_service, qualification_service


# Every weekday, 09:00-17:00 manager-local
FULL_WEEK = {
    day: [{"startTime": "09:00", "endTime": "17:00"}]
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Session on a freshly created schema, dropped after the test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def manager(db: Session) -> PropertyManager:
    record = PropertyManager(
        id=uuid.uuid4(),
        email=f"manager-{uuid.uuid4().hex[:8]}@test.com",
        name="Test Manager",
        timezone="America/Los_Angeles",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture(scope="function")
def other_manager(db: Session) -> PropertyManager:
    record = PropertyManager(
        id=uuid.uuid4(),
        email=f"other-{uuid.uuid4().hex[:8]}@test.com",
        name="Other Manager",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture(scope="function")
def rental(db: Session, manager: PropertyManager) -> Property:
    prop = Property(
        manager_id=manager.id,
        address="12 Elm Street, Unit 3",
        bedrooms=2,
        is_test_mode=True,
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


@pytest.fixture(scope="function")
def screening(db: Session, rental: Property) -> dict:
    """
    Two questions with criteria: income greater than 3000, and has_pets equals false.

    Returns a dict with the question ids by name.
    """
    questions = qualification_service.save_questions(
        db,
        rental,
        [
            {"text": "Monthly income?", "response_type": ResponseType.NUMBER.value},
            {"text": "Do you have pets?", "response_type": ResponseType.BOOLEAN.value},
        ],
    )
    income, pets = questions
    qualification_service.save_criteria(
        db,
        rental,
        [
            {
                "question_id": income.id,
                "operator": CriteriaOperator.GREATER_THAN.value,
                "expected_value": 3000,
            },
            {
                "question_id": pets.id,
                "operator": CriteriaOperator.EQUALS.value,
                "expected_value": False,
            },
        ],
    )
    return {"income": str(income.id), "pets": str(pets.id)}


@pytest.fixture(scope="function")
def video_schedule(db: Session, manager: PropertyManager):
    return availability_service.save_schedule(
        db, manager.id, "video_call", FULL_WEEK, []
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    manager: PropertyManager,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    token = create_session_token(manager.id, manager.token_version)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={COOKIE_NAME: token},
        headers={CSRF_HEADER: CSRF_HEADER_VALUE},
    ) as c:
        yield c

    app.dependency_overrides.clear()
