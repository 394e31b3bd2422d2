from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from borderdesk.main import app
from borderdesk.database import Base, get_db
from borderdesk.models import (
    Actor,
    AIVerification,
    Application,
    ApplicationStatus,
    DocumentType,
    UserRole,
)
from borderdesk.services.auth import AuthService

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", user_name="Alice Admin", role=UserRole.ADMIN)


@pytest.fixture
def staff():
    return Actor(user_id="staff-1", user_name="Sam Staff", role=UserRole.STAFF)


def auth_headers(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {AuthService.create_access_token(actor)}"}


def make_application(db, **overrides) -> Application:
    fields = dict(
        tracking_id=Application.generate_tracking_id(),
        status=ApplicationStatus.PENDING.value,
        customer_name="Test Customer",
        customer_email="customer@example.com",
        route_origin="Johor Bahru",
        route_destination="Singapore",
        travel_start=date(2026, 12, 1),
        travel_end=date(2026, 12, 5),
        total_price_cents=15000,
    )
    fields.update(overrides)
    application = Application(**fields)
    db.add(application)
    db.commit()
    db.refresh(application)
    return application


def make_verification(db, application: Application, confidence: float, **overrides) -> AIVerification:
    """An untriaged verification record, as the OCR service would leave it."""
    fields = dict(
        application_id=application.id,
        document_type=DocumentType.PASSPORT.value,
        extracted_fields=[{"label": "Full Name", "value": "Test Customer", "confidence": confidence}],
        overall_confidence=confidence,
        verified_by_ai=False,
        reviewed_by_staff=False,
        flagged=False,
        re_upload_requested=False,
    )
    fields.update(overrides)
    verification = AIVerification(**fields)
    db.add(verification)
    db.commit()
    db.refresh(verification)
    return verification


@pytest.fixture
def application(db):
    return make_application(db)
