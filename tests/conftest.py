# tests/conftest.py
import pytest
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from tradelink.main import app
from tradelink.db import database
from tradelink.db.database import Base
from tradelink.auth.clerk import AuthenticatedUser

# Import models so metadata knows about all tables
import tradelink.models  # noqa: F401

CONTRACTOR_ID = "user_contractor_1"
CONTRACTOR_EMAIL = "pro@riverahvac.com"
HOMEOWNER_ID = "user_homeowner_1"
HOMEOWNER_EMAIL = "a@x.com"


@pytest.fixture(scope="session")
def engine():
    """Create an in-memory SQLite database shared across tests."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_db(engine):
    """Reset all tables before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


@pytest.fixture()
def db(session_factory):
    """Return a new SQLAlchemy session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def other_db(session_factory):
    """A second session, standing in for a concurrent caller."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _sample_records(count=3):
    return [
        {
            "item": f"Item {i + 1}",
            "category": "HVAC",
            "brand": "Carrier",
            "cost": 100.0 * (i + 1),
        }
        for i in range(count)
    ]


@pytest.fixture
def make_invitation(db):
    """Create an invitation through the service; age it with age_days."""
    from tradelink.models.mixins import utcnow
    from tradelink.services.invitation_service import InvitationService

    def _make(
        records=None,
        recipient_email=None,
        contractor_id=None,
        contractor_email=CONTRACTOR_EMAIL,
        company="Rivera HVAC",
        age_days=None,
    ):
        created = InvitationService(db).create_invitation(
            contractor_info={"name": "Sam Rivera", "company": company, "phone": "555-0100", "email": contractor_email},
            records=records if records is not None else _sample_records(),
            recipient_email=recipient_email,
            contractor_id=contractor_id,
        )
        if age_days is not None:
            created.invitation.created_at = utcnow() - timedelta(days=age_days)
            db.commit()
            db.refresh(created.invitation)
        return created

    return _make


@pytest.fixture
def home(db):
    """A destination property owned by the default homeowner."""
    from tradelink.services.property_service import PropertyService

    return PropertyService(db).create_property(HOMEOWNER_ID, "Main House", "1 Elm St")


@pytest.fixture
def current_user():
    """Mutable holder for the identity the auth overrides return."""
    return {"user": AuthenticatedUser(user_id=HOMEOWNER_ID, email=HOMEOWNER_EMAIL, name="Alex Homeowner")}


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outbound email instead of talking to SMTP."""
    from tradelink.services.email_service import EmailService

    sent = []

    def fake_send(self, to, subject, html_body):
        sent.append({"to": to, "subject": subject, "html_body": html_body})
        return True

    monkeypatch.setattr(EmailService, "_send_email", fake_send)
    return sent


@pytest.fixture
def client(db, session_factory, current_user, sent_emails, monkeypatch):
    """FastAPI test client that routes all DB deps to the test session."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_current_user():
        return current_user["user"]

    async def override_get_current_user_id():
        return current_user["user"].user_id

    from tradelink.db.database import get_db as db_get_db
    from tradelink.auth.clerk import get_current_user, get_current_user_id

    app.dependency_overrides[db_get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id

    # Background tasks open their own sessions
    monkeypatch.setattr(database, "SessionLocal", session_factory)

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sample_records():
    """Factory for import candidates with costs 100, 200, 300, ..."""
    return _sample_records


@pytest.fixture(scope="session")
def clerk_keys():
    """An RSA key pair standing in for the Clerk instance's signing key: (private_pem, public_pem)."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


@pytest.fixture
def clerk_token(clerk_keys, monkeypatch):
    """Configure the app with the test public key and return a signer for session tokens."""
    from jose import jwt

    private_pem, public_pem = clerk_keys
    monkeypatch.setattr("tradelink.auth.clerk.CLERK_JWT_KEY", public_pem)

    def _sign(**claims):
        return jwt.encode(claims, private_pem, algorithm="RS256")

    return _sign
