"""
Shared test fixtures and utilities.

Every test runs against a fresh in-memory MockFirestore; nothing talks to
Firebase, Twilio or Nominatim.
"""

import pytest
from typing import Dict, List, Optional, Tuple
from unittest.mock import patch

from firebase_admin import auth as firebase_auth

from safety_alerts.config import firebase
from safety_alerts.config.mock_firestore import MockFirestore
from safety_alerts.core.settings import settings
from safety_alerts.models.user import AuthFlags, Principal, Role, Session, UserRecord, UserStatus
from safety_alerts.services import alert_service, phone_registry, role_resolver, sms_gateway, user_service
from safety_alerts.services.sms_gateway import NotificationDispatcher, SmsReceipt, SmsTransport, SmsTransportError


SUPERADMIN_EMAIL = "root@example.com"

# token -> decoded claims accepted by the patched verifier
TEST_TOKENS: Dict[str, Dict] = {
    "superadmin-token": {"uid": "root-1", "email": "Root@Example.com", "name": "Root"},
    "admin-token": {"uid": "admin-1", "email": "admin@example.com", "name": "Ada Admin"},
    "lagos-admin-token": {"uid": "lagos-1", "email": "lagos@example.com"},
    "blocked-admin-token": {"uid": "blocked-1", "email": "blocked@example.com"},
    "user-token": {"uid": "user-1", "email": "user@example.com"},
}


class FakeSmsTransport(SmsTransport):
    """Records sends; numbers in `failing` raise like a rejected provider call."""

    name = "fake"

    def __init__(self, failing=()):
        super().__init__("+15550000000")
        self.failing = set(failing)
        self.sent: List[Tuple[str, str]] = []

    def send(self, to: str, body: str) -> SmsReceipt:
        if to in self.failing:
            raise SmsTransportError(f"The 'To' number {to} is not a valid phone number.")
        self.sent.append((to, body))
        return SmsReceipt(provider_message_id=f"SM{len(self.sent):04d}", status="queued")


def make_session(
    uid: str = "admin-1",
    email: Optional[str] = "admin@example.com",
    role: Role = Role.ADMIN,
    regions: Optional[List[str]] = None,
    status: UserStatus = UserStatus.ACTIVE,
) -> Session:
    """Build a resolved session without touching the store."""
    user = UserRecord(uid=uid, email=email, role=role, status=status, assigned_regions=regions or [])
    return Session(
        principal=Principal(uid=uid, email=email),
        user=user,
        role=role,
        flags=AuthFlags.for_role(role, status),
    )


def fake_verify_id_token(id_token: str) -> Dict:
    if id_token not in TEST_TOKENS:
        raise firebase_auth.InvalidIdTokenError("Could not verify token signature.")
    return dict(TEST_TOKENS[id_token])


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings for every test."""
    monkeypatch.setattr(settings, "SUPERADMIN_EMAIL", SUPERADMIN_EMAIL)
    monkeypatch.setattr(settings, "SMS_PROVIDER", "simulation")
    monkeypatch.setattr(settings, "GEOCODING_ENABLED", False)
    monkeypatch.setattr(settings, "ALLOW_ANONYMOUS_VOTES", True)
    monkeypatch.setattr(settings, "ALERT_SMS_ON_CREATE", True)
    monkeypatch.setattr(settings, "ALERT_DEFAULT_TTL_MINUTES", 15)
    monkeypatch.setattr(settings, "ALERT_MIN_TTL_MINUTES", 1)
    monkeypatch.setattr(settings, "ALERT_MAX_TTL_MINUTES", 720)
    return settings


@pytest.fixture
def db() -> MockFirestore:
    return MockFirestore()


@pytest.fixture
def transport() -> FakeSmsTransport:
    return FakeSmsTransport()


@pytest.fixture
def dispatcher(db, transport) -> NotificationDispatcher:
    return NotificationDispatcher(transport=transport, db=db)


@pytest.fixture
def registry(db) -> phone_registry.PhoneRegistry:
    return phone_registry.PhoneRegistry(db=db)


@pytest.fixture
def service(db, dispatcher, registry) -> alert_service.AlertService:
    return alert_service.AlertService(db=db, dispatcher=dispatcher, phone_registry=registry, geocoder=None)


@pytest.fixture
def admin_session() -> Session:
    return make_session()


@pytest.fixture
def superadmin_session() -> Session:
    return make_session(uid="root-1", email=SUPERADMIN_EMAIL, role=Role.SUPERADMIN)


@pytest.fixture
def user_session() -> Session:
    return make_session(uid="user-1", email="user@example.com", role=Role.USER)


def seed_users(db: MockFirestore) -> None:
    """Stored records matching TEST_TOKENS."""
    records = [
        UserRecord(uid="root-1", email="root@example.com", role=Role.USER),
        UserRecord(uid="admin-1", email="admin@example.com", display_name="Ada Admin", role=Role.ADMIN),
        UserRecord(uid="lagos-1", email="lagos@example.com", role=Role.ADMIN, assigned_regions=["Lagos"]),
        UserRecord(uid="blocked-1", email="blocked@example.com", role=Role.ADMIN, status=UserStatus.BLOCKED),
        UserRecord(uid="user-1", email="user@example.com", role=Role.USER),
    ]
    for record in records:
        db.collection("users").document(record.uid).set(record.to_doc())


@pytest.fixture
def app_env(db, transport, monkeypatch):
    """
    Point the application singletons at the mock store and the fake SMS
    transport, and accept the tokens in TEST_TOKENS.
    """
    from safety_alerts.dependencies import reset_known_sessions

    seed_users(db)
    monkeypatch.setattr(firebase, "db", db)
    monkeypatch.setattr(role_resolver, "_role_resolver", None)
    monkeypatch.setattr(user_service, "_user_service", None)
    monkeypatch.setattr(phone_registry, "_phone_registry", None)
    monkeypatch.setattr(alert_service, "_alert_service", None)
    monkeypatch.setattr(sms_gateway, "_dispatcher", NotificationDispatcher(transport=transport, db=db))
    reset_known_sessions()

    with patch("safety_alerts.config.firebase.verify_id_token", side_effect=fake_verify_id_token):
        yield db

    reset_known_sessions()


@pytest.fixture
def client(app_env):
    from fastapi.testclient import TestClient
    from safety_alerts.main import app

    return TestClient(app)
