"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import json
import time
import pytest
import sys
from pathlib import Path
from typing import Callable, Generator, Optional
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import fakeredis

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from app.main import app
from app.core.config import settings
from app.db.session import get_db
from app.models import Base
from app.models.user import User
from app.models.supplier import Supplier
from app.models.subscription import Subscription
from app.models.marketplace_ad import MarketplaceAd
from app.services.auth_service import create_user, create_session
from app.db import redis as redis_module


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

TEST_WEBHOOK_SECRET = "whsec_test_marketplace"
TEST_PASSWORD = "TestPassword123!"


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def mock_redis():
    """Session store backed by fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, '_client', fake_redis):
        yield fake_redis


@pytest.fixture(scope="function", autouse=True)
def webhook_secret():
    """Configure a known webhook secret so signatures are really verified"""
    with patch.object(settings, 'STRIPE_WEBHOOK_SECRET', TEST_WEBHOOK_SECRET):
        yield TEST_WEBHOOK_SECRET


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Tables come from the db_session fixture, not the production engine
        with patch('app.main.init_db'):
            with TestClient(app) as test_client:
                yield test_client
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# FACTORIES
# ============================================================================

@pytest.fixture(scope="function")
def admin_user(db_session: Session) -> User:
    return create_user("admin@example.com", TEST_PASSWORD, db_session, role="admin")


@pytest.fixture(scope="function")
def supplier_user(db_session: Session) -> User:
    return create_user("supplier@example.com", TEST_PASSWORD, db_session, role="supplier")


@pytest.fixture(scope="function")
def supplier(db_session: Session, supplier_user: User) -> Supplier:
    supplier = Supplier(user_id=supplier_user.id, company_name="Maison Test", kyc_status="verified")
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture(scope="function")
def make_subscription(db_session: Session) -> Callable[..., Subscription]:
    """Factory: subscription row for a supplier"""
    def _make(supplier: Supplier, status: str = "active", credits_total: int = 3, credits_used: int = 0,
              stripe_subscription_id: Optional[str] = "sub_test123",
              last_event_created: Optional[int] = None) -> Subscription:
        subscription = Subscription(
            supplier_id=supplier.id,
            plan_name="Publisher Pack",
            price_usd=50000,
            status=status,
            credits_total=credits_total,
            credits_used=credits_used,
            stripe_customer_id="cus_test123",
            stripe_subscription_id=stripe_subscription_id,
            last_event_created=last_event_created,
        )
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription
    return _make


@pytest.fixture(scope="function")
def make_ad(db_session: Session) -> Callable[..., MarketplaceAd]:
    """Factory: marketplace ad for a supplier"""
    counter = {"n": 0}

    def _make(supplier: Supplier, status: str = "pending", title: Optional[str] = None) -> MarketplaceAd:
        counter["n"] += 1
        ad = MarketplaceAd(
            supplier_id=supplier.id,
            title=title or f"Private yacht charter #{counter['n']}",
            short_desc="Seven nights along the Amalfi coast",
            status=status,
        )
        db_session.add(ad)
        db_session.commit()
        db_session.refresh(ad)
        return ad
    return _make


# ============================================================================
# AUTHENTICATED CLIENTS
# ============================================================================

def _login_as(client: TestClient, user: User) -> TestClient:
    session_id = create_session(user.id)
    client.cookies.set("session_id", session_id)
    return client


@pytest.fixture(scope="function")
def admin_client(client: TestClient, admin_user: User) -> TestClient:
    """Client with an admin session cookie"""
    return _login_as(client, admin_user)


@pytest.fixture(scope="function")
def supplier_client(client: TestClient, supplier_user: User) -> TestClient:
    """Client with a supplier session cookie"""
    return _login_as(client, supplier_user)


# ============================================================================
# STRIPE WEBHOOKS
# ============================================================================

def sign_stripe_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a stripe-signature header using Stripe's v1 scheme"""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture(scope="function")
def stripe_event() -> Callable[..., dict]:
    """Factory: Stripe event envelope"""
    counter = {"n": 0}

    def _make(event_type: str, data_object: dict, created: Optional[int] = None,
              event_id: Optional[str] = None) -> dict:
        counter["n"] += 1
        return {
            "id": event_id or f"evt_test_{counter['n']}",
            "object": "event",
            "type": event_type,
            "created": created if created is not None else int(time.time()),
            "livemode": False,
            "data": {"object": data_object},
        }
    return _make


@pytest.fixture(scope="function")
def send_webhook(client: TestClient) -> Callable[..., object]:
    """POST a signed event to the Stripe webhook endpoint"""
    def _send(event: dict, secret: str = TEST_WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={
                "stripe-signature": sign_stripe_payload(payload, secret),
                "content-type": "application/json",
            },
        )
    return _send


@pytest.fixture(scope="function")
def stripe_signature() -> Callable[..., str]:
    """Sign an arbitrary payload string (for tampering and wrong-secret tests)"""
    return sign_stripe_payload
