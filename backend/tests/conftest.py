"""
Test configuration and fixtures for Aura.

Provides shared fixtures for unit and integration tests. Environment is set
before the application is imported so Settings picks it up.
"""

import hashlib
import hmac
import json
import os
import time

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LLM_PROVIDER", "offline")
os.environ.setdefault("STORE_BACKEND", "local")
os.environ.setdefault("FIREBASE_PROJECT_ID", "aura-test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-for-hs256-tokens-0123456789")

import jwt
import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from aura.config.settings import get_settings
from aura.domain.accounts import AccountService
from aura.domain.billing import SubscriptionActions, SubscriptionSync
from aura.domain.conversation import ConversationOrchestrator
from aura.domain.models import UserProfile
from aura.domain.subscription import SubscriptionUpdate
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.ai.companion_ai import CompanionAI
from aura.infrastructure.auth import TokenVerifier
from aura.infrastructure.db.repositories import LocalDocumentStore
from aura.infrastructure.exceptions import ModelUnavailableError
from aura.services import ServiceContainer


TEST_PROJECT_ID = os.environ["FIREBASE_PROJECT_ID"]
TEST_JWT_SECRET = os.environ["AUTH_JWT_SECRET"]
TEST_WEBHOOK_SECRET = "whsec_test_secret"


def make_token(
    uid: str = "user-1",
    email: str = "ada@example.com",
    expires_in: int = 3600,
    secret: str = TEST_JWT_SECRET,
    **claims,
) -> str:
    """Mint an HS256 ID token the way the dev verifier expects it."""
    now = int(time.time())
    payload = {
        "sub": uid,
        "email": email,
        "email_verified": True,
        "iss": f"https://securetoken.google.com/{TEST_PROJECT_ID}",
        "aud": TEST_PROJECT_ID,
        "iat": now,
        "exp": now + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def sign_stripe_event(event: dict, secret: str = TEST_WEBHOOK_SECRET):
    """Serialize an event and build the Stripe-Signature header for it."""
    payload = json.dumps(event)
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return payload.encode("utf-8"), f"t={timestamp},v1={digest}"


# =============================================================================
# Collaborator Fixtures
# =============================================================================

@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return LocalDocumentStore()


@pytest.fixture
def mock_model():
    """Model client that is unavailable unless a test scripts it."""
    mock = MagicMock()
    mock.model_name = "mock-model"
    mock.generate = AsyncMock(side_effect=ModelUnavailableError("offline", model="mock-model"))
    return mock


@pytest.fixture
def companion(mock_model):
    return CompanionAI(mock_model, reply_timeout_seconds=2.0)


@pytest.fixture
def orchestrator(store, companion):
    return ConversationOrchestrator(store, companion)


@pytest.fixture
def accounts(store, orchestrator):
    return AccountService(store, orchestrator)


@pytest.fixture
def mock_payments():
    """Mock for StripeService."""
    mock = MagicMock()
    mock.get_or_create_customer = AsyncMock(return_value=MagicMock(id="cus_test"))
    mock.create_checkout_session = AsyncMock(
        return_value=MagicMock(id="cs_test", url="https://checkout.stripe.test/cs_test")
    )
    mock.create_coin_checkout_session = AsyncMock(
        return_value=MagicMock(id="cs_coins", url="https://checkout.stripe.test/cs_coins")
    )
    mock.create_portal_session = AsyncMock(
        return_value=MagicMock(url="https://billing.stripe.test/session")
    )
    mock.cancel_at_period_end = AsyncMock(return_value=SubscriptionUpdate(
        status=SubscriptionStatus.DOWNGRADE_SCHEDULED, cancel_at_period_end=True,
    ))
    mock.resume = AsyncMock(return_value=SubscriptionUpdate(
        status=SubscriptionStatus.ACTIVE_SUBSCRIPTION, cancel_at_period_end=False,
    ))
    mock.change_plan = AsyncMock()
    mock.cancel_immediately = AsyncMock(return_value=SubscriptionUpdate(
        status=SubscriptionStatus.CANCELLED, cancel_at_period_end=False, tier=PremiumTier.FREE,
    ))
    mock.update_payment_method = AsyncMock()
    mock.verify_webhook_signature = MagicMock()
    mock.tier_for_price = MagicMock(return_value=None)
    return mock


@pytest.fixture
def mock_identity():
    """Mock for IdentityService."""
    mock = MagicMock()
    mock.sign_up = AsyncMock()
    mock.sign_in = AsyncMock()
    mock.sign_in_with_google = AsyncMock()
    mock.send_password_reset = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def services(store, mock_model, companion, orchestrator, accounts, mock_payments, mock_identity):
    """Service container wired with the in-memory store and mocked externals."""
    return ServiceContainer(
        settings=get_settings(),
        store=store,
        model=mock_model,
        companion=companion,
        payments=mock_payments,
        identity=mock_identity,
        tokens=TokenVerifier(TEST_PROJECT_ID, TEST_JWT_SECRET),
        orchestrator=orchestrator,
        accounts=accounts,
        subscription_actions=SubscriptionActions(store, mock_payments),
        subscription_sync=SubscriptionSync(store, mock_payments, accounts),
    )


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(services):
    """FastAPI application bound to the test services."""
    from aura.main import create_app
    return create_app(get_settings(), services=services)


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client sharing the test's event loop."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def free_user():
    return UserProfile(id="user-1", email="ada@example.com", name="Ada", coins=100)


@pytest.fixture
def plus_user():
    return UserProfile(
        id="user-1",
        email="ada@example.com",
        name="Ada",
        coins=100,
        tier=PremiumTier.PLUS,
        subscription_status=SubscriptionStatus.ACTIVE_SUBSCRIPTION,
        stripe_customer_id="cus_test",
        subscription_id="sub_test",
    )


@pytest.fixture
def master_user():
    return UserProfile(
        id="user-1",
        email="ada@example.com",
        name="Ada",
        coins=100,
        tier=PremiumTier.MASTER,
        subscription_status=SubscriptionStatus.ACTIVE_SUBSCRIPTION,
        stripe_customer_id="cus_test",
        subscription_id="sub_test",
    )
