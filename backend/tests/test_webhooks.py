"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400)
- Successful event processing
- Idempotency (prevent double processing)
- Processing failures answer 500 so Stripe retries
"""

import pytest
from unittest.mock import AsyncMock

from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.exceptions import PaymentError
from aura.infrastructure.payments.stripe_service import StripeService

from conftest import TEST_WEBHOOK_SECRET, sign_stripe_event


def checkout_event(event_id, user_id="user-1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_123",
                "customer": "cus_test",
                "subscription": "sub_test",
                "metadata": {"user_id": user_id, "kind": "subscription", "tier": "MASTER"},
            }
        },
    }


class TestStripeWebhooks:

    def test_webhook_missing_signature(self, client):
        """Webhook without signature header should fail 400."""
        response = client.post("/api/webhooks/stripe", json={"id": "evt_123"})
        assert response.status_code == 400
        assert "Missing Stripe signature" in response.json()["detail"]

    def test_webhook_invalid_signature(self, client, mock_payments):
        """Webhook with invalid signature should fail 400."""
        mock_payments.verify_webhook_signature.side_effect = PaymentError("Bad sig")

        response = client.post(
            "/api/webhooks/stripe",
            json={"id": "evt_123"},
            headers={"stripe-signature": "invalid_sig"},
        )
        assert response.status_code == 400
        assert "Invalid signature" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_webhook_success_checkout(self, async_client, store, free_user, mock_payments):
        """Valid checkout.session.completed event should upgrade the profile."""
        await store.create(free_user)
        mock_payments.verify_webhook_signature.return_value = checkout_event("evt_checkout_ok")

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_sig"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        user = await store.get("user-1")
        assert user.tier == PremiumTier.MASTER
        assert user.subscription_status == SubscriptionStatus.ACTIVE_SUBSCRIPTION
        assert await store.is_event_processed("evt_checkout_ok")

    @pytest.mark.asyncio
    async def test_webhook_idempotency(self, async_client, store, free_user, mock_payments):
        """Duplicate event should return 'already_processed' and skip logic."""
        await store.create(free_user)
        await store.mark_event_processed("evt_duplicate", "checkout.session.completed")
        mock_payments.verify_webhook_signature.return_value = checkout_event("evt_duplicate")

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_sig"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "already_processed"}
        assert (await store.get("user-1")).tier == PremiumTier.FREE

    @pytest.mark.asyncio
    async def test_webhook_unhandled_type(self, async_client, mock_payments):
        mock_payments.verify_webhook_signature.return_value = {
            "id": "evt_other",
            "type": "customer.created",
            "data": {"object": {}},
        }

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_sig"},
        )

        assert response.json() == {"status": "ignored"}

    @pytest.mark.asyncio
    async def test_webhook_processing_failure(self, async_client, services, store, mock_payments):
        """A failing handler answers 500 and leaves the event unmarked."""
        mock_payments.verify_webhook_signature.return_value = checkout_event("evt_fail")
        services.subscription_sync.handle_checkout_completed = AsyncMock(
            side_effect=RuntimeError("db down")
        )

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_sig"},
        )

        assert response.status_code == 500
        assert not await store.is_event_processed("evt_fail")

    @pytest.mark.asyncio
    async def test_signed_event_through_stripe_library(self, async_client, services, store, free_user):
        """A correctly signed payload is verified by Stripe and applied."""
        await store.create(free_user)
        services.payments = StripeService(api_key=None, webhook_secret=TEST_WEBHOOK_SECRET)
        payload, signature = sign_stripe_event(checkout_event("evt_signed"))

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": signature, "content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        assert (await store.get("user-1")).tier == PremiumTier.MASTER
        assert await store.is_event_processed("evt_signed")

    @pytest.mark.asyncio
    async def test_tampered_payload_rejected(self, async_client, services):
        services.payments = StripeService(api_key=None, webhook_secret=TEST_WEBHOOK_SECRET)
        payload, signature = sign_stripe_event(checkout_event("evt_tampered"))

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=payload.replace(b"MASTER", b"PLUS"),
            headers={"stripe-signature": signature},
        )

        assert response.status_code == 400
