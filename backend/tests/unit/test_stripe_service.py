"""
Unit tests for StripeService against real Stripe objects.

Stripe API calls are patched to return StripeObject instances, and webhook
payloads are signed with a test secret and verified by the Stripe library.
"""

from unittest.mock import patch

import pytest
import stripe

from aura.domain.access import can_enter
from aura.domain.billing import SubscriptionActions, SubscriptionSync
from aura.domain.modes import CoachingMode
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.exceptions import PaymentError
from aura.infrastructure.payments.stripe_service import StripeService, payment_method_summary

from conftest import TEST_WEBHOOK_SECRET, sign_stripe_event


@pytest.fixture
def stripe_service():
    return StripeService(
        api_key=None,
        webhook_secret=TEST_WEBHOOK_SECRET,
        tier_prices={
            PremiumTier.BASIC: "price_basic",
            PremiumTier.PLUS: "price_plus",
            PremiumTier.MASTER: "price_master",
        },
    )


def stripe_subscription(**values):
    return stripe.Subscription.construct_from({"id": "sub_test", **values}, "sk_test")


class TestPlanOperations:

    @pytest.mark.asyncio
    async def test_cancel_keeps_past_due_status(self, stripe_service, store, plus_user):
        past_due = plus_user.model_copy(update={"subscription_status": SubscriptionStatus.PAST_DUE})
        await store.create(past_due)
        actions = SubscriptionActions(store, stripe_service)

        with patch("stripe.Subscription.modify", return_value=stripe_subscription(
            status="past_due", cancel_at_period_end=True,
        )) as modify:
            user = await actions.cancel(past_due)

        modify.assert_called_once_with("sub_test", cancel_at_period_end=True)
        assert user.subscription_status == SubscriptionStatus.PAST_DUE
        assert user.cancel_at_period_end is True
        assert not can_enter(CoachingMode.SHADOW, user)
        assert (await store.get(plus_user.id)).subscription_status == SubscriptionStatus.PAST_DUE

    @pytest.mark.asyncio
    async def test_resume_keeps_unpaid_status(self, stripe_service, store, plus_user):
        unpaid = plus_user.model_copy(update={
            "subscription_status": SubscriptionStatus.UNPAID,
            "current_mode": CoachingMode.SHADOW,
        })
        await store.create(unpaid)
        actions = SubscriptionActions(store, stripe_service)

        with patch("stripe.Subscription.modify", return_value=stripe_subscription(
            status="unpaid", cancel_at_period_end=False,
        )):
            user = await actions.resume(unpaid)

        assert user.subscription_status == SubscriptionStatus.UNPAID
        assert user.current_mode == CoachingMode.BASELINE
        assert not can_enter(CoachingMode.SHADOW, user)

    @pytest.mark.asyncio
    async def test_cancel_of_active_subscription_schedules_downgrade(self, stripe_service):
        with patch("stripe.Subscription.modify", return_value=stripe_subscription(
            status="active", cancel_at_period_end=True,
        )):
            update = await stripe_service.cancel_at_period_end("sub_test")

        assert update.status == SubscriptionStatus.DOWNGRADE_SCHEDULED
        assert update.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_resume_of_healthy_subscription_is_active(self, stripe_service):
        with patch("stripe.Subscription.modify", return_value=stripe_subscription(
            status="active", cancel_at_period_end=False,
        )):
            update = await stripe_service.resume("sub_test")

        assert update.status == SubscriptionStatus.ACTIVE_SUBSCRIPTION

    @pytest.mark.asyncio
    async def test_change_plan_reads_returned_subscription(self, stripe_service):
        current = stripe_subscription(
            status="active",
            items={"object": "list", "data": [{"id": "si_1", "price": {"id": "price_basic"}}]},
        )
        with patch("stripe.Subscription.retrieve", return_value=current), \
                patch("stripe.Subscription.modify", return_value=stripe_subscription(
                    status="past_due", cancel_at_period_end=False,
                )) as modify:
            update = await stripe_service.change_plan("sub_test", PremiumTier.PLUS)

        assert modify.call_args.kwargs["items"] == [{"id": "si_1", "price": "price_plus"}]
        assert update.tier == PremiumTier.PLUS
        assert update.status == SubscriptionStatus.PAST_DUE

    @pytest.mark.asyncio
    async def test_deleted_customer_is_replaced(self, stripe_service):
        deleted = stripe.Customer.construct_from({"id": "cus_old", "deleted": True}, "sk_test")
        created = stripe.Customer.construct_from({"id": "cus_new"}, "sk_test")

        with patch("stripe.Customer.retrieve", return_value=deleted), \
                patch("stripe.Customer.create", return_value=created):
            customer = await stripe_service.get_or_create_customer("user-1", "ada@example.com", "cus_old")

        assert customer.id == "cus_new"

    @pytest.mark.asyncio
    async def test_existing_customer_is_reused(self, stripe_service):
        existing = stripe.Customer.construct_from({"id": "cus_old"}, "sk_test")

        with patch("stripe.Customer.retrieve", return_value=existing), \
                patch("stripe.Customer.create") as create:
            customer = await stripe_service.get_or_create_customer("user-1", "ada@example.com", "cus_old")

        assert customer.id == "cus_old"
        create.assert_not_called()

    def test_payment_method_summary_from_stripe_object(self):
        payment_method = stripe.PaymentMethod.construct_from({
            "id": "pm_1",
            "card": {"brand": "visa", "last4": "4242", "exp_month": 3, "exp_year": 2031},
        }, "sk_test")

        summary = payment_method_summary(payment_method)

        assert summary.brand == "visa"
        assert summary.last4 == "4242"
        assert summary.expiry == "03/31"


class TestWebhookVerification:

    def test_signed_event_is_decoded_to_dicts(self, stripe_service):
        payload, signature = sign_stripe_event({
            "id": "evt_1",
            "object": "event",
            "type": "invoice.payment_failed",
            "data": {"object": {"customer": "cus_test", "metadata": {}}},
        })

        event = stripe_service.verify_webhook_signature(payload, signature)

        assert isinstance(event, dict)
        assert event["data"]["object"]["customer"] == "cus_test"

    def test_wrong_secret_is_rejected(self, stripe_service):
        payload, signature = sign_stripe_event({"id": "evt_1", "type": "ping"}, secret="whsec_other")

        with pytest.raises(PaymentError, match="Invalid signature"):
            stripe_service.verify_webhook_signature(payload, signature)

    def test_malformed_payload_is_rejected(self, stripe_service):
        payload, signature = sign_stripe_event({"id": "evt_1"})

        with pytest.raises(PaymentError):
            stripe_service.verify_webhook_signature(payload + b"}", signature)

    @pytest.mark.asyncio
    async def test_signed_checkout_activates_tier(self, stripe_service, store, accounts, free_user):
        await store.create(free_user)
        payload, signature = sign_stripe_event({
            "id": "evt_checkout",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_1",
                "object": "checkout.session",
                "customer": "cus_test",
                "subscription": "sub_test",
                "payment_status": "paid",
                "metadata": {"user_id": free_user.id, "kind": "subscription", "tier": "MASTER"},
            }},
        })
        sync = SubscriptionSync(store, stripe_service, accounts)

        outcome = await sync.apply(stripe_service.verify_webhook_signature(payload, signature))

        user = await store.get(free_user.id)
        assert outcome == "success"
        assert user.tier == PremiumTier.MASTER
        assert user.subscription_status == SubscriptionStatus.ACTIVE_SUBSCRIPTION
        assert user.subscription_id == "sub_test"

    @pytest.mark.asyncio
    async def test_signed_payment_failure_sets_past_due(self, stripe_service, store, accounts, plus_user):
        await store.create(plus_user)
        payload, signature = sign_stripe_event({
            "id": "evt_failed",
            "object": "event",
            "type": "invoice.payment_failed",
            "data": {"object": {
                "id": "in_1",
                "object": "invoice",
                "customer": "cus_test",
                "last_finalization_error": {"message": "Card declined"},
            }},
        })
        sync = SubscriptionSync(store, stripe_service, accounts)

        await sync.apply(stripe_service.verify_webhook_signature(payload, signature))

        user = await store.get(plus_user.id)
        assert user.subscription_status == SubscriptionStatus.PAST_DUE
        assert user.last_payment_failure_reason == "Card declined"
        assert not can_enter(CoachingMode.SHADOW, user)
