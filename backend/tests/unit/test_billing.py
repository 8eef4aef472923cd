"""
Unit tests for SubscriptionActions and SubscriptionSync.
"""

from unittest.mock import AsyncMock

import pytest

from aura.domain.billing import SubscriptionActions, SubscriptionSync
from aura.domain.models import PaymentMethodSummary
from aura.domain.modes import CoachingMode
from aura.domain.subscription import SubscriptionUpdate
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.exceptions import PaymentError


@pytest.fixture
def actions(store, mock_payments):
    return SubscriptionActions(store, mock_payments)


@pytest.fixture
def sync(store, mock_payments, accounts):
    return SubscriptionSync(store, mock_payments, accounts)


def event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


class TestSubscriptionActions:

    @pytest.mark.asyncio
    async def test_cancel_schedules_downgrade(self, actions, store, plus_user, mock_payments):
        await store.create(plus_user)

        user = await actions.cancel(plus_user)

        mock_payments.cancel_at_period_end.assert_awaited_once_with("sub_test")
        assert user.subscription_status == SubscriptionStatus.DOWNGRADE_SCHEDULED
        assert user.cancel_at_period_end is True
        stored = await store.get(plus_user.id)
        assert stored.subscription_status == SubscriptionStatus.DOWNGRADE_SCHEDULED
        assert stored.tier == PremiumTier.PLUS

    @pytest.mark.asyncio
    async def test_resume(self, actions, store, plus_user):
        scheduled = plus_user.model_copy(update={
            "subscription_status": SubscriptionStatus.DOWNGRADE_SCHEDULED,
            "cancel_at_period_end": True,
        })
        await store.create(scheduled)

        user = await actions.resume(scheduled)

        assert user.subscription_status == SubscriptionStatus.ACTIVE_SUBSCRIPTION
        assert (await store.get(plus_user.id)).cancel_at_period_end is False

    @pytest.mark.asyncio
    async def test_payment_failure_leaves_profile_untouched(
        self, actions, store, plus_user, mock_payments
    ):
        await store.create(plus_user)
        mock_payments.cancel_at_period_end.side_effect = PaymentError("Card declined", operation="cancel")

        with pytest.raises(PaymentError):
            await actions.cancel(plus_user)

        assert (await store.get(plus_user.id)).model_dump() == plus_user.model_dump()

    @pytest.mark.asyncio
    async def test_requires_subscription(self, actions, free_user, mock_payments):
        with pytest.raises(PaymentError):
            await actions.cancel(free_user)
        mock_payments.cancel_at_period_end.assert_not_called()

    @pytest.mark.asyncio
    async def test_change_plan_to_free_resets_mode(self, actions, store, master_user, mock_payments):
        in_meta = master_user.model_copy(update={"current_mode": CoachingMode.META})
        await store.create(in_meta)

        user = await actions.change_plan(in_meta, PremiumTier.FREE)

        mock_payments.cancel_immediately.assert_awaited_once_with("sub_test")
        assert user.tier == PremiumTier.FREE
        assert user.current_mode == CoachingMode.BASELINE
        stored = await store.get(master_user.id)
        assert stored.current_mode == CoachingMode.BASELINE
        assert stored.subscription_id is None

    @pytest.mark.asyncio
    async def test_change_plan_between_paid_tiers(self, actions, store, plus_user, mock_payments):
        await store.create(plus_user)
        mock_payments.change_plan.return_value = SubscriptionUpdate(
            status=SubscriptionStatus.ACTIVE_SUBSCRIPTION,
            cancel_at_period_end=False,
            tier=PremiumTier.MASTER,
        )

        user = await actions.change_plan(plus_user, PremiumTier.MASTER)

        mock_payments.change_plan.assert_awaited_once_with("sub_test", PremiumTier.MASTER)
        assert user.tier == PremiumTier.MASTER
        assert (await store.get(plus_user.id)).tier == PremiumTier.MASTER

    @pytest.mark.asyncio
    async def test_change_plan_without_subscription_raises(self, actions, free_user):
        with pytest.raises(PaymentError):
            await actions.change_plan(free_user, PremiumTier.PLUS)

    @pytest.mark.asyncio
    async def test_update_payment_method(self, actions, store, plus_user, mock_payments):
        await store.create(plus_user.model_copy(update={"last_payment_failure_reason": "declined"}))
        summary = PaymentMethodSummary(id="pm_new", brand="visa", last4="4242", expiry="12/30")
        mock_payments.update_payment_method.return_value = summary

        user = await actions.update_payment_method(plus_user, "pm_new")

        mock_payments.update_payment_method.assert_awaited_once_with("cus_test", "sub_test", "pm_new")
        assert user.payment_method == summary
        stored = await store.get(plus_user.id)
        assert stored.payment_method.last4 == "4242"
        assert stored.last_payment_failure_reason is None


class TestSubscriptionSync:

    @pytest.mark.asyncio
    async def test_checkout_activates_subscription(self, sync, store, free_user):
        await store.create(free_user)

        outcome = await sync.apply(event("evt_1", "checkout.session.completed", {
            "customer": "cus_new",
            "subscription": "sub_new",
            "metadata": {"user_id": free_user.id, "kind": "subscription", "tier": "PLUS"},
        }))

        assert outcome == "success"
        stored = await store.get(free_user.id)
        assert stored.tier == PremiumTier.PLUS
        assert stored.subscription_status == SubscriptionStatus.ACTIVE_SUBSCRIPTION
        assert stored.stripe_customer_id == "cus_new"
        assert stored.subscription_id == "sub_new"

    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(self, sync, store, free_user):
        await store.create(free_user)
        payload = event("evt_dup", "checkout.session.completed", {
            "metadata": {"user_id": free_user.id, "kind": "coins", "coins": "500"},
            "payment_status": "paid",
        })

        assert await sync.apply(payload) == "success"
        assert await sync.apply(payload) == "already_processed"
        assert (await store.get(free_user.id)).coins == free_user.coins + 500

    @pytest.mark.asyncio
    async def test_unpaid_coin_checkout_credits_nothing(self, sync, store, free_user):
        await store.create(free_user)

        await sync.apply(event("evt_unpaid", "checkout.session.completed", {
            "metadata": {"user_id": free_user.id, "kind": "coins", "coins": "100"},
            "payment_status": "unpaid",
        }))

        assert (await store.get(free_user.id)).coins == free_user.coins

    @pytest.mark.asyncio
    async def test_payment_failed_sets_past_due(self, sync, store, plus_user):
        in_shadow = plus_user.model_copy(update={"current_mode": CoachingMode.SHADOW})
        await store.create(in_shadow)

        await sync.apply(event("evt_fail", "invoice.payment_failed", {
            "customer": "cus_test",
            "last_finalization_error": {"message": "Your card was declined."},
        }))

        stored = await store.get(plus_user.id)
        assert stored.subscription_status == SubscriptionStatus.PAST_DUE
        assert stored.tier == PremiumTier.PLUS
        assert stored.last_payment_failure_reason == "Your card was declined."
        assert stored.current_mode == CoachingMode.BASELINE

    @pytest.mark.asyncio
    async def test_payment_succeeded_records_period_end(self, sync, store, plus_user):
        await store.create(plus_user.model_copy(update={
            "subscription_status": SubscriptionStatus.PAST_DUE,
        }))

        await sync.apply(event("evt_paid", "invoice.payment_succeeded", {
            "customer": "cus_test",
            "lines": {"data": [{"period": {"end": 1893456000}}]},
        }))

        stored = await store.get(plus_user.id)
        assert stored.subscription_status == SubscriptionStatus.ACTIVE_SUBSCRIPTION
        assert stored.next_billing_date.year == 2030

    @pytest.mark.asyncio
    async def test_subscription_updated_maps_status_and_tier(
        self, sync, store, plus_user, mock_payments
    ):
        await store.create(plus_user)
        mock_payments.tier_for_price.return_value = PremiumTier.MASTER

        await sync.apply(event("evt_upd", "customer.subscription.updated", {
            "id": "sub_test",
            "customer": "cus_test",
            "status": "active",
            "cancel_at_period_end": True,
            "items": {"data": [{"price": {"id": "price_master"}, "current_period_end": 1893456000}]},
        }))

        stored = await store.get(plus_user.id)
        assert stored.tier == PremiumTier.MASTER
        assert stored.subscription_status == SubscriptionStatus.DOWNGRADE_SCHEDULED
        assert stored.cancel_at_period_end is True

    @pytest.mark.asyncio
    async def test_subscription_deleted_downgrades(self, sync, store, master_user):
        await store.create(master_user.model_copy(update={"current_mode": CoachingMode.META}))

        await sync.apply(event("evt_del", "customer.subscription.deleted", {
            "id": "sub_test",
            "customer": "cus_test",
        }))

        stored = await store.get(master_user.id)
        assert stored.tier == PremiumTier.FREE
        assert stored.subscription_status == SubscriptionStatus.CANCELLED
        assert stored.subscription_id is None
        assert stored.current_mode == CoachingMode.BASELINE

    @pytest.mark.asyncio
    async def test_unknown_event_is_ignored_but_recorded(self, sync, store):
        assert await sync.apply(event("evt_x", "customer.created", {})) == "ignored"
        assert await store.is_event_processed("evt_x")

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_mark_processed(self, sync, store, free_user):
        await store.create(free_user)
        sync.accounts.credit_coins = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await sync.apply(event("evt_boom", "checkout.session.completed", {
                "metadata": {"user_id": free_user.id, "kind": "coins", "coins": "100"},
            }))

        assert not await store.is_event_processed("evt_boom")
