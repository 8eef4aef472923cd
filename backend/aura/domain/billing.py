"""
Billing Services

SubscriptionActions handles the user-initiated plan operations (cancel,
resume, payment method, plan change). SubscriptionSync applies Stripe
webhook events to profiles.

Both call the payment collaborator first and merge into the profile only
after it succeeds; a PaymentError leaves the profile untouched.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aura.domain.accounts import AccountService
from aura.domain.access import resolve_mode
from aura.domain.models import UserProfile
from aura.domain.subscription import SubscriptionUpdate
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.db.repositories import DocumentStore
from aura.infrastructure.exceptions import PaymentError
from aura.infrastructure.payments.stripe_service import StripeService, map_stripe_status


logger = logging.getLogger(__name__)


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


async def _merge(store: DocumentStore, user: UserProfile, fields: Dict[str, Any]) -> UserProfile:
    """Persist fields plus a re-resolved current mode, and return the merged profile."""
    updated = user.model_copy(update=fields)
    mode = resolve_mode(updated.current_mode, updated)
    if mode != updated.current_mode:
        fields = {**fields, "current_mode": mode}
        updated = updated.model_copy(update={"current_mode": mode})
    await store.put(user.id, fields)
    return updated


# =============================================================================
# User-initiated actions
# =============================================================================

class SubscriptionActions:
    """
    Plan operations invoked from the subscription portal.

    Args:
        store: Document store
        payments: Stripe service
    """

    def __init__(self, store: DocumentStore, payments: StripeService):
        self.store = store
        self.payments = payments

    def _require_subscription(self, user: UserProfile, operation: str) -> str:
        if not user.subscription_id:
            raise PaymentError("No active subscription on file", operation=operation)
        return user.subscription_id

    async def _apply(self, user: UserProfile, update: SubscriptionUpdate) -> UserProfile:
        return await _merge(self.store, user, update.to_fields())

    async def cancel(self, user: UserProfile) -> UserProfile:
        """Schedule cancellation at period end."""
        subscription_id = self._require_subscription(user, "cancel")
        update = await self.payments.cancel_at_period_end(subscription_id)
        logger.info(f"User {user.id} scheduled cancellation")
        return await self._apply(user, update)

    async def resume(self, user: UserProfile) -> UserProfile:
        """Undo a scheduled cancellation."""
        subscription_id = self._require_subscription(user, "resume")
        update = await self.payments.resume(subscription_id)
        logger.info(f"User {user.id} resumed subscription")
        return await self._apply(user, update)

    async def update_payment_method(self, user: UserProfile, payment_method_id: str) -> UserProfile:
        """Replace the default payment method."""
        if not user.stripe_customer_id:
            raise PaymentError("No billing account on file", operation="update_payment_method")

        summary = await self.payments.update_payment_method(
            user.stripe_customer_id,
            user.subscription_id,
            payment_method_id,
        )
        return await _merge(self.store, user, {
            "payment_method": summary,
            "last_payment_failure_reason": None,
        })

    async def change_plan(self, user: UserProfile, new_tier: PremiumTier) -> UserProfile:
        """
        Move the subscription to new_tier.

        FREE cancels the subscription immediately. A paid tier without a
        subscription on file raises PaymentError; the caller starts a
        checkout instead.
        """
        new_tier = PremiumTier(new_tier)
        subscription_id = self._require_subscription(user, "change_plan")

        if new_tier == PremiumTier.FREE:
            update = await self.payments.cancel_immediately(subscription_id)
            fields = {**update.to_fields(), "subscription_id": None}
            logger.info(f"User {user.id} downgraded to FREE")
            return await _merge(self.store, user, fields)

        update = await self.payments.change_plan(subscription_id, new_tier)
        logger.info(f"User {user.id} changed plan {user.tier.value} -> {new_tier.value}")
        return await self._apply(user, update)


# =============================================================================
# Webhook sync
# =============================================================================

class SubscriptionSync:
    """
    Applies Stripe webhook events to profiles.

    Events are idempotent through the store's processed-event ledger.
    """

    def __init__(self, store: DocumentStore, payments: StripeService, accounts: AccountService):
        self.store = store
        self.payments = payments
        self.accounts = accounts

    async def apply(self, event: Dict[str, Any]) -> str:
        """
        Apply one verified Stripe event, decoded to plain dicts.

        Returns:
            "already_processed", "success" or "ignored"
        """
        event_id = event["id"]
        event_type = event["type"]

        if await self.store.is_event_processed(event_id):
            logger.info(f"Event {event_id} already processed, skipping")
            return "already_processed"

        logger.info(f"Processing webhook event: {event_type} ({event_id})")
        obj = event["data"]["object"]

        handlers = {
            "checkout.session.completed": self.handle_checkout_completed,
            "invoice.payment_succeeded": self.handle_invoice_payment_succeeded,
            "invoice.payment_failed": self.handle_invoice_payment_failed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.debug(f"Unhandled event type: {event_type}")
            outcome = "ignored"
        else:
            await handler(obj)
            outcome = "success"

        await self.store.mark_event_processed(event_id, event_type)
        return outcome

    async def _user_for(self, obj) -> Optional[UserProfile]:
        metadata = obj.get("metadata") or {}
        user_id = metadata.get("user_id")
        if user_id:
            user = await self.store.get(user_id)
            if user:
                return user
        customer_id = obj.get("customer")
        if customer_id:
            return await self.store.find_by_customer(customer_id)
        return None

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def handle_checkout_completed(self, session) -> None:
        """Activate a subscription or credit a coin pack."""
        metadata = session.get("metadata") or {}
        user = await self._user_for(session)
        if user is None:
            logger.error("Checkout completed without a known user")
            return

        if metadata.get("kind") == "coins":
            if session.get("payment_status") not in (None, "paid"):
                logger.warning(f"Coin checkout for user {user.id} not paid yet")
                return
            amount = int(metadata.get("coins", 0))
            balance = await self.accounts.credit_coins(user.id, amount)
            logger.info(f"Coin pack purchase for user {user.id}, balance {balance}")
            return

        try:
            tier = PremiumTier(metadata.get("tier", PremiumTier.BASIC.value))
        except ValueError:
            tier = PremiumTier.BASIC

        await _merge(self.store, user, {
            "tier": tier,
            "subscription_status": SubscriptionStatus.ACTIVE_SUBSCRIPTION,
            "stripe_customer_id": session.get("customer"),
            "subscription_id": session.get("subscription"),
            "cancel_at_period_end": False,
            "trial_ends_at": None,
        })
        logger.info(f"Activated {tier.value} subscription for user {user.id}")

    async def handle_invoice_payment_succeeded(self, invoice) -> None:
        """Mark the subscription healthy and record the next billing date."""
        user = await self._user_for(invoice)
        if user is None:
            return

        status = (
            SubscriptionStatus.DOWNGRADE_SCHEDULED
            if user.cancel_at_period_end
            else SubscriptionStatus.ACTIVE_SUBSCRIPTION
        )
        fields: Dict[str, Any] = {
            "subscription_status": status,
            "last_payment_failure_reason": None,
        }
        lines = (invoice.get("lines") or {}).get("data") or []
        if lines:
            period_end = _timestamp((lines[0].get("period") or {}).get("end"))
            if period_end:
                fields["next_billing_date"] = period_end

        await _merge(self.store, user, fields)
        logger.info(f"Renewed subscription for user {user.id}")

    async def handle_invoice_payment_failed(self, invoice) -> None:
        """Set past_due and keep the failure reason for the portal."""
        user = await self._user_for(invoice)
        if user is None:
            return

        error = invoice.get("last_finalization_error") or {}
        reason = error.get("message") or "Payment failed"
        await _merge(self.store, user, {
            "subscription_status": SubscriptionStatus.PAST_DUE,
            "last_payment_failure_reason": reason,
        })
        logger.warning(f"Payment failed for user {user.id}, set to past_due")

    async def handle_subscription_updated(self, subscription) -> None:
        """Sync status, tier and period end."""
        user = await self._user_for(subscription)
        if user is None:
            return

        cancel_at_period_end = bool(subscription.get("cancel_at_period_end", False))
        fields: Dict[str, Any] = {
            "subscription_status": map_stripe_status(
                subscription.get("status", "active"), cancel_at_period_end
            ),
            "cancel_at_period_end": cancel_at_period_end,
            "subscription_id": subscription.get("id") or user.subscription_id,
        }

        items = (subscription.get("items") or {}).get("data") or []
        if items:
            price = items[0].get("price") or {}
            tier = self.payments.tier_for_price(price.get("id"))
            if tier:
                fields["tier"] = tier
            period_end = _timestamp(
                items[0].get("current_period_end") or subscription.get("current_period_end")
            )
        else:
            period_end = _timestamp(subscription.get("current_period_end"))
        if period_end:
            fields["next_billing_date"] = period_end

        await _merge(self.store, user, fields)
        logger.info(f"Synced subscription updates for user {user.id}")

    async def handle_subscription_deleted(self, subscription) -> None:
        """Downgrade to FREE."""
        user = await self._user_for(subscription)
        if user is None:
            return

        await _merge(self.store, user, {
            "tier": PremiumTier.FREE,
            "subscription_status": SubscriptionStatus.CANCELLED,
            "subscription_id": None,
            "cancel_at_period_end": False,
            "next_billing_date": None,
        })
        logger.info(f"Downgraded user {user.id} to free tier")
