"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles customers, subscription and coin-pack checkout, the billing portal,
plan management and webhook verification.

- Hosted Checkout for minimal PCI burden
- Customer Portal for self-service billing
- Plan operations return a SubscriptionUpdate for the profile merge
"""

import json
import logging
from typing import Any, Dict, Optional
import stripe
from stripe import StripeError

from aura.domain.models import PaymentMethodSummary
from aura.domain.subscription import COIN_PACKS, CoinPack, SubscriptionUpdate
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.exceptions import PaymentError


logger = logging.getLogger(__name__)


# Stripe subscription.status -> SubscriptionStatus
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE_SUBSCRIPTION,
    "trialing": SubscriptionStatus.TRIAL_ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELLED,
}


def map_stripe_status(stripe_status: str, cancel_at_period_end: bool = False) -> SubscriptionStatus:
    """Translate a Stripe subscription status into a SubscriptionStatus."""
    status = STRIPE_STATUS_MAP.get(stripe_status, SubscriptionStatus.INCOMPLETE)
    if status == SubscriptionStatus.ACTIVE_SUBSCRIPTION and cancel_at_period_end:
        return SubscriptionStatus.DOWNGRADE_SCHEDULED
    return status


def stripe_field(resource, key: str, default=None):
    """
    Read a field from a Stripe resource or a plain dict.

    StripeObject supports subscript access but not the dict API.
    """
    if resource is None:
        return default
    try:
        value = resource[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def subscription_update(subscription, tier: Optional[PremiumTier] = None) -> SubscriptionUpdate:
    """Profile update reflecting the subscription Stripe returned."""
    cancel_at_period_end = bool(stripe_field(subscription, "cancel_at_period_end", False))
    return SubscriptionUpdate(
        status=map_stripe_status(stripe_field(subscription, "status", "active"), cancel_at_period_end),
        cancel_at_period_end=cancel_at_period_end,
        tier=tier,
    )


def payment_method_summary(payment_method) -> PaymentMethodSummary:
    """Non-sensitive view of a Stripe PaymentMethod."""
    card = stripe_field(payment_method, "card")
    expiry = None
    exp_month = stripe_field(card, "exp_month")
    exp_year = stripe_field(card, "exp_year")
    if exp_month and exp_year:
        expiry = f"{int(exp_month):02d}/{str(exp_year)[-2:]}"
    return PaymentMethodSummary(
        id=payment_method["id"],
        type="card",
        brand=stripe_field(card, "brand", ""),
        last4=stripe_field(card, "last4", ""),
        expiry=expiry,
    )


class StripeService:
    """
    Stripe payment processing service.

    Methods raise PaymentError with Stripe's user-facing message on failure.
    """

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str],
        tier_prices: Optional[Dict[PremiumTier, Optional[str]]] = None,
        coin_prices: Optional[Dict[CoinPack, Optional[str]]] = None,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret

        if self._api_key:
            stripe.api_key = self._api_key

        self._tier_prices = {k: v for k, v in (tier_prices or {}).items() if v}
        self._coin_prices = {k: v for k, v in (coin_prices or {}).items() if v}

    @classmethod
    def from_settings(cls, settings) -> "StripeService":
        return cls(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            tier_prices={
                PremiumTier.BASIC: settings.stripe_price_id_basic,
                PremiumTier.PLUS: settings.stripe_price_id_plus,
                PremiumTier.MASTER: settings.stripe_price_id_master,
            },
            coin_prices={
                CoinPack.SMALL: settings.stripe_price_id_coins_100,
                CoinPack.MEDIUM: settings.stripe_price_id_coins_500,
                CoinPack.LARGE: settings.stripe_price_id_coins_1200,
            },
        )

    def _get_price_id(self, tier: PremiumTier) -> str:
        """Get Stripe Price ID for a paid tier."""
        price_id = self._tier_prices.get(PremiumTier(tier))
        if not price_id:
            raise PaymentError(f"No price configured for {PremiumTier(tier).value}", operation="price")
        return price_id

    def tier_for_price(self, price_id: Optional[str]) -> Optional[PremiumTier]:
        """Reverse lookup of a tier from its Stripe Price ID."""
        for tier, configured in self._tier_prices.items():
            if configured == price_id:
                return tier
        return None

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(
        self,
        user_id: str,
        email: Optional[str],
        name: Optional[str] = None,
    ) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts
            name: Optional customer name

        Returns:
            stripe.Customer object
        """
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name or None,
                metadata={
                    "user_id": user_id,
                    "source": "aura",
                },
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise PaymentError(
                f"Failed to create customer: {e.user_message or e}",
                operation="create_customer",
                original_error=e,
            )

    async def get_or_create_customer(
        self,
        user_id: str,
        email: Optional[str],
        existing_customer_id: Optional[str] = None,
    ) -> stripe.Customer:
        """Get existing customer or create new one."""
        if existing_customer_id:
            try:
                customer = stripe.Customer.retrieve(existing_customer_id)
                if not stripe_field(customer, "deleted", False):
                    return customer
            except StripeError:
                logger.warning(f"Customer {existing_customer_id} not found, creating new")

        return await self.create_customer(user_id, email)

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        tier: PremiumTier,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> stripe.checkout.Session:
        """
        Create a Stripe Checkout Session for a tier subscription.

        Args:
            customer_id: Stripe customer ID
            tier: Paid tier to purchase
            success_url: Redirect after successful payment
            cancel_url: Redirect after cancelled payment
            user_id: Internal user ID for metadata

        Returns:
            stripe.checkout.Session with checkout URL
        """
        tier = PremiumTier(tier)
        price_id = self._get_price_id(tier)

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                metadata={
                    "user_id": user_id,
                    "kind": "subscription",
                    "tier": tier.value,
                },
                subscription_data={
                    "metadata": {
                        "user_id": user_id,
                        "tier": tier.value,
                    },
                },
            )

            logger.info(f"Created checkout session {session.id} for user {user_id}, tier={tier.value}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise PaymentError(
                f"Failed to create checkout: {e.user_message or e}",
                operation="checkout",
                original_error=e,
            )

    async def create_coin_checkout_session(
        self,
        customer_id: str,
        pack: CoinPack,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> stripe.checkout.Session:
        """One-off payment checkout for a coin pack."""
        pack = CoinPack(pack)
        price_id = self._coin_prices.get(pack)
        if not price_id:
            raise PaymentError(f"No price configured for {pack.value}", operation="price")

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                mode="payment",
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                metadata={
                    "user_id": user_id,
                    "kind": "coins",
                    "pack": pack.value,
                    "coins": str(COIN_PACKS[pack]["coins"]),
                },
            )
            logger.info(f"Created coin checkout {session.id} for user {user_id}, pack={pack.value}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create coin checkout: {e}")
            raise PaymentError(
                f"Failed to create checkout: {e.user_message or e}",
                operation="coin_checkout",
                original_error=e,
            )

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> stripe.billing_portal.Session:
        """Create a Billing Portal session for self-service management."""
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
            )

            logger.info(f"Created portal session for customer {customer_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise PaymentError(
                f"Failed to create portal: {e.user_message or e}",
                operation="portal",
                original_error=e,
            )

    # =========================================================================
    # Subscription Management
    # =========================================================================

    async def get_subscription(
        self,
        subscription_id: str,
    ) -> Optional[stripe.Subscription]:
        """Retrieve a subscription by ID, or None if not found."""
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            return None

    async def cancel_at_period_end(self, subscription_id: str) -> SubscriptionUpdate:
        """Schedule cancellation at the end of the paid period."""
        try:
            updated = stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise PaymentError(
                f"Failed to cancel: {e.user_message or e}",
                operation="cancel",
                original_error=e,
            )

        logger.info(f"Scheduled cancellation of subscription {subscription_id}")
        return subscription_update(updated)

    async def resume(self, subscription_id: str) -> SubscriptionUpdate:
        """Undo a scheduled cancellation."""
        try:
            updated = stripe.Subscription.modify(subscription_id, cancel_at_period_end=False)
        except StripeError as e:
            logger.error(f"Failed to resume subscription: {e}")
            raise PaymentError(
                f"Failed to resume: {e.user_message or e}",
                operation="resume",
                original_error=e,
            )

        logger.info(f"Resumed subscription {subscription_id}")
        return subscription_update(updated)

    async def change_plan(self, subscription_id: str, tier: PremiumTier) -> SubscriptionUpdate:
        """Swap the subscription's price to another paid tier."""
        tier = PremiumTier(tier)
        price_id = self._get_price_id(tier)

        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
            item_id = subscription["items"]["data"][0]["id"]
            updated = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                cancel_at_period_end=False,
                proration_behavior="create_prorations",
                metadata={"tier": tier.value},
            )
        except StripeError as e:
            logger.error(f"Failed to change plan: {e}")
            raise PaymentError(
                f"Failed to change plan: {e.user_message or e}",
                operation="change_plan",
                original_error=e,
            )

        logger.info(f"Changed subscription {subscription_id} to {tier.value}")
        return subscription_update(updated, tier=tier)

    async def cancel_immediately(self, subscription_id: str) -> SubscriptionUpdate:
        """End the subscription now."""
        try:
            stripe.Subscription.cancel(subscription_id)
        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise PaymentError(
                f"Failed to cancel: {e.user_message or e}",
                operation="cancel_immediately",
                original_error=e,
            )

        logger.info(f"Cancelled subscription {subscription_id} immediately")
        return SubscriptionUpdate(
            status=SubscriptionStatus.CANCELLED,
            cancel_at_period_end=False,
            tier=PremiumTier.FREE,
        )

    async def update_payment_method(
        self,
        customer_id: str,
        subscription_id: Optional[str],
        payment_method_id: str,
    ) -> PaymentMethodSummary:
        """Attach a payment method and make it the default for invoices."""
        try:
            payment_method = stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
            if subscription_id:
                stripe.Subscription.modify(
                    subscription_id,
                    default_payment_method=payment_method_id,
                )
        except StripeError as e:
            logger.error(f"Failed to update payment method: {e}")
            raise PaymentError(
                f"Failed to update payment method: {e.user_message or e}",
                operation="update_payment_method",
                original_error=e,
            )

        logger.info(f"Updated default payment method for customer {customer_id}")
        return payment_method_summary(payment_method)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> Dict[str, Any]:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            The verified event as plain dicts and lists

        Raises:
            PaymentError if signature invalid
        """
        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )
            return json.loads(payload)

        except ValueError as e:
            raise PaymentError(f"Invalid payload: {e}", operation="webhook")
        except stripe.SignatureVerificationError as e:
            raise PaymentError(f"Invalid signature: {e}", operation="webhook")
