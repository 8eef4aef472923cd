"""
Subscription API Routes

REST API endpoints for the subscription portal: status, pricing, checkout,
billing portal and the plan operations (cancel, resume, payment method,
plan change).

Payment failures surface as 402 with Stripe's message and leave the
profile untouched.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from aura.api.dependencies import get_current_user, get_services
from aura.domain.models import UserProfile
from aura.domain.subscription import (
    ChangePlanRequest,
    CheckoutResponse,
    CreateCheckoutRequest,
    PaymentMethodRequest,
    PortalResponse,
    PortalSessionRequest,
    PricingResponse,
    PricingTier,
    SubscriptionStatusResponse,
)
from aura.domain.tiers import TIER_CONFIG, PremiumTier, is_subscription_usable
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter()


def status_response(user: UserProfile) -> SubscriptionStatusResponse:
    return SubscriptionStatusResponse(
        tier=user.tier,
        status=user.subscription_status,
        is_usable=is_subscription_usable(user.subscription_status),
        cancel_at_period_end=user.cancel_at_period_end,
        trial_ends_at=user.trial_ends_at,
        next_billing_date=user.next_billing_date,
        payment_method=user.payment_method,
        last_payment_failure_reason=user.last_payment_failure_reason,
    )


async def ensure_customer(services: ServiceContainer, user: UserProfile) -> str:
    """Get or create the Stripe customer and remember its ID on the profile."""
    customer = await services.payments.get_or_create_customer(
        user_id=user.id,
        email=user.email,
        existing_customer_id=user.stripe_customer_id,
    )
    if customer.id != user.stripe_customer_id:
        await services.store.put(user.id, {"stripe_customer_id": customer.id})
    return customer.id


# =============================================================================
# Subscription Status Endpoints
# =============================================================================

@router.get("/subscriptions/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user: UserProfile = Depends(get_current_user),
):
    """Get the current user's plan and billing health."""
    return status_response(user)


@router.get("/subscriptions/pricing", response_model=PricingResponse)
async def get_pricing_info():
    """
    Get pricing information for all tiers.

    Returns:
        PricingResponse with monthly prices in cents
    """
    tiers = [
        PricingTier(
            tier=tier,
            name=config["name"],
            monthly_price=config["monthly_price"],
            features=config["features"],
            popular=config.get("popular", False),
        )
        for tier, config in TIER_CONFIG.items()
    ]
    return PricingResponse(tiers=tiers)


# =============================================================================
# Checkout Endpoints
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Create a Stripe Checkout session for a tier subscription.

    Args:
        request: Checkout request with tier and redirect URLs

    Returns:
        CheckoutResponse with checkout URL and session ID
    """
    if request.tier == PremiumTier.FREE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot purchase free tier",
        )

    customer_id = await ensure_customer(services, user)
    session = await services.payments.create_checkout_session(
        customer_id=customer_id,
        tier=request.tier,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
        user_id=user.id,
    )

    logger.info(f"Created checkout session {session.id} for user {user.id}")
    return CheckoutResponse(checkout_url=session.url, session_id=session.id)


@router.post("/subscriptions/portal", response_model=PortalResponse)
async def create_portal_session(
    request: PortalSessionRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Create a Stripe Customer Portal session."""
    if not user.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subscription found. Please subscribe first.",
        )

    session = await services.payments.create_portal_session(
        customer_id=user.stripe_customer_id,
        return_url=request.return_url,
    )
    return PortalResponse(portal_url=session.url)


# =============================================================================
# Plan Operations
# =============================================================================

@router.post("/subscriptions/cancel", response_model=SubscriptionStatusResponse)
async def cancel_subscription(
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """Schedule cancellation at the end of the billing period."""
    user = await services.subscription_actions.cancel(user)
    return status_response(user)


@router.post("/subscriptions/resume", response_model=SubscriptionStatusResponse)
async def resume_subscription(
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    user = await services.subscription_actions.resume(user)
    return status_response(user)


@router.post("/subscriptions/payment-method", response_model=SubscriptionStatusResponse)
async def update_payment_method(
    request: PaymentMethodRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    user = await services.subscription_actions.update_payment_method(
        user, request.payment_method_id
    )
    return status_response(user)


@router.post("/subscriptions/change-plan", response_model=SubscriptionStatusResponse)
async def change_plan(
    request: ChangePlanRequest,
    user: UserProfile = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services),
):
    """
    Move to another tier.

    FREE cancels immediately. Changing to a paid tier without a subscription
    on file answers 402; start a checkout instead.
    """
    user = await services.subscription_actions.change_plan(user, request.tier)
    return status_response(user)
