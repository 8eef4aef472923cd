"""
Stripe Webhook Handler

Verifies Stripe webhook events and hands them to SubscriptionSync.
Processing is idempotent through the store's processed-event ledger.

Critical Events:
- checkout.session.completed: Activate subscription or credit a coin pack
- invoice.payment_succeeded: Mark active, record next billing date
- invoice.payment_failed: Set past_due with the failure reason
- customer.subscription.updated: Sync status, tier and period
- customer.subscription.deleted: Downgrade to free tier
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from aura.api.dependencies import get_services
from aura.infrastructure.exceptions import PaymentError
from aura.services import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """
    Handle Stripe webhook events.

    Returns 200 once the event is applied. A processing failure answers 500
    without marking the event, so Stripe retries it.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )

    try:
        event = services.payments.verify_webhook_signature(payload, signature)
    except PaymentError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    try:
        outcome = await services.subscription_sync.apply(event)
    except Exception as e:
        logger.exception(f"Error processing webhook {event.get('type')}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    return {"status": outcome}
