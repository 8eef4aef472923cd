"""
Payments Infrastructure Module

Stripe payment processing and subscription management services.
"""

from aura.infrastructure.payments.stripe_service import StripeService, map_stripe_status

__all__ = ["StripeService", "map_stripe_status"]
