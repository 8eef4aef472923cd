"""
Subscription Domain Models

Enums, DTOs, and value objects for the billing bounded context:
tier checkout, coin packs, plan management and the outcome of a
payment-provider call.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from aura.domain.models import PaymentMethodSummary
from aura.domain.tiers import PremiumTier, SubscriptionStatus


class CoinPack(str, Enum):
    """Purchasable wallet top-ups."""
    SMALL = "pack_small"
    MEDIUM = "pack_medium"
    LARGE = "pack_large"


COIN_PACKS = {
    CoinPack.SMALL: {"name": "Starter Cache", "coins": 100, "price": 199},
    CoinPack.MEDIUM: {"name": "Neural Reserve", "coins": 500, "price": 499},
    CoinPack.LARGE: {"name": "Infinite Stream", "coins": 1200, "price": 999},
}


# =============================================================================
# Value Objects
# =============================================================================

class SubscriptionUpdate(BaseModel):
    """Profile fields produced by a successful payment-provider call."""
    status: SubscriptionStatus
    cancel_at_period_end: bool = False
    tier: Optional[PremiumTier] = None
    payment_method: Optional[PaymentMethodSummary] = None

    def to_fields(self) -> dict:
        """Profile merge fields; absent optionals are left out."""
        fields = {
            "subscription_status": self.status,
            "cancel_at_period_end": self.cancel_at_period_end,
        }
        if self.tier is not None:
            fields["tier"] = self.tier
        if self.payment_method is not None:
            fields["payment_method"] = self.payment_method
        return fields


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a subscription checkout session."""
    tier: PremiumTier = Field(
        default=PremiumTier.BASIC,
        description="Subscription tier to purchase"
    )
    success_url: str = Field(..., description="Redirect URL after successful payment")
    cancel_url: str = Field(..., description="Redirect URL after cancelled payment")


class CoinCheckoutRequest(BaseModel):
    """Request DTO for buying a coin pack."""
    pack: CoinPack = CoinPack.SMALL
    success_url: str = Field(..., description="Redirect URL after successful payment")
    cancel_url: str = Field(..., description="Redirect URL after cancelled payment")


class PortalSessionRequest(BaseModel):
    """Request DTO for creating a billing portal session."""
    return_url: str = Field(..., description="URL to return to after portal session")


class ChangePlanRequest(BaseModel):
    tier: PremiumTier


class PaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class SubscriptionStatusResponse(BaseModel):
    """Response DTO for subscription status."""
    tier: PremiumTier
    status: SubscriptionStatus
    is_usable: bool = Field(description="Whether billing health allows paid-tier capability")
    cancel_at_period_end: bool = False
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethodSummary] = None
    last_payment_failure_reason: Optional[str] = None


class PricingTier(BaseModel):
    """Pricing information for a single tier."""
    tier: PremiumTier
    name: str
    monthly_price: int  # In cents
    features: list[str]
    popular: bool = False


class PricingResponse(BaseModel):
    """Response DTO for pricing information."""
    currency: str = "USD"
    tiers: list[PricingTier]


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Response DTO for portal session creation."""
    portal_url: str
