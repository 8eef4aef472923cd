"""
Tier Policy

Pure functions mapping a subscription tier and billing status to capability.
The tier is what the user purchased; the status is billing health. The two
are independent axes: a PLUS user who is past_due keeps tier=PLUS in storage
but loses paid-tier capability until payment is fixed.
"""

from enum import Enum


class PremiumTier(str, Enum):
    """Purchased subscription level, ordered FREE < BASIC < PLUS < MASTER."""
    FREE = "FREE"
    BASIC = "BASIC"
    PLUS = "PLUS"
    MASTER = "MASTER"


class SubscriptionStatus(str, Enum):
    """Billing-health state of the user's subscription."""
    FREE = "free"
    TRIAL_ACTIVE = "trial_active"
    TRIAL_EXPIRED = "trial_expired"
    ACTIVE_SUBSCRIPTION = "active_subscription"
    DOWNGRADE_SCHEDULED = "downgrade_scheduled"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    PAUSED = "paused"


_TIER_RANK = {
    PremiumTier.FREE: 0,
    PremiumTier.BASIC: 1,
    PremiumTier.PLUS: 2,
    PremiumTier.MASTER: 3,
}

# downgrade_scheduled still has a paid period running; trial_expired has
# nothing behind it and degrades to free.
USABLE_STATUSES = frozenset({
    SubscriptionStatus.FREE,
    SubscriptionStatus.CANCELLED,
    SubscriptionStatus.TRIAL_ACTIVE,
    SubscriptionStatus.ACTIVE_SUBSCRIPTION,
    SubscriptionStatus.DOWNGRADE_SCHEDULED,
})

BROKEN_BILLING_STATUSES = frozenset(set(SubscriptionStatus) - USABLE_STATUSES)


def tier_rank(tier: PremiumTier) -> int:
    """Total order over tiers: FREE=0, BASIC=1, PLUS=2, MASTER=3."""
    return _TIER_RANK[PremiumTier(tier)]


def is_subscription_usable(status: SubscriptionStatus) -> bool:
    """Whether billing health allows paid-tier capability."""
    return SubscriptionStatus(status) in USABLE_STATUSES


def is_upgrade(current: PremiumTier, target: PremiumTier) -> bool:
    """True when moving from current to target raises the tier."""
    return tier_rank(target) > tier_rank(current)


# =============================================================================
# Tier Configuration (Business Logic)
# =============================================================================

TIER_CONFIG = {
    PremiumTier.FREE: {
        "name": "Free",
        "monthly_price": 0,  # In cents
        "features": [
            "Baseline Model",
            "Standard Chat",
            "Limited Memory",
        ],
    },
    PremiumTier.BASIC: {
        "name": "Basic",
        "monthly_price": 900,
        "features": [
            "Adaptive Coach & Goal Navigation",
            "Voice Interaction (TTS/STT)",
            "Essential Memory Retention",
        ],
    },
    PremiumTier.PLUS: {
        "name": "Plus",
        "monthly_price": 1900,
        "features": [
            "Shadow Twin (Blind Spot Detector)",
            "Psychological Defense Radar",
            "Full Pattern Analysis",
        ],
        "popular": True,
    },
    PremiumTier.MASTER: {
        "name": "Master",
        "monthly_price": 2900,
        "features": [
            "Unlimited Memory Access",
            "Meta-Coach (Super-Synthesis Engine)",
            "Cognitive Distortion Tracker",
            "Therapist-Grade Reports",
            "Access to Coin Utility",
        ],
    },
}
