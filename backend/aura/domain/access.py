"""
Access Gate

Decides whether a user may enter a coaching mode right now. An active
rental overrides tier and billing; broken billing confines the user to
rank-0 modes; otherwise the purchased tier must reach the mode's minimum.
The gate only decides. Redirecting on denial is the caller's job.
"""

from datetime import datetime
from typing import Dict, List, Optional

from aura.domain.models import UserProfile, utc_now
from aura.domain.modes import CoachingMode, MODE_CONFIG, min_tier
from aura.domain.tiers import is_subscription_usable, tier_rank


def is_rental_active(
    mode: CoachingMode,
    rental_access: Dict[CoachingMode, datetime],
    now: Optional[datetime] = None,
) -> bool:
    """True when a rental for mode exists and expires strictly after now."""
    now = now or utc_now()
    expiry = rental_access.get(CoachingMode(mode))
    return expiry is not None and expiry > now


def can_enter(
    mode: CoachingMode,
    user: UserProfile,
    rental_access: Optional[Dict[CoachingMode, datetime]] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether user may enter mode.

    Args:
        mode: Target coaching mode
        user: Profile holding tier and subscription status
        rental_access: Rental expiries; defaults to the profile's own map
        now: Reference time for rental expiry

    Returns:
        True if the mode is reachable
    """
    mode = CoachingMode(mode)
    rentals = user.rental_access if rental_access is None else rental_access

    if is_rental_active(mode, rentals, now):
        return True

    required = tier_rank(min_tier(mode))
    if not is_subscription_usable(user.subscription_status):
        return required == 0

    return tier_rank(user.tier) >= required


def resolve_mode(
    current_mode: CoachingMode,
    user: UserProfile,
    now: Optional[datetime] = None,
) -> CoachingMode:
    """Keep current_mode while it is enterable, otherwise fall back to BASELINE."""
    if can_enter(current_mode, user, now=now):
        return CoachingMode(current_mode)
    return CoachingMode.BASELINE


def mode_catalog(user: UserProfile, now: Optional[datetime] = None) -> List[dict]:
    """Per-mode lock and rental flags for client display."""
    now = now or utc_now()
    catalog = []
    for mode, config in MODE_CONFIG.items():
        rented = is_rental_active(mode, user.rental_access, now)
        catalog.append({
            "mode": mode,
            "name": config.name,
            "description": config.description,
            "min_tier": config.min_tier,
            "locked": not can_enter(mode, user, now=now),
            "rented": rented,
            "rental_expires_at": user.rental_access.get(mode) if rented else None,
        })
    return catalog
