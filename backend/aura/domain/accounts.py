"""
Account Lifecycle

Profile creation on first sign-in, the session bootstrap, onboarding,
preferences, mode switching and the coin wallet (rentals and top-ups).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from pydantic import BaseModel

from aura.domain.access import can_enter, is_rental_active, resolve_mode
from aura.domain.conversation import ConversationOrchestrator
from aura.domain.models import ChatThread, DailyInsight, UserProfile, utc_now
from aura.domain.modes import CoachingMode
from aura.domain.tiers import PremiumTier, SubscriptionStatus
from aura.infrastructure.db.repositories import DocumentStore
from aura.infrastructure.exceptions import (
    AccessDeniedError,
    InsufficientCoinsError,
    ValidationError,
)


logger = logging.getLogger(__name__)


WELCOME_COINS = 100
TRIAL_DURATION = timedelta(days=14)
RENTAL_COST_COINS = 50
RENTAL_DURATION = timedelta(hours=1)
CURRENT_MARKETING_VERSION = 1


class Identity(BaseModel):
    """Authenticated principal as asserted by the identity provider."""
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None


@dataclass
class SessionState:
    """Everything a client needs to render after sign-in."""
    user: UserProfile
    threads: List[ChatThread] = field(default_factory=list)
    insights: List[DailyInsight] = field(default_factory=list)
    active_thread: Optional[ChatThread] = None

    @property
    def current_mode(self) -> CoachingMode:
        return self.user.current_mode


class AccountService:
    """
    Account operations on top of the document store.

    Args:
        store: Document store
        orchestrator: Used to open threads
    """

    def __init__(self, store: DocumentStore, orchestrator: ConversationOrchestrator):
        self.store = store
        self.orchestrator = orchestrator

    # =========================================================================
    # Sign-in
    # =========================================================================

    async def initialize_user(
        self,
        identity: Identity,
        plan: PremiumTier = PremiumTier.FREE,
    ) -> UserProfile:
        """
        Create the profile on first sign-in.

        A paid plan starts a trial; FREE starts free. Existing profiles are
        returned unchanged.
        """
        existing = await self.store.get(identity.uid)
        if existing is not None:
            return existing

        plan = PremiumTier(plan)
        now = utc_now()
        profile = UserProfile(
            id=identity.uid,
            email=identity.email,
            email_verified=identity.email_verified,
            name=identity.display_name or "",
            joined_at=now,
            tier=plan,
            subscription_status=(
                SubscriptionStatus.FREE if plan == PremiumTier.FREE
                else SubscriptionStatus.TRIAL_ACTIVE
            ),
            trial_ends_at=None if plan == PremiumTier.FREE else now + TRIAL_DURATION,
            coins=WELCOME_COINS,
            streak_days=1,
            voice_enabled=True,
        )
        created = await self.store.create(profile)
        logger.info(f"Initialized profile for user {identity.uid} on {plan.value}")
        return created

    async def load_session(
        self,
        identity: Identity,
        now: Optional[datetime] = None,
    ) -> SessionState:
        """
        Load profile, threads and insights for a signed-in user.

        Expires an elapsed trial and re-resolves the current mode.
        """
        now = now or utc_now()
        user = await self.store.get(identity.uid)
        if user is None:
            user = await self.initialize_user(identity)

        fields = {}
        if (
            user.subscription_status == SubscriptionStatus.TRIAL_ACTIVE
            and user.trial_ends_at is not None
            and user.trial_ends_at <= now
        ):
            fields["subscription_status"] = SubscriptionStatus.TRIAL_EXPIRED
            logger.info(f"Trial expired for user {user.id}")
        if identity.email_verified and not user.email_verified:
            fields["email_verified"] = True

        user = user.model_copy(update=fields)
        mode = resolve_mode(user.current_mode, user, now)
        if mode != user.current_mode:
            fields["current_mode"] = mode
            user = user.model_copy(update={"current_mode": mode})

        if fields:
            await self.store.put(user.id, fields)

        threads = await self.store.list_threads(user.id)
        insights = await self.store.list_insights(user.id)

        active = next((t for t in threads if t.id == user.active_thread_id), None)
        if active is None or active.mode != user.current_mode:
            active = next((t for t in threads if t.mode == user.current_mode), None)

        return SessionState(user=user, threads=threads, insights=insights, active_thread=active)

    # =========================================================================
    # Profile
    # =========================================================================

    async def complete_onboarding(
        self,
        user: UserProfile,
        name: str,
    ) -> Tuple[UserProfile, ChatThread]:
        """Store the display name and open the first BASELINE thread."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty")

        await self.store.put(user.id, {"name": name})
        user = user.model_copy(update={"name": name})
        thread = await self.orchestrator.start_thread(user, CoachingMode.BASELINE)
        user = user.model_copy(update={
            "active_thread_id": thread.id,
            "current_mode": CoachingMode.BASELINE,
        })
        return user, thread

    async def update_preferences(
        self,
        user: UserProfile,
        voice_enabled: Optional[bool] = None,
        language: Optional[str] = None,
    ) -> UserProfile:
        fields = {}
        if voice_enabled is not None:
            fields["voice_enabled"] = voice_enabled
        if language is not None:
            fields["language"] = language
        if not fields:
            return user
        await self.store.put(user.id, fields)
        return user.model_copy(update=fields)

    async def dismiss_marketing(self, user: UserProfile) -> UserProfile:
        fields = {"last_viewed_marketing_version": CURRENT_MARKETING_VERSION}
        await self.store.put(user.id, fields)
        return user.model_copy(update=fields)

    # =========================================================================
    # Modes
    # =========================================================================

    async def switch_mode(
        self,
        user: UserProfile,
        mode: CoachingMode,
    ) -> Tuple[UserProfile, Optional[ChatThread]]:
        """
        Make mode current and activate its most recent thread, if any.

        Raises:
            AccessDeniedError: if the user cannot enter mode
        """
        mode = CoachingMode(mode)
        if not can_enter(mode, user):
            raise AccessDeniedError(f"{mode.value} requires an upgrade", mode=mode.value)

        threads = await self.store.list_threads(user.id)
        thread = next((t for t in threads if t.mode == mode), None)
        fields = {"current_mode": mode, "active_thread_id": thread.id if thread else None}
        await self.store.put(user.id, fields)
        return user.model_copy(update=fields), thread

    async def rent_mode(
        self,
        user: UserProfile,
        mode: CoachingMode,
        now: Optional[datetime] = None,
    ) -> UserProfile:
        """
        Spend coins for temporary access to a locked mode.

        Rentals are merged into the stored rental map, not the caller's
        snapshot, so rentals of other modes made meanwhile are kept.

        Raises:
            ValidationError: if the mode is unlocked by tier or already rented
            InsufficientCoinsError: if the balance does not cover the rental
        """
        mode = CoachingMode(mode)
        now = now or utc_now()

        if can_enter(mode, user, rental_access={}, now=now):
            raise ValidationError(f"{mode.value} is already unlocked")

        stored = await self.store.get(user.id) or user
        if is_rental_active(mode, stored.rental_access, now):
            expiry = stored.rental_access[mode]
            raise ValidationError(
                f"{mode.value} is already rented",
                details={"mode": mode.value, "expires_at": expiry.isoformat()},
            )
        if user.coins < RENTAL_COST_COINS:
            raise InsufficientCoinsError(required=RENTAL_COST_COINS, balance=user.coins)

        balance = await self.store.add_coins(user.id, -RENTAL_COST_COINS)
        if balance < 0:
            # A concurrent spend got there first
            balance = await self.store.add_coins(user.id, RENTAL_COST_COINS)
            raise InsufficientCoinsError(required=RENTAL_COST_COINS, balance=balance)

        latest = await self.store.get(user.id) or stored
        rentals = {
            m: expiry for m, expiry in latest.rental_access.items() if expiry > now
        }
        rentals[mode] = now + RENTAL_DURATION
        fields = {"rental_access": rentals, "current_mode": mode}
        await self.store.put(user.id, fields)
        logger.info(f"User {user.id} rented {mode.value} until {rentals[mode].isoformat()}")
        return user.model_copy(update={**fields, "coins": balance})

    # =========================================================================
    # Wallet
    # =========================================================================

    async def credit_coins(self, user_id: str, amount: int) -> int:
        """Add purchased coins and return the new balance."""
        if amount <= 0:
            raise ValidationError("Coin credit must be positive")
        balance = await self.store.add_coins(user_id, amount)
        logger.info(f"Credited {amount} coins to user {user_id}")
        return balance
