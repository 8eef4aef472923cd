# API Routes Module
from aura.api.routes import (
    ai,
    auth,
    chats,
    insights,
    modes,
    session,
    subscriptions,
    wallet,
    webhooks,
)

__all__ = [
    "ai",
    "auth",
    "chats",
    "insights",
    "modes",
    "session",
    "subscriptions",
    "wallet",
    "webhooks",
]
