"""
Identity Infrastructure Module

Firebase Auth: ID token verification and the Identity Toolkit client.
"""

from aura.infrastructure.auth.identity_service import AuthSession, IdentityService
from aura.infrastructure.auth.token_verifier import TokenVerifier

__all__ = ["AuthSession", "IdentityService", "TokenVerifier"]
