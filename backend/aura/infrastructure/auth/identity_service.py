"""
Identity Service

Email/password and Google sign-in against the Firebase Identity Toolkit
REST API. Provider errors map to AuthError subclasses carrying the message
shown to the user; they are never retried.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from aura.infrastructure.exceptions import (
    AuthError,
    ConfigurationError,
    EmailInUseError,
    InvalidCredentialsError,
    UserNotFoundError,
)


logger = logging.getLogger(__name__)


class AuthSession(BaseModel):
    """Result of a successful sign-up or sign-in."""
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None
    id_token: str
    refresh_token: Optional[str] = None


# Identity Toolkit error code -> (exception, user-facing message)
ERROR_MAP = {
    "EMAIL_EXISTS": (EmailInUseError, "Email address is already in use."),
    "EMAIL_NOT_FOUND": (InvalidCredentialsError, "Invalid email or password."),
    "INVALID_PASSWORD": (InvalidCredentialsError, "Invalid email or password."),
    "INVALID_LOGIN_CREDENTIALS": (InvalidCredentialsError, "Invalid email or password."),
    "USER_DISABLED": (AuthError, "This account has been disabled."),
    "WEAK_PASSWORD": (AuthError, "Password should be at least 6 characters."),
    "INVALID_EMAIL": (AuthError, "Invalid email address."),
}

FALLBACK_MESSAGES = {
    "sign_up": "Registration failed.",
    "sign_in": "Sign-in failed.",
    "sign_in_with_google": "Google authentication failed.",
    "send_password_reset": "Could not send reset link.",
}


class IdentityService:
    """
    Identity Toolkit client.

    Args:
        api_key: Firebase Web API key
        base_url: Identity Toolkit endpoint root
        transport: Optional httpx transport (tests mount a MockTransport)
    """

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _post(self, method: str, operation: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError(
                "Missing FIREBASE_API_KEY environment variable",
                missing_keys=["FIREBASE_API_KEY"],
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/accounts:{method}",
                    params={"key": self.api_key},
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error(f"Identity {operation} request failed: {e}")
            raise AuthError(FALLBACK_MESSAGES[operation], original_error=e)

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            logger.error(f"Identity {operation} returned a non-JSON body (HTTP {response.status_code})")
            raise AuthError(FALLBACK_MESSAGES[operation], original_error=e)
        if not isinstance(data, dict):
            raise AuthError(FALLBACK_MESSAGES[operation])

        if response.status_code >= 400:
            raise self._map_error(operation, data)
        return data

    def _map_error(self, operation: str, data: Dict[str, Any]) -> AuthError:
        raw = ((data.get("error") or {}).get("message") or "").strip()
        code = raw.split(" ")[0] if raw else ""
        error_cls, message = ERROR_MAP.get(code, (AuthError, FALLBACK_MESSAGES[operation]))

        if operation == "send_password_reset" and code == "EMAIL_NOT_FOUND":
            error_cls, message = UserNotFoundError, "No account exists for this email."

        logger.info(f"Identity {operation} rejected: {code or 'unknown error'}")
        return error_cls(message, details={"code": code} if code else None)

    def _session(self, data: Dict[str, Any]) -> AuthSession:
        return AuthSession(
            uid=data["localId"],
            email=data.get("email"),
            email_verified=bool(data.get("emailVerified", False)),
            display_name=data.get("displayName") or None,
            id_token=data["idToken"],
            refresh_token=data.get("refreshToken"),
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def sign_up(self, email: str, password: str) -> AuthSession:
        """Create an email/password account."""
        data = await self._post("signUp", "sign_up", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        logger.info(f"Signed up user {data.get('localId')}")
        return self._session(data)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""
        data = await self._post("signInWithPassword", "sign_in", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._session(data)

    async def sign_in_with_google(self, id_token: str, request_uri: str = "http://localhost") -> AuthSession:
        """Exchange a Google ID token for a Firebase session."""
        data = await self._post("signInWithIdp", "sign_in_with_google", {
            "postBody": f"id_token={id_token}&providerId=google.com",
            "requestUri": request_uri,
            "returnIdpCredential": True,
            "returnSecureToken": True,
        })
        return self._session(data)

    async def send_password_reset(self, email: str) -> None:
        """Send a password reset email."""
        await self._post("sendOobCode", "send_password_reset", {
            "requestType": "PASSWORD_RESET",
            "email": email,
        })
        logger.info("Sent password reset email")
