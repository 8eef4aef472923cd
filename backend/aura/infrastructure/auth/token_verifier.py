"""
ID Token Verification

Verifies Firebase ID tokens cryptographically. RS256 tokens are checked
against Google's JWKS; HS256 tokens are accepted only when a shared secret
is configured (local development and tests). Never decode without
verification.
"""

import logging
from typing import Optional

import jwt
from jwt import PyJWKClient

from aura.domain.accounts import Identity
from aura.infrastructure.exceptions import AuthError


logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)


class TokenVerifier:
    """
    Firebase ID token verifier.

    Args:
        project_id: Firebase project; expected audience and issuer suffix
        jwt_secret: Optional HS256 secret for locally minted tokens
        jwks_url: JWKS endpoint for RS256 keys
    """

    def __init__(
        self,
        project_id: str,
        jwt_secret: Optional[str] = None,
        jwks_url: str = GOOGLE_JWKS_URL,
    ):
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self._jwt_secret = jwt_secret
        self._jwks_url = jwks_url
        self._jwks_client: Optional[PyJWKClient] = None

    def _get_jwks_client(self) -> PyJWKClient:
        # PyJWKClient caches keys internally
        if self._jwks_client is None:
            self._jwks_client = PyJWKClient(self._jwks_url, cache_keys=True)
        return self._jwks_client

    def _decode_with_jwks(self, token: str) -> dict:
        signing_key = self._get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=self.issuer,
            audience=self.project_id,
            options={"require": ["exp", "sub", "iss", "aud"]},
        )

    def _decode_with_secret(self, token: str) -> dict:
        return jwt.decode(
            token,
            self._jwt_secret,
            algorithms=["HS256"],
            issuer=self.issuer,
            audience=self.project_id,
            options={"require": ["exp", "sub", "iss", "aud"]},
        )

    def verify(self, token: str) -> Identity:
        """
        Verify an ID token and return the identity it asserts.

        Raises:
            AuthError: token malformed, expired, or not verifiable
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise AuthError("Invalid token", original_error=e)

        alg = header.get("alg")
        try:
            if alg == "RS256":
                payload = self._decode_with_jwks(token)
            elif alg == "HS256" and self._jwt_secret:
                payload = self._decode_with_secret(token)
            else:
                raise AuthError(f"Unsupported token algorithm: {alg}")
        except jwt.ExpiredSignatureError as e:
            raise AuthError("Token has expired", original_error=e)
        except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as e:
            logger.warning(f"Token verification failed: {e}")
            raise AuthError("Invalid or unverifiable token", original_error=e)

        uid = payload.get("sub")
        if not uid:
            raise AuthError("Invalid token: missing user ID")

        return Identity(
            uid=uid,
            email=payload.get("email"),
            email_verified=bool(payload.get("email_verified", False)),
            display_name=payload.get("name"),
        )
