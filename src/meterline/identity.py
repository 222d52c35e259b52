"""Identity boundary: verified callers in, tier metadata out.

Token verification and the user-metadata store both belong to the external
auth provider (Clerk). This module keeps them behind narrow seams so the
metering core only ever sees ``VerifiedIdentity``.
"""

from typing import Any, Protocol

import httpx
import structlog
from jose import JWTError, jwt
from pydantic import BaseModel

from meterline.exceptions import AuthenticationError, ConfigurationError, IdentityProviderError

logger = structlog.get_logger()


class VerifiedIdentity(BaseModel):
    """Caller identity taken from a verified token."""

    user_id: str
    tier: str


class TokenVerifier:
    """Verifies bearer JWTs issued by the identity provider.

    The tier comes from a custom session claim (``plan`` by default), so a
    tier change only shows up once the user receives a fresh token.
    """

    def __init__(
        self,
        key: str | None,
        default_tier: str,
        algorithms: list[str] | None = None,
        audience: str | None = None,
        tier_claim: str = "plan",
    ) -> None:
        if not key:
            raise ConfigurationError("AUTH_JWT_KEY must be set to verify caller tokens")
        self._key = key
        self._algorithms = algorithms or ["RS256"]
        self._audience = audience
        self._tier_claim = tier_claim
        self._default_tier = default_tier

    def verify(self, authorization: str | None) -> VerifiedIdentity:
        """Verify an ``Authorization: Bearer`` header value."""
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid Authorization header")

        token = authorization.removeprefix("Bearer ").strip()
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self._key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError as e:
            logger.warning("Token verification failed", error=str(e))
            raise AuthenticationError from e

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Token has no subject")

        tier = claims.get(self._tier_claim) or self._default_tier
        return VerifiedIdentity(user_id=str(user_id), tier=str(tier))


class UserMetadataStore(Protocol):
    """Where the identity provider keeps per-user tier metadata."""

    async def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None: ...


class ClerkUserMetadataClient:
    """Writes tier metadata through the Clerk Backend API.

    ``PATCH /users/{id}`` replaces the user's public metadata, so callers
    pass the complete metadata object.
    """

    def __init__(
        self,
        secret_key: str | None,
        base_url: str = "https://api.clerk.com/v1",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not secret_key:
            raise ConfigurationError("CLERK_SECRET_KEY must be set to update user metadata")
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        """Overwrite the user's public metadata.

        Raises:
            IdentityProviderError: On a non-2xx answer or a transport failure.
        """
        try:
            response = await self._client.patch(
                f"/users/{user_id}",
                json={"public_metadata": metadata},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Identity provider rejected metadata update",
                user_id=user_id,
                status_code=e.response.status_code,
                response=e.response.text,
            )
            raise IdentityProviderError(
                user_id, f"HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            logger.error("Request error updating user metadata", user_id=user_id, error=str(e))
            raise IdentityProviderError(user_id, str(e)) from e

        logger.info("Updated user metadata", user_id=user_id, plan=metadata.get("plan"))
