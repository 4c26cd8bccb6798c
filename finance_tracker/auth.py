"""Identity provider integration: session tokens, profiles and webhooks."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union

import jwt
import requests
from svix.webhooks import Webhook, WebhookVerificationError

from finance_tracker.config import (
    CLERK_API_URL,
    CLERK_JWKS_URL,
    CLERK_SECRET_KEY,
    CLERK_WEBHOOK_SECRET,
    CLERK_REQUEST_TIMEOUT,
)


logger = logging.getLogger(__name__)

__all__ = [
    "AuthenticationError",
    "ClerkIdentityProvider",
    "Identity",
    "IdentityProvider",
    "WebhookVerificationError",
    "WebhookVerifier",
    "identity_from_clerk",
]


class AuthenticationError(Exception):
    """Raised when a session token cannot be verified."""


@dataclass
class Identity:
    """Profile of a signed-in user as reported by the identity provider."""

    user_id: str
    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def identity_from_clerk(data: Dict[str, Any]) -> Identity:
    """Build an Identity from a Clerk user object (API response or webhook data)."""
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    email = ""
    for address in addresses:
        if address.get("id") == primary_id:
            email = address.get("email_address") or ""
            break
    if not email and addresses:
        email = addresses[0].get("email_address") or ""

    return Identity(
        user_id=data["id"],
        email=email,
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        image_url=data.get("image_url") or "",
    )


class IdentityProvider(ABC):
    """Abstract base class for identity providers."""

    @abstractmethod
    def authenticate(self, token: str) -> str:
        """Verify a session token.

        Args:
            token: Bearer token sent by the client.

        Returns:
            The authenticated user's ID.

        Raises:
            AuthenticationError: If the token is missing, expired or invalid.
        """

    @abstractmethod
    def get_identity(self, user_id: str) -> Optional[Identity]:
        """Fetch a user's profile, or None if the provider doesn't know them."""


class ClerkIdentityProvider(IdentityProvider):
    """Clerk sessions: RS256 JWTs checked against the instance JWKS."""

    def __init__(
        self,
        secret_key: Optional[str] = CLERK_SECRET_KEY,
        jwks_url: Optional[str] = CLERK_JWKS_URL,
        api_url: str = CLERK_API_URL,
        timeout: int = CLERK_REQUEST_TIMEOUT
    ):
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._jwks_client = jwt.PyJWKClient(jwks_url) if jwks_url else None

    def authenticate(self, token: str) -> str:
        if not token:
            raise AuthenticationError("Missing session token")
        if self._jwks_client is None:
            raise AuthenticationError("Identity provider is not configured")

        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as e:
            raise AuthenticationError(f"Invalid session token: {e}") from e

        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Session token has no subject")
        return user_id

    def get_identity(self, user_id: str) -> Optional[Identity]:
        response = requests.get(
            f"{self.api_url}/users/{user_id}",
            headers={"Authorization": f"Bearer {self.secret_key}"},
            timeout=self.timeout,
        )
        if response.status_code == 404:
            logger.warning(f"Identity provider has no user {user_id}")
            return None
        response.raise_for_status()
        return identity_from_clerk(response.json())


class WebhookVerifier:
    """Verify svix-signed user lifecycle webhooks."""

    HEADERS = ("svix-id", "svix-timestamp", "svix-signature")

    def __init__(self, secret: str = CLERK_WEBHOOK_SECRET):
        self.secret = secret

    def verify(self, payload: Union[bytes, str], headers: Dict[str, str]) -> Dict[str, Any]:
        """Return the decoded event.

        Raises:
            WebhookVerificationError: If the signature doesn't match.
        """
        return Webhook(self.secret).verify(payload, headers)
