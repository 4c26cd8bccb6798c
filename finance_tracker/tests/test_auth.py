"""Tests for identity provider integration."""
from unittest.mock import MagicMock, patch

import jwt
import pytest
import requests

from finance_tracker.auth import (
    AuthenticationError,
    ClerkIdentityProvider,
    identity_from_clerk,
)


CLERK_USER = {
    "id": "user_abc",
    "email_addresses": [
        {"id": "idn_1", "email_address": "work@example.com"},
        {"id": "idn_2", "email_address": "home@example.com"},
    ],
    "primary_email_address_id": "idn_2",
    "first_name": "Ada",
    "last_name": None,
    "image_url": "https://img.example.com/ada.png",
}


class TestIdentityFromClerk:
    """Test cases for identity_from_clerk."""

    def test_primary_email_chosen(self):
        identity = identity_from_clerk(CLERK_USER)
        assert identity.user_id == "user_abc"
        assert identity.email == "home@example.com"
        assert identity.first_name == "Ada"
        assert identity.last_name == ""

    def test_first_email_without_primary(self):
        data = {**CLERK_USER, "primary_email_address_id": None}
        assert identity_from_clerk(data).email == "work@example.com"

    def test_no_emails(self):
        assert identity_from_clerk({"id": "user_abc"}).email == ""

    def test_to_dict(self):
        assert identity_from_clerk(CLERK_USER).to_dict()["user_id"] == "user_abc"


class TestClerkIdentityProvider:
    """Test cases for ClerkIdentityProvider."""

    @pytest.fixture
    def provider(self):
        provider = ClerkIdentityProvider(
            secret_key="sk_test",
            jwks_url="https://clerk.example.com/.well-known/jwks.json",
            api_url="https://api.clerk.com/v1/",
        )
        provider._jwks_client = MagicMock()
        return provider

    def test_authenticate_returns_subject(self, provider):
        with patch("finance_tracker.auth.jwt.decode", return_value={"sub": "user_abc"}) as decode:
            assert provider.authenticate("token") == "user_abc"
        assert decode.call_args.kwargs["algorithms"] == ["RS256"]

    def test_authenticate_empty_token(self, provider):
        with pytest.raises(AuthenticationError):
            provider.authenticate("")

    def test_authenticate_invalid_token(self, provider):
        with patch("finance_tracker.auth.jwt.decode", side_effect=jwt.ExpiredSignatureError("expired")):
            with pytest.raises(AuthenticationError):
                provider.authenticate("token")

    def test_authenticate_without_subject(self, provider):
        with patch("finance_tracker.auth.jwt.decode", return_value={"iss": "clerk"}):
            with pytest.raises(AuthenticationError):
                provider.authenticate("token")

    def test_unconfigured_provider_rejects_everything(self):
        provider = ClerkIdentityProvider(jwks_url=None)
        with pytest.raises(AuthenticationError):
            provider.authenticate("token")

    def test_get_identity(self, provider):
        response = MagicMock(status_code=200)
        response.json.return_value = CLERK_USER

        with patch("finance_tracker.auth.requests.get", return_value=response) as get:
            identity = provider.get_identity("user_abc")

        assert identity.email == "home@example.com"
        assert get.call_args.args[0] == "https://api.clerk.com/v1/users/user_abc"
        assert get.call_args.kwargs["headers"] == {"Authorization": "Bearer sk_test"}

    def test_get_identity_not_found(self, provider):
        with patch("finance_tracker.auth.requests.get", return_value=MagicMock(status_code=404)):
            assert provider.get_identity("user_missing") is None

    def test_get_identity_server_error(self, provider):
        response = MagicMock(status_code=502)
        response.raise_for_status.side_effect = requests.HTTPError("bad gateway")
        with patch("finance_tracker.auth.requests.get", return_value=response):
            with pytest.raises(requests.HTTPError):
                provider.get_identity("user_abc")
