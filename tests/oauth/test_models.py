"""Tests for flow data structures."""

import time

import pytest

from spotify_auth.exceptions import MissingTokenError
from spotify_auth.models import (
    AuthorizationResult,
    AuthRequest,
    CallbackResult,
    FlowVariant,
    Token,
)


class TestFlowVariant:
    """Tests for FlowVariant descriptors."""

    def test_authorization_code_variant(self):
        variant = FlowVariant.AUTHORIZATION_CODE

        assert variant.response_type == "code"
        assert variant.callback_path == "/"
        assert variant.exchanges_code is True
        assert variant.exchange_endpoint == ""

    def test_implicit_variant(self):
        variant = FlowVariant.IMPLICIT_GRANT

        assert variant.response_type == "token"
        assert variant.callback_path == "/auth"
        assert variant.exchanges_code is False

    def test_token_swap_variant(self):
        variant = FlowVariant.TOKEN_SWAP

        assert variant.response_type == "code"
        assert variant.callback_path == "/auth"
        assert variant.exchange_endpoint == "/authorize"
        assert variant.refresh_endpoint == "/refresh"


class TestToken:
    """Tests for Token dataclass."""

    def test_from_dict_success_payload(self):
        """from_dict parses a token response."""
        token = Token.from_dict(
            {
                "access_token": "T",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "R",
                "scope": "playlist-read-private",
            }
        )

        assert token.access_token == "T"
        assert token.token_type == "Bearer"
        assert token.expires_in == 3600.0
        assert token.refresh_token == "R"
        assert token.has_error() is False

    def test_from_dict_oauth_error(self):
        """from_dict keeps OAuth error fields."""
        token = Token.from_dict(
            {"error": "invalid_grant", "error_description": "Invalid authorization code"}
        )

        assert token.has_error() is True
        assert token.error == "invalid_grant"
        assert token.error_description == "Invalid authorization code"

    def test_from_dict_web_api_error_object(self):
        """from_dict flattens the Web API error object."""
        token = Token.from_dict({"error": {"status": 400, "message": "Bad request"}})

        assert token.has_error() is True
        assert token.error == "400"
        assert token.error_description == "Bad request"

    def test_error_token_with_access_token_still_has_error(self):
        """An error field wins over any other field."""
        token = Token(access_token="T", error="server_error")

        assert token.has_error() is True

    def test_from_dict_rejects_non_numeric_expiry(self):
        with pytest.raises(ValueError):
            Token.from_dict({"access_token": "T", "expires_in": "soon"})

    def test_expiry_tracking(self):
        """expires_at and is_expired follow issued_at."""
        fresh = Token(access_token="T", expires_in=3600)
        stale = Token(access_token="T", expires_in=10, issued_at=time.time() - 60)

        assert fresh.is_expired() is False
        assert stale.is_expired() is True
        assert stale.expires_at == pytest.approx(stale.issued_at + 10)

    def test_authorization_header(self):
        token = Token(access_token="T", token_type="Bearer")

        assert token.authorization_header() == {"Authorization": "Bearer T"}


class TestAuthRequest:
    """Tests for AuthRequest."""

    def test_request_is_immutable(self):
        request = AuthRequest(state="abc123")

        with pytest.raises(AttributeError):
            request.state = "other"

    def test_with_credentials_returns_copy(self):
        """with_credentials leaves the original untouched."""
        request = AuthRequest(state="abc123", redirect_uri="http://localhost:4002")
        updated = request.with_credentials("id", "secret")

        assert request.has_credentials is False
        assert updated.has_credentials is True
        assert updated.state == "abc123"
        assert updated.redirect_uri == "http://localhost:4002"


class TestCallbackResult:
    """Tests for CallbackResult."""

    def test_exactly_one_variant_populated(self):
        assert CallbackResult.from_code("XYZ").code == "XYZ"
        assert CallbackResult.from_token(Token(access_token="T")).token.access_token == "T"
        assert CallbackResult.from_error("access_denied").error == "access_denied"

    def test_empty_result_rejected(self):
        with pytest.raises(ValueError, match="exactly one"):
            CallbackResult()

    def test_multiple_variants_rejected(self):
        with pytest.raises(ValueError, match="exactly one"):
            CallbackResult(code="XYZ", error="access_denied")


class TestAuthorizationResult:
    """Tests for AuthorizationResult."""

    def test_success_result(self):
        token = Token(access_token="T")
        result = AuthorizationResult.succeeded(token)

        assert result.success is True
        assert result.reason is None
        assert result.unwrap() is token

    def test_failure_result(self):
        result = AuthorizationResult.failed(MissingTokenError("no token"))

        assert result.success is False
        assert result.token is None
        assert result.reason == "no token"
        with pytest.raises(MissingTokenError, match="no token"):
            result.unwrap()
