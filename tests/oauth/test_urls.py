"""Tests for authorization URL construction."""

from urllib.parse import parse_qs, urlsplit

import pytest

from spotify_auth.models import AuthRequest, FlowVariant
from spotify_auth.urls import build_authorization_url, parse_server_uri


class TestBuildAuthorizationUrl:
    """Tests for build_authorization_url."""

    @pytest.fixture
    def request_with_credentials(self):
        return AuthRequest(
            state="abc123",
            client_id="client",
            secret_id="secret",
            redirect_uri="http://localhost:4002",
            scope=("playlist-read-private",),
        )

    def test_code_url_contains_state_and_scope(self, request_with_credentials):
        """Code URL carries state and scope next to each other."""
        url = build_authorization_url(request_with_credentials, FlowVariant.AUTHORIZATION_CODE)

        assert url.startswith("https://accounts.spotify.com/authorize/?")
        assert "state=abc123&scope=playlist-read-private" in url
        assert "client_id=client" in url
        assert "response_type=code" in url
        assert "show_dialog=false" in url

    def test_code_url_escapes_redirect_uri_and_joins_scopes(self):
        request = AuthRequest(
            state="s",
            client_id="client",
            secret_id="secret",
            redirect_uri="http://localhost:4002/cb",
            scope=("user-read-email", "playlist-read-private"),
            show_dialog=True,
        )

        url = build_authorization_url(request, FlowVariant.AUTHORIZATION_CODE)
        query = parse_qs(urlsplit(url).query)

        assert "scope=user-read-email%20playlist-read-private" in url
        assert query["redirect_uri"] == ["http://localhost:4002/cb"]
        assert query["scope"] == ["user-read-email playlist-read-private"]
        assert query["show_dialog"] == ["true"]

    def test_implicit_url_requests_token(self, request_with_credentials):
        url = build_authorization_url(request_with_credentials, FlowVariant.IMPLICIT_GRANT)

        assert "response_type=token" in url

    def test_code_url_without_credentials_points_to_bootstrap(self):
        """Missing credentials send the user to the bootstrap page."""
        request = AuthRequest(state="abc123", redirect_uri="http://localhost:4002/")

        url = build_authorization_url(request, FlowVariant.AUTHORIZATION_CODE)

        assert url == "http://localhost:4002/start.html#abc123"

    def test_token_swap_url_targets_exchange_server(self):
        request = AuthRequest(
            state="abc123",
            exchange_server_uri="https://exchange.example.com/",
            scope=("user-read-email",),
        )

        url = build_authorization_url(request, FlowVariant.TOKEN_SWAP)

        assert url.startswith("https://exchange.example.com/authorize?")
        assert "response_type=code" in url
        assert "state=abc123&scope=user-read-email" in url
        assert "client_id" not in url


class TestParseServerUri:
    """Tests for parse_server_uri."""

    def test_host_and_port(self):
        assert parse_server_uri("http://localhost:4002") == ("localhost", 4002)

    def test_default_port(self):
        assert parse_server_uri("http://127.0.0.1") == ("127.0.0.1", 80)

    def test_port_zero_allowed(self):
        assert parse_server_uri("http://127.0.0.1:0") == ("127.0.0.1", 0)

    def test_rejects_other_schemes(self):
        with pytest.raises(ValueError, match="http://"):
            parse_server_uri("https://localhost:4002")
