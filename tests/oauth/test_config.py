"""Tests for flow configuration module."""

from unittest import mock

import pytest

from spotify_auth.config import DEFAULT_HTML_RESPONSE, AuthFlowConfig
from spotify_auth.exceptions import ConfigurationError
from spotify_auth.models import FlowVariant


class TestAuthFlowConfig:
    """Tests for AuthFlowConfig class."""

    def test_config_defaults(self):
        """Config can be created with defaults for the code variant."""
        config = AuthFlowConfig(client_id="id", secret_id="secret")

        assert config.variant is FlowVariant.AUTHORIZATION_CODE
        assert config.redirect_uri == "http://localhost:4002"
        assert config.server_uri == "http://localhost:4002"
        assert config.max_retries == 10
        assert config.timeout == 300.0
        assert config.stop_delay == 2.0
        assert config.html_response == DEFAULT_HTML_RESPONSE
        assert config.auto_refresh is False
        assert config.time_access_expiry is False

    def test_config_accepts_variant_string(self):
        """Variant may be given by value."""
        config = AuthFlowConfig(variant="implicit_grant", client_id="id")

        assert config.variant is FlowVariant.IMPLICIT_GRANT

    def test_config_rejects_unknown_variant(self):
        """Unknown variant names raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Unknown flow variant"):
            AuthFlowConfig(variant="device_code")

    def test_config_normalizes_scope(self):
        """Scope is stored as a de-duplicated tuple, order kept."""
        config = AuthFlowConfig(
            scope=["playlist-read-private", "user-read-email", "playlist-read-private"]
        )

        assert config.scope == ("playlist-read-private", "user-read-email")

    def test_code_variant_allows_missing_credentials(self):
        """Code variant without credentials is the bootstrap case."""
        config = AuthFlowConfig()

        assert config.client_id is None
        assert config.secret_id is None

    def test_implicit_requires_client_id(self):
        """Implicit grant needs a client_id."""
        with pytest.raises(ConfigurationError, match="client_id cannot be empty"):
            AuthFlowConfig(variant=FlowVariant.IMPLICIT_GRANT)

    def test_token_swap_requires_exchange_server(self):
        """Token swap needs an exchange server URI."""
        with pytest.raises(ConfigurationError, match="exchange_server_uri is required"):
            AuthFlowConfig(variant=FlowVariant.TOKEN_SWAP)

    def test_config_validates_server_uri(self):
        """server_uri must be a plain http URI."""
        with pytest.raises(ConfigurationError, match="http://"):
            AuthFlowConfig(server_uri="https://localhost:4002")

    def test_config_validates_server_port(self):
        """server_uri port must be valid."""
        with pytest.raises(ConfigurationError, match="Invalid port"):
            AuthFlowConfig(server_uri="http://localhost:99999")

    def test_config_validates_max_retries(self):
        """max_retries must be at least 1."""
        with pytest.raises(ConfigurationError, match="max_retries"):
            AuthFlowConfig(max_retries=0)

    def test_config_validates_timeout(self):
        """timeout must be positive."""
        with pytest.raises(ConfigurationError, match="timeout must be positive"):
            AuthFlowConfig(timeout=0)

    def test_config_validates_stop_delay(self):
        """stop_delay cannot be negative."""
        with pytest.raises(ConfigurationError, match="stop_delay"):
            AuthFlowConfig(stop_delay=-1)

    def test_empty_html_response_falls_back_to_default(self):
        """An empty html_response keeps the close-window default."""
        config = AuthFlowConfig(html_response="")

        assert config.html_response == DEFAULT_HTML_RESPONSE

    def test_auto_refresh_implies_expiry_timing(self):
        """The expiry timer runs when either flag is set."""
        assert AuthFlowConfig().times_expiry is False
        assert AuthFlowConfig(time_access_expiry=True).times_expiry is True
        assert AuthFlowConfig(auto_refresh=True).times_expiry is True

    @mock.patch.dict(
        "os.environ",
        {
            "SPOTIFY_CLIENT_ID": "env_id",
            "SPOTIFY_SECRET_ID": "env_secret",
            "SPOTIFY_SERVER_URI": "http://127.0.0.1:5000",
            "SPOTIFY_SCOPE": "user-read-email playlist-read-private",
            "SPOTIFY_AUTH_TIMEOUT": "60",
        },
        clear=True,
    )
    def test_from_env(self):
        """from_env loads configuration from environment variables."""
        config = AuthFlowConfig.from_env()

        assert config.client_id == "env_id"
        assert config.secret_id == "env_secret"
        assert config.server_uri == "http://127.0.0.1:5000"
        assert config.redirect_uri == "http://localhost:4002"
        assert config.scope == ("user-read-email", "playlist-read-private")
        assert config.timeout == 60.0

    @mock.patch.dict("os.environ", {"SPOTIFY_AUTH_TIMEOUT": "soon"}, clear=True)
    def test_from_env_rejects_bad_timeout(self):
        """from_env raises ConfigurationError for a non-numeric timeout."""
        with pytest.raises(ConfigurationError, match="SPOTIFY_AUTH_TIMEOUT"):
            AuthFlowConfig.from_env()

    @mock.patch.dict("os.environ", {}, clear=True)
    def test_from_env_token_swap_without_exchange_server(self):
        """from_env validates variant requirements."""
        with pytest.raises(ConfigurationError, match="exchange_server_uri"):
            AuthFlowConfig.from_env(variant=FlowVariant.TOKEN_SWAP)
