"""
Configuration for the Spotify authorization flow.

Configuration can be loaded from environment variables or provided
programmatically. Every knob is an explicit field; nothing is read from
global settings once the config object exists.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .exceptions import ConfigurationError
from .models import FlowVariant, normalize_scope
from .urls import parse_server_uri

DEFAULT_HTML_RESPONSE = "<script>window.close();</script>"


@dataclass
class AuthFlowConfig:
    """
    Configuration for one flow orchestrator.

    Attributes:
        variant: Which authorization flow to run
        client_id: Spotify application client ID
        secret_id: Spotify application client secret (code variant)
        redirect_uri: Redirect URI registered with the Spotify application
        server_uri: Local address for the callback listener
        exchange_server_uri: Exchange server base URI (token-swap variant)
        scope: Requested permission strings
        state: Explicit state to use instead of a generated one
        show_dialog: Force Spotify's consent dialog
        max_retries: Maximum token requests made per exchange
        timeout: Seconds to wait for the callback to resolve an attempt
        stop_delay: Grace period before the listener shuts down
        request_timeout: Per-request timeout for the token endpoint
        auto_refresh: Refresh automatically when the access token expires
        time_access_expiry: Arm the expiry timer after a token is obtained
        html_response: Body served on the token-swap callback
        open_browser: Open the authorization URL in the system browser
        proxies: Proxy mapping passed to requests for token calls
    """

    variant: FlowVariant = FlowVariant.AUTHORIZATION_CODE
    client_id: Optional[str] = None
    secret_id: Optional[str] = None
    redirect_uri: str = "http://localhost:4002"
    server_uri: str = "http://localhost:4002"
    exchange_server_uri: Optional[str] = None
    scope: Tuple[str, ...] = ()
    state: Optional[str] = None
    show_dialog: bool = False

    max_retries: int = 10
    timeout: float = 300.0
    stop_delay: float = 2.0
    request_timeout: float = 30.0

    auto_refresh: bool = False
    time_access_expiry: bool = False

    html_response: str = DEFAULT_HTML_RESPONSE
    open_browser: bool = False
    proxies: Optional[Dict[str, str]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if isinstance(self.variant, str):
            try:
                self.variant = FlowVariant(self.variant)
            except ValueError as e:
                raise ConfigurationError(f"Unknown flow variant: {self.variant}") from e

        self.scope = normalize_scope(self.scope)

        if not self.html_response:
            self.html_response = DEFAULT_HTML_RESPONSE

        if self.variant is FlowVariant.IMPLICIT_GRANT and not self.client_id:
            raise ConfigurationError("client_id cannot be empty for implicit grant")

        if self.variant is FlowVariant.TOKEN_SWAP and not self.exchange_server_uri:
            raise ConfigurationError("exchange_server_uri is required for token swap")

        if not self.server_uri:
            raise ConfigurationError("server_uri cannot be empty")
        try:
            parse_server_uri(self.server_uri)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")

        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

        if self.stop_delay < 0:
            raise ConfigurationError("stop_delay cannot be negative")

        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

    @property
    def times_expiry(self) -> bool:
        """Whether the expiry timer is armed after a successful token."""
        return self.time_access_expiry or self.auto_refresh

    @classmethod
    def from_env(
        cls, variant: FlowVariant = FlowVariant.AUTHORIZATION_CODE
    ) -> "AuthFlowConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            SPOTIFY_CLIENT_ID: Spotify application client ID
            SPOTIFY_SECRET_ID: Spotify application client secret
            SPOTIFY_REDIRECT_URI: Redirect URI (default: http://localhost:4002)
            SPOTIFY_SERVER_URI: Listener address (default: http://localhost:4002)
            SPOTIFY_EXCHANGE_SERVER_URI: Exchange server for token swap
            SPOTIFY_SCOPE: Space-separated scopes
            SPOTIFY_AUTH_TIMEOUT: Seconds to wait for the callback (default: 300)

        Returns:
            AuthFlowConfig instance

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        try:
            timeout = float(os.environ.get("SPOTIFY_AUTH_TIMEOUT", "300"))
        except ValueError as e:
            raise ConfigurationError(
                f"SPOTIFY_AUTH_TIMEOUT must be a number: {e}"
            ) from e

        return cls(
            variant=variant,
            client_id=os.environ.get("SPOTIFY_CLIENT_ID"),
            secret_id=os.environ.get("SPOTIFY_SECRET_ID"),
            redirect_uri=os.environ.get("SPOTIFY_REDIRECT_URI", "http://localhost:4002"),
            server_uri=os.environ.get("SPOTIFY_SERVER_URI", "http://localhost:4002"),
            exchange_server_uri=os.environ.get("SPOTIFY_EXCHANGE_SERVER_URI"),
            scope=normalize_scope(os.environ.get("SPOTIFY_SCOPE", "")),
            timeout=timeout,
        )
