"""
Exception classes for the Spotify authorization flow.

Every failure an authorization attempt can end in has its own class so
callers can tell a denied consent screen from a flaky network or a
callback that never arrived.
"""

from typing import Optional


class SpotifyAuthError(Exception):
    """Base exception for all authorization flow errors."""

    pass


class ConfigurationError(SpotifyAuthError):
    """Flow configuration error (missing or invalid configuration)."""

    pass


class AuthorizationError(SpotifyAuthError):
    """Authorization flow used incorrectly (e.g. waiting with no attempt)."""

    pass


class DuplicateStateError(SpotifyAuthError):
    """A live attempt is already registered under this state."""

    pass


class CorrelationError(SpotifyAuthError):
    """Callback state does not match any pending attempt."""

    pass


class ProviderError(SpotifyAuthError):
    """
    The callback or token response carried an OAuth error.

    Attributes:
        error: Error code reported by the provider (e.g. "access_denied")
        error_description: Optional human-readable description
    """

    def __init__(self, error: str, error_description: Optional[str] = None):
        self.error = error
        self.error_description = error_description
        message = f"{error} {error_description}" if error_description else error
        super().__init__(message)


class TransportError(SpotifyAuthError):
    """Network failure during token exchange, after all retries."""

    pass


class ProtocolError(SpotifyAuthError):
    """Token endpoint response could not be parsed."""

    pass


class MissingTokenError(SpotifyAuthError):
    """Token response parsed but carried no access token."""

    pass


class AuthorizationTimeoutError(SpotifyAuthError, TimeoutError):
    """No callback resolved the attempt within the wait window."""

    pass


class FlowCancelledError(SpotifyAuthError):
    """Attempt was cancelled or superseded before it resolved."""

    pass


class TokenNotAvailableError(SpotifyAuthError):
    """No token available (need to authorize first)."""

    pass
