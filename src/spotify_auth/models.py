"""
Data structures shared by the authorization flow components.

This module defines the flow variants, the token returned by Spotify's
accounts service, the immutable request describing one authorization
attempt, and the result types handed between the callback listener, the
orchestrator and the waiting caller.
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .exceptions import SpotifyAuthError

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize/"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"


class FlowVariant(Enum):
    """
    Authorization flow variants.

    Each variant decides which response type is requested, which path the
    callback arrives on, and whether (and where) a code must be exchanged.
    """

    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT_GRANT = "implicit_grant"
    TOKEN_SWAP = "token_swap"

    @property
    def response_type(self) -> str:
        """OAuth response_type requested in the authorization URL."""
        return "token" if self is FlowVariant.IMPLICIT_GRANT else "code"

    @property
    def callback_path(self) -> str:
        """Path the browser or exchange server calls back on."""
        return "/" if self is FlowVariant.AUTHORIZATION_CODE else "/auth"

    @property
    def exchanges_code(self) -> bool:
        """Whether a received code must be exchanged for a token."""
        return self is not FlowVariant.IMPLICIT_GRANT

    @property
    def exchange_endpoint(self) -> str:
        """Endpoint suffix for the code exchange request."""
        return "/authorize" if self is FlowVariant.TOKEN_SWAP else ""

    @property
    def refresh_endpoint(self) -> str:
        """Endpoint suffix for the refresh request."""
        return "/refresh" if self is FlowVariant.TOKEN_SWAP else ""


class FlowState(Enum):
    """Lifecycle states of the flow orchestrator."""

    IDLE = "idle"
    LISTENING = "listening"
    EXCHANGING = "exchanging"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Token:
    """
    Token returned by the accounts service (or carried by an implicit callback).

    A token with a non-empty error is an error result and never a usable
    credential, whatever its other fields contain.

    Attributes:
        access_token: Bearer credential for Web API calls
        token_type: Token type (typically "Bearer")
        expires_in: Lifetime of the access token in seconds
        refresh_token: Long-lived credential for silent refresh
        scope: Space-separated granted scopes
        error: OAuth error code, if the response was an error
        error_description: Human-readable error description
        issued_at: Epoch seconds when this token was received
    """

    access_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: float = 0.0
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    issued_at: float = field(default_factory=time.time)

    def has_error(self) -> bool:
        """Return True if this token is an error result."""
        return self.error is not None

    @property
    def expires_at(self) -> float:
        """Epoch seconds when the access token expires."""
        return self.issued_at + self.expires_in

    def is_expired(self) -> bool:
        """Check if the access token lifetime has elapsed."""
        return time.time() >= self.expires_at

    def authorization_header(self) -> Dict[str, str]:
        """
        Authorization header for Web API requests.

        Returns:
            Dict with Authorization header: {"Authorization": "Bearer <token>"}
        """
        return {"Authorization": f"{self.token_type or 'Bearer'} {self.access_token}"}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        """
        Build a Token from a decoded JSON response.

        Accepts both the OAuth error shape (``error`` + ``error_description``
        strings) and the Web API shape (``error`` object with ``message``).

        Raises:
            ValueError: If ``expires_in`` is present but not numeric
        """
        error = data.get("error")
        error_description = data.get("error_description")
        if isinstance(error, dict):
            error_description = error_description or error.get("message")
            error = str(error.get("status", "error"))

        expires_in = data.get("expires_in")
        return cls(
            access_token=data.get("access_token"),
            token_type=data.get("token_type"),
            expires_in=float(expires_in) if expires_in is not None else 0.0,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            error=error,
            error_description=error_description,
        )


def normalize_scope(scope: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Collapse a scope collection (or space-separated string) to a tuple."""
    if not scope:
        return ()
    if isinstance(scope, str):
        scope = scope.split()
    return tuple(dict.fromkeys(s for s in scope if s))


@dataclass(frozen=True)
class AuthRequest:
    """
    Immutable description of one authorization attempt.

    Attributes:
        state: Opaque correlation token, unique per live attempt
        client_id: Spotify application client ID
        secret_id: Spotify application client secret (code variant only)
        redirect_uri: Redirect URI registered with the Spotify application
        server_uri: Local address the callback listener binds to
        exchange_server_uri: Exchange server base URI (token-swap variant)
        scope: Requested permission strings
        show_dialog: Force the consent dialog even if already approved
    """

    state: str
    client_id: Optional[str] = None
    secret_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    server_uri: Optional[str] = None
    exchange_server_uri: Optional[str] = None
    scope: Tuple[str, ...] = ()
    show_dialog: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id) and bool(self.secret_id)

    def with_credentials(self, client_id: str, secret_id: str) -> "AuthRequest":
        """Return a copy carrying new client credentials."""
        return replace(self, client_id=client_id, secret_id=secret_id)


@dataclass(frozen=True)
class CallbackResult:
    """
    What a callback delivered: exactly one of code, token or error.
    """

    code: Optional[str] = None
    token: Optional[Token] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    def __post_init__(self) -> None:
        populated = sum(v is not None for v in (self.code, self.token, self.error))
        if populated != 1:
            raise ValueError("CallbackResult needs exactly one of code, token or error")

    @classmethod
    def from_code(cls, code: str) -> "CallbackResult":
        return cls(code=code)

    @classmethod
    def from_token(cls, token: Token) -> "CallbackResult":
        return cls(token=token)

    @classmethod
    def from_error(
        cls, error: str, error_description: Optional[str] = None
    ) -> "CallbackResult":
        return cls(error=error, error_description=error_description)


@dataclass
class AuthorizationResult:
    """
    Outcome of an authorization attempt or a refresh.

    Attributes:
        success: Whether a usable token was obtained
        token: The token (if successful)
        error: The failure (if not successful)
    """

    success: bool
    token: Optional[Token] = None
    error: Optional[SpotifyAuthError] = None

    @classmethod
    def succeeded(cls, token: Token) -> "AuthorizationResult":
        return cls(success=True, token=token)

    @classmethod
    def failed(cls, error: SpotifyAuthError) -> "AuthorizationResult":
        return cls(success=False, error=error)

    @property
    def reason(self) -> Optional[str]:
        """Human-readable failure reason, None on success."""
        return str(self.error) if self.error is not None else None

    def unwrap(self) -> Token:
        """
        Return the token or raise the failure.

        Raises:
            SpotifyAuthError: The failure carried by this result
        """
        if not self.success:
            raise self.error
        return self.token
