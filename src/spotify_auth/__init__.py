"""
Spotify authorization flow for local applications.

This package obtains an access/refresh token pair from Spotify's accounts
service by running a local callback listener while the user authorizes in
a browser. Three flow variants are supported:
- Authorization code (local exchange with client credentials)
- Implicit grant (token delivered directly to the callback)
- Token swap (an exchange server holds the credentials)

Public API:
    AuthFlowConfig: Flow configuration
    FlowOrchestrator: Runs authorization attempts
    FlowVariant: Flow variant selector
    FlowState: Orchestrator lifecycle states
    Token: Access/refresh token data
    AuthRequest: Immutable description of one attempt
    AuthorizationResult: Success-or-failure result
    CallbackListener: Local callback HTTP endpoint
    TokenExchangeClient: Token endpoint client with retry
    ExpiryTimer: Access token expiry timer
    StateRegistry: State to attempt correlation

Exceptions:
    SpotifyAuthError: Base exception
    ConfigurationError, AuthorizationError, DuplicateStateError,
    CorrelationError, ProviderError, TransportError, ProtocolError,
    MissingTokenError, AuthorizationTimeoutError, FlowCancelledError,
    TokenNotAvailableError
"""

from .callback_server import CallbackListener
from .config import AuthFlowConfig
from .exceptions import (
    AuthorizationError,
    AuthorizationTimeoutError,
    ConfigurationError,
    CorrelationError,
    DuplicateStateError,
    FlowCancelledError,
    MissingTokenError,
    ProtocolError,
    ProviderError,
    SpotifyAuthError,
    TokenNotAvailableError,
    TransportError,
)
from .expiry import ExpiryTimer
from .models import (
    AuthorizationResult,
    AuthRequest,
    CallbackResult,
    FlowState,
    FlowVariant,
    Token,
)
from .orchestrator import FlowOrchestrator
from .state_registry import PendingAttempt, StateRegistry, generate_state
from .token_client import TokenExchangeClient
from .urls import build_authorization_url

__all__ = [
    # Configuration
    "AuthFlowConfig",
    # Models
    "FlowVariant",
    "FlowState",
    "Token",
    "AuthRequest",
    "CallbackResult",
    "AuthorizationResult",
    # Components
    "StateRegistry",
    "PendingAttempt",
    "generate_state",
    "TokenExchangeClient",
    "CallbackListener",
    "ExpiryTimer",
    "FlowOrchestrator",
    "build_authorization_url",
    # Exceptions
    "SpotifyAuthError",
    "ConfigurationError",
    "AuthorizationError",
    "DuplicateStateError",
    "CorrelationError",
    "ProviderError",
    "TransportError",
    "ProtocolError",
    "MissingTokenError",
    "AuthorizationTimeoutError",
    "FlowCancelledError",
    "TokenNotAvailableError",
]
