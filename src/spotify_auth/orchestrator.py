"""
Flow orchestrator for the Spotify authorization flow.

This module provides the main interface applications use to obtain a
token. It owns at most one in-flight attempt at a time: it registers the
attempt's state, runs the callback listener, drives the code exchange,
and hands the waiting caller exactly one result per attempt.
"""

import logging
import threading
import webbrowser
from typing import Callable, Dict, List, Optional

from .callback_server import CallbackListener
from .config import AuthFlowConfig
from .exceptions import (
    AuthorizationError,
    AuthorizationTimeoutError,
    FlowCancelledError,
    MissingTokenError,
    ProtocolError,
    ProviderError,
    TokenNotAvailableError,
    TransportError,
)
from .expiry import ExpiryTimer
from .models import (
    SPOTIFY_TOKEN_URL,
    AuthorizationResult,
    AuthRequest,
    CallbackResult,
    FlowState,
    FlowVariant,
    Token,
)
from .state_registry import PendingAttempt, StateRegistry, generate_state
from .token_client import TokenExchangeClient
from .urls import build_authorization_url

logger = logging.getLogger(__name__)

EVENTS = ("success", "failure", "expired", "refresh", "exchange_ready")


class FlowOrchestrator:
    """
    Coordinates one authorization attempt at a time.

    Example:
        config = AuthFlowConfig(
            client_id="...", secret_id="...", scope=("playlist-read-private",)
        )
        with FlowOrchestrator(config) as flow:
            result = flow.authorize(open_browser=True)
            if result.success:
                headers = result.token.authorization_header()

    Observers registered with ``on_success``, ``on_failure``, ``on_expired``,
    ``on_refresh`` and ``on_exchange_ready`` run on whichever thread
    produced the event (caller, listener or timer thread).
    """

    def __init__(
        self,
        config: AuthFlowConfig,
        token_client: Optional[TokenExchangeClient] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Flow configuration
            token_client: Token endpoint client (built from config if not provided)
        """
        self.config = config
        self.variant: FlowVariant = config.variant
        self.registry = StateRegistry()

        if token_client is None:
            base_url = (
                config.exchange_server_uri
                if self.variant is FlowVariant.TOKEN_SWAP
                else SPOTIFY_TOKEN_URL
            )
            token_client = TokenExchangeClient(
                base_url=base_url,
                max_retries=config.max_retries,
                timeout=config.request_timeout,
                proxies=config.proxies,
            )
        self.token_client = token_client

        self.listener = CallbackListener(
            config.server_uri,
            self.registry,
            self._handle_callback,
            variant=self.variant,
            html_response=config.html_response,
        )
        self.expiry_timer = ExpiryTimer(self._handle_expired, enabled=config.times_expiry)

        self._lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._attempt: Optional[PendingAttempt] = None
        self._state = FlowState.IDLE
        self._token: Optional[Token] = None
        self._token_request: Optional[AuthRequest] = None
        self._observers: Dict[str, List[Callable]] = {event: [] for event in EVENTS}
        self._closed = False

    # Observers

    def on_success(self, callback: Callable[[Token], None]) -> Callable[[Token], None]:
        self._observers["success"].append(callback)
        return callback

    def on_failure(self, callback: Callable[[Exception], None]) -> Callable[[Exception], None]:
        self._observers["failure"].append(callback)
        return callback

    def on_expired(self, callback: Callable[[Token], None]) -> Callable[[Token], None]:
        self._observers["expired"].append(callback)
        return callback

    def on_refresh(self, callback: Callable[[Token], None]) -> Callable[[Token], None]:
        self._observers["refresh"].append(callback)
        return callback

    def on_exchange_ready(self, callback: Callable[[str], None]) -> Callable[[str], None]:
        self._observers["exchange_ready"].append(callback)
        return callback

    def _notify(self, event: str, payload) -> None:
        for callback in list(self._observers[event]):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"{event} observer {callback!r} raised")

    # Introspection

    @property
    def state(self) -> FlowState:
        with self._lock:
            return self._state

    @property
    def token(self) -> Optional[Token]:
        with self._lock:
            return self._token

    @property
    def current_request(self) -> Optional[AuthRequest]:
        with self._lock:
            attempt = self._attempt
        return attempt.request if attempt is not None else None

    @property
    def authorization_url(self) -> Optional[str]:
        request = self.current_request
        if request is None:
            return None
        return build_authorization_url(request, self.variant)

    # Attempt lifecycle

    def start_attempt(
        self, state: Optional[str] = None, open_browser: Optional[bool] = None
    ) -> AuthRequest:
        """
        Begin a new authorization attempt.

        Any attempt still in flight is cancelled first; its waiter receives a
        FlowCancelledError result and its late callbacks are ignored.

        Args:
            state: Explicit state (generated if neither this nor config sets one)
            open_browser: Open the authorization URL (defaults to config)

        Returns:
            The new attempt's AuthRequest

        Raises:
            DuplicateStateError: If the state is already live
            OSError: If the callback listener cannot bind
        """
        superseded = None
        with self._start_lock:
            with self._lock:
                previous = self._attempt
            if previous is not None:
                cancelled = AuthorizationResult.failed(
                    FlowCancelledError("Authorization attempt superseded by a new attempt")
                )
                if self._finish(previous, cancelled, notify=False):
                    superseded = cancelled
                self.registry.remove(previous.state)

            request = AuthRequest(
                state=state or self.config.state or generate_state(),
                client_id=self.config.client_id,
                secret_id=self.config.secret_id,
                redirect_uri=self.config.redirect_uri,
                server_uri=self.config.server_uri,
                exchange_server_uri=self.config.exchange_server_uri,
                scope=self.config.scope,
                show_dialog=self.config.show_dialog,
            )
            attempt = PendingAttempt(request)
            with self._lock:
                self.registry.put(attempt)
                self._attempt = attempt
                self._state = FlowState.LISTENING

            try:
                self.listener.start()
            except OSError:
                self.registry.remove(attempt.state)
                with self._lock:
                    self._attempt = None
                    self._state = FlowState.IDLE
                raise

        # observers may start another attempt, so they run outside _start_lock
        if superseded is not None:
            self._notify("failure", superseded.error)

        url = build_authorization_url(request, self.variant)
        logger.info(f"Authorization attempt started ({self.variant.value})")
        self._notify("exchange_ready", url)

        if self.config.open_browser if open_browser is None else open_browser:
            try:
                webbrowser.open(url)
            except webbrowser.Error as e:
                logger.warning(f"Could not open browser automatically: {e}")

        return request

    def wait(self, timeout: Optional[float] = None) -> AuthorizationResult:
        """
        Wait for the current attempt to resolve.

        On timeout the attempt is failed with AuthorizationTimeoutError; a
        callback arriving afterwards is discarded.

        Args:
            timeout: Seconds to wait (defaults to config.timeout)

        Returns:
            AuthorizationResult with the token or the failure

        Raises:
            AuthorizationError: If no attempt has been started
        """
        with self._lock:
            attempt = self._attempt
        if attempt is None:
            raise AuthorizationError(
                "No authorization attempt in progress. Call start_attempt() first."
            )

        timeout = self.config.timeout if timeout is None else timeout
        logger.info(f"Waiting for authorization callback (timeout: {timeout}s)")

        result = attempt.wait(timeout)
        if result is not None:
            return result

        failure = AuthorizationResult.failed(
            AuthorizationTimeoutError("Authorization request has timed out.")
        )
        if self._finish(attempt, failure):
            logger.warning(f"Timeout waiting for callback after {timeout}s")
            return failure
        return attempt.result

    def authorize(
        self,
        open_browser: Optional[bool] = None,
        timeout: Optional[float] = None,
        state: Optional[str] = None,
    ) -> AuthorizationResult:
        """Start an attempt and wait for its result."""
        self.start_attempt(state=state, open_browser=open_browser)
        return self.wait(timeout)

    def cancel(self, reason: str = "Authorization attempt was cancelled") -> bool:
        """
        Fail the in-flight attempt with FlowCancelledError.

        Returns:
            True if an unresolved attempt was cancelled
        """
        with self._lock:
            attempt = self._attempt
        if attempt is None:
            return False
        return self._finish(attempt, AuthorizationResult.failed(FlowCancelledError(reason)))

    def stop(self, delay: Optional[float] = None) -> None:
        """
        End the current attempt and schedule listener shutdown.

        Safe to call repeatedly and before any callback arrives.

        Args:
            delay: Seconds before the listener shuts down (defaults to config)
        """
        self.cancel("Authorization attempt was stopped")
        with self._lock:
            attempt = self._attempt
            self._attempt = None
            self._state = FlowState.IDLE
        if attempt is not None:
            self.registry.remove(attempt.state)
        self.listener.stop(self.config.stop_delay if delay is None else delay)

    def close(self) -> None:
        """
        Stop everything immediately, including the expiry timer.

        A refresh already running on the timer thread may finish, but it
        cannot re-arm the timer afterwards.
        """
        with self._lock:
            self._closed = True
        self.stop(delay=0)
        self.expiry_timer.close()
        self.listener.close()

    def __enter__(self) -> "FlowOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Token handling

    def refresh(self) -> AuthorizationResult:
        """
        Obtain a fresh access token with the stored refresh token.

        The previous refresh token is kept when the response omits one.

        Returns:
            AuthorizationResult with the refreshed token or the failure

        Raises:
            TokenNotAvailableError: If no refresh token is available
        """
        with self._lock:
            current = self._token
            request = self._token_request
        if current is None or not current.refresh_token:
            raise TokenNotAvailableError(
                "No refresh token available. Run the authorization flow first."
            )

        try:
            token = self.token_client.refresh(
                current.refresh_token,
                endpoint=self.variant.refresh_endpoint,
                credentials=self._credentials(request),
            )
        except (TransportError, ProtocolError) as e:
            result = AuthorizationResult.failed(e)
        else:
            result = self._classify(token, "Token had no access token attached.")

        if not result.success:
            logger.error(f"Token refresh failed: {result.reason}")
            self._notify("failure", result.error)
            return result

        if not result.token.refresh_token:
            result.token.refresh_token = current.refresh_token
        with self._lock:
            self._token = result.token
        self.expiry_timer.arm(result.token)
        logger.info("Successfully refreshed access token")
        self._notify("refresh", result.token)
        return result

    def _credentials(self, request: Optional[AuthRequest]):
        if self.variant is not FlowVariant.AUTHORIZATION_CODE:
            return None
        if request is None or not request.has_credentials:
            return None
        return (request.client_id, request.secret_id)

    @staticmethod
    def _classify(token: Token, missing_message: str) -> AuthorizationResult:
        if token.has_error():
            return AuthorizationResult.failed(
                ProviderError(token.error, token.error_description)
            )
        if not token.access_token:
            return AuthorizationResult.failed(MissingTokenError(missing_message))
        return AuthorizationResult.succeeded(token)

    def _handle_callback(self, attempt: PendingAttempt, result: CallbackResult) -> None:
        """Turn what a callback delivered into the attempt's result."""
        if attempt.is_resolved:
            logger.debug("Ignoring callback for an attempt that already resolved")
            return

        if result.error is not None:
            self._finish(
                attempt,
                AuthorizationResult.failed(ProviderError(result.error, result.error_description)),
            )
            return

        if result.token is not None:
            self._finish(attempt, self._classify(result.token, "Token had no access token attached."))
            return

        with self._lock:
            if attempt is self._attempt and self._state is FlowState.LISTENING:
                self._state = FlowState.EXCHANGING

        request = attempt.request
        try:
            token = self.token_client.exchange_code(
                result.code,
                endpoint=self.variant.exchange_endpoint,
                redirect_uri=(
                    request.redirect_uri
                    if self.variant is FlowVariant.AUTHORIZATION_CODE
                    else None
                ),
                credentials=self._credentials(request),
            )
        except (TransportError, ProtocolError) as e:
            self._finish(attempt, AuthorizationResult.failed(e))
            return

        self._finish(attempt, self._classify(token, "Exchange token not returned by server."))

    def _finish(
        self, attempt: PendingAttempt, result: AuthorizationResult, notify: bool = True
    ) -> bool:
        """
        Resolve ``attempt`` once and publish the outcome.

        With ``notify=False`` observers are left to the caller.

        Returns:
            True if this call resolved the attempt
        """
        if not attempt.resolve(result):
            return False
        self.registry.remove(attempt.state)

        with self._lock:
            current = attempt is self._attempt
            if current:
                self._state = FlowState.SUCCEEDED if result.success else FlowState.FAILED
                if result.success:
                    self._token = result.token
                    self._token_request = attempt.request

        if current:
            self.listener.stop(self.config.stop_delay)

        if result.success:
            logger.info("Authorization completed successfully")
            if current:
                self.expiry_timer.arm(result.token)
            if notify:
                self._notify("success", result.token)
        else:
            logger.error(f"Authorization failed: {result.reason}")
            if notify:
                self._notify("failure", result.error)
        return True

    def _handle_expired(self, token: Token) -> None:
        with self._lock:
            closed = self._closed
        if closed:
            return
        self._notify("expired", token)
        if not self.config.auto_refresh:
            return
        try:
            self.refresh()
        except TokenNotAvailableError as e:
            logger.warning(f"Cannot refresh expired token: {e}")
            self._notify("failure", e)
