"""
Callback listener for the Spotify authorization flow.

This module hosts the small HTTP endpoint the browser (or exchange server)
redirects to once the user has answered Spotify's consent screen. The
listener never owns an attempt: it resolves the callback's state through
the registry and hands what it received to the orchestrator.

IMPORTANT: The listener binds plain HTTP on a local address. It is meant
to run only for the duration of an authorization attempt.
"""

import logging
import threading
import time
from typing import Callable, Optional
from urllib.parse import urlsplit

from flask import Flask, Response, redirect, request
from werkzeug.serving import WSGIRequestHandler, make_server

from .config import DEFAULT_HTML_RESPONSE
from .exceptions import CorrelationError
from .models import CallbackResult, FlowVariant, Token
from .state_registry import PendingAttempt, StateRegistry
from .urls import build_authorization_url, parse_server_uri

logger = logging.getLogger(__name__)

CLOSE_WINDOW_HTML = "<script>window.close()</script>"

Dispatch = Callable[[PendingAttempt, CallbackResult], None]


class _QuietRequestHandler(WSGIRequestHandler):
    """Request handler that keeps query strings (codes, tokens) out of logs."""

    def log_request(self, code="-", size="-"):
        logger.debug(f"{self.command} {urlsplit(self.path).path} -> {code}")


class CallbackListener:
    """
    Local HTTP server receiving authorization callbacks.

    Routes depend on the flow variant:
    - Authorization code: ``GET /`` (state + code/error) and ``POST /``
      (bootstrap form with client credentials)
    - Implicit grant: ``GET /auth`` (state + token fields/error)
    - Token swap: ``GET /auth`` (state + code/error), exchanged before replying

    Args:
        server_uri: Address to bind, e.g. http://localhost:4002
        registry: Registry used to resolve callback state
        dispatch: Receives the attempt and what its callback delivered
        variant: Flow variant deciding the routes
        html_response: Body served on token-swap callbacks
    """

    def __init__(
        self,
        server_uri: str,
        registry: StateRegistry,
        dispatch: Dispatch,
        variant: FlowVariant = FlowVariant.AUTHORIZATION_CODE,
        html_response: str = DEFAULT_HTML_RESPONSE,
    ):
        self.host, self._requested_port = parse_server_uri(server_uri)
        self.registry = registry
        self.variant = variant
        self.html_response = html_response or DEFAULT_HTML_RESPONSE
        self._dispatch = dispatch

        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)

        self._lock = threading.Lock()
        self._server = None
        self._thread: Optional[threading.Thread] = None
        self._stop_timer: Optional[threading.Timer] = None
        self._stop_deadline = 0.0
        self._generation = 0

        if variant is FlowVariant.AUTHORIZATION_CODE:
            self.app.add_url_rule(
                "/", "code_callback", self._handle_code_callback, methods=["GET"]
            )
            self.app.add_url_rule(
                "/", "code_bootstrap", self._handle_bootstrap, methods=["POST"]
            )
        elif variant is FlowVariant.IMPLICIT_GRANT:
            self.app.add_url_rule(
                "/auth", "implicit_callback", self._handle_implicit_callback, methods=["GET"]
            )
        else:
            self.app.add_url_rule(
                "/auth", "token_swap_callback", self._handle_token_swap_callback, methods=["GET"]
            )

    @property
    def port(self) -> int:
        """Bound port (the requested one until started)."""
        with self._lock:
            if self._server is not None:
                return self._server.server_port
            return self._requested_port

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._server is not None

    @staticmethod
    def _html(body: str, status: int = 200) -> Response:
        return Response(body, status=status, content_type="text/html")

    @staticmethod
    def _callback_result(args) -> CallbackResult:
        error = args.get("error")
        if error is not None:
            return CallbackResult.from_error(error, args.get("error_description"))
        code = args.get("code")
        if not code:
            return CallbackResult.from_error("missing_code", "No authorization code received")
        return CallbackResult.from_code(code)

    def _handle_code_callback(self) -> Response:
        """Authorization code callback; exchange happens off the request thread."""
        attempt = self.registry.get(request.args.get("state"))
        if attempt is None:
            logger.debug("Ignoring callback with unknown state")
            return self._html(CLOSE_WINDOW_HTML)

        logger.info("Received authorization callback")
        result = self._callback_result(request.args)
        threading.Thread(
            target=self._dispatch,
            args=(attempt, result),
            name=f"spotify-auth-exchange-{attempt.state[:8]}",
            daemon=True,
        ).start()
        return self._html(CLOSE_WINDOW_HTML)

    def _handle_bootstrap(self) -> Response:
        """Receive client credentials from the bootstrap page and redirect to Spotify."""
        attempt = self.registry.get(request.form.get("state"))
        if attempt is None:
            logger.warning("Bootstrap form posted with unknown state")
            return Response("Unknown state", status=400, content_type="text/plain")

        client_id = request.form.get("clientId")
        secret_id = request.form.get("secretId")
        if not client_id or not secret_id:
            return Response(
                "clientId and secretId are required", status=400, content_type="text/plain"
            )

        updated = attempt.update_credentials(client_id, secret_id)
        logger.info("Client credentials received from bootstrap page")
        return redirect(build_authorization_url(updated, self.variant), code=302)

    def _handle_implicit_callback(self) -> Response:
        """Implicit grant callback; the token arrives in the query string."""
        try:
            attempt = self.registry.require(request.args.get("state"))
        except CorrelationError as e:
            logger.error(str(e))
            return Response(str(e), status=500, content_type="text/plain")

        logger.info("Received implicit grant callback")
        error = request.args.get("error")
        if error is not None:
            result = CallbackResult.from_error(error, request.args.get("error_description"))
        else:
            try:
                expires_in = float(request.args.get("expires_in", "0"))
            except ValueError:
                result = CallbackResult.from_error(
                    "invalid_expires_in", "expires_in is not a number"
                )
            else:
                result = CallbackResult.from_token(
                    Token(
                        access_token=request.args.get("access_token"),
                        token_type=request.args.get("token_type"),
                        expires_in=expires_in,
                    )
                )

        self._dispatch(attempt, result)
        return self._html(CLOSE_WINDOW_HTML)

    def _handle_token_swap_callback(self) -> Response:
        """Token swap callback; the exchange completes before the response."""
        attempt = self.registry.get(request.args.get("state"))
        if attempt is None:
            logger.debug("Ignoring callback with unknown state")
            return self._html(self.html_response)

        logger.info("Received token swap callback")
        self._dispatch(attempt, self._callback_result(request.args))
        return self._html(self.html_response)

    def start(self) -> None:
        """
        Bind and serve in a background thread.

        Starting while a delayed stop is pending cancels that stop.

        Raises:
            OSError: If the address cannot be bound
        """
        with self._lock:
            self._generation += 1
            if self._stop_timer is not None:
                self._stop_timer.cancel()
                self._stop_timer = None
                logger.debug("Cancelled pending callback listener shutdown")
            if self._server is not None:
                return

            self._server = make_server(
                self.host,
                self._requested_port,
                self.app,
                threaded=True,
                request_handler=_QuietRequestHandler,
            )
            self._thread = threading.Thread(
                target=self._server.serve_forever,
                name="spotify-auth-callback",
                daemon=True,
            )
            self._thread.start()
            port = self._server.server_port

        logger.info(f"Callback listener started on http://{self.host}:{port}")

    def stop(self, delay: float = 2.0) -> None:
        """
        Shut down after ``delay`` seconds.

        The delay lets an in-flight response finish writing. Safe to call
        repeatedly and before ``start``. When a delayed stop is already
        pending the sooner deadline wins; a zero delay shuts down now.
        """
        with self._lock:
            if self._server is None:
                return
            deadline = time.monotonic() + max(0.0, delay)
            if self._stop_timer is not None:
                if deadline >= self._stop_deadline:
                    return
                self._stop_timer.cancel()
                self._stop_timer = None
                self._generation += 1
            if delay <= 0:
                self._shutdown_locked()
                return
            timer = threading.Timer(delay, self._delayed_shutdown, args=(self._generation,))
            timer.daemon = True
            self._stop_timer = timer
            self._stop_deadline = deadline
            timer.start()
        logger.debug(f"Callback listener shutdown scheduled in {delay}s")

    def close(self) -> None:
        """Shut down immediately."""
        with self._lock:
            self._generation += 1
            if self._stop_timer is not None:
                self._stop_timer.cancel()
                self._stop_timer = None
            if self._server is not None:
                self._shutdown_locked()

    def _delayed_shutdown(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._server is None:
                return
            self._stop_timer = None
            self._shutdown_locked()

    def _shutdown_locked(self) -> None:
        server, thread = self._server, self._thread
        self._server = None
        self._thread = None
        server.shutdown()
        server.server_close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        logger.info("Callback listener stopped")
