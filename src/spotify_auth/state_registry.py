"""
Correlation between callback state values and pending attempts.

The registry is the only structure touched by both the callback listener
threads and the orchestrator, so every lookup, insert and removal happens
under one lock.
"""

import logging
import secrets
import threading
from typing import Dict, Optional

from .exceptions import CorrelationError, DuplicateStateError
from .models import AuthorizationResult, AuthRequest

logger = logging.getLogger(__name__)


def generate_state() -> str:
    """Generate a random, URL-safe correlation state."""
    return secrets.token_urlsafe(16)


class PendingAttempt:
    """
    One authorization attempt awaiting its callback.

    The completion signal is a single slot: the first call to ``resolve``
    stores the result and wakes the waiter, every later call is dropped.
    """

    def __init__(self, request: AuthRequest):
        self._request = request
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._result: Optional[AuthorizationResult] = None

    @property
    def state(self) -> str:
        return self._request.state

    @property
    def request(self) -> AuthRequest:
        with self._lock:
            return self._request

    def update_credentials(self, client_id: str, secret_id: str) -> AuthRequest:
        """Swap in client credentials posted by the bootstrap page."""
        with self._lock:
            self._request = self._request.with_credentials(client_id, secret_id)
            return self._request

    @property
    def is_resolved(self) -> bool:
        return self._done.is_set()

    @property
    def result(self) -> Optional[AuthorizationResult]:
        with self._lock:
            return self._result

    def resolve(self, result: AuthorizationResult) -> bool:
        """
        Complete the attempt.

        Returns:
            True if this call delivered the result, False if already resolved
        """
        with self._lock:
            if self._done.is_set():
                logger.debug(f"Dropping late result for state {self.state}")
                return False
            self._result = result
            self._done.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[AuthorizationResult]:
        """
        Block until resolved or ``timeout`` seconds elapse.

        Returns:
            The result, or None on timeout
        """
        if not self._done.wait(timeout=timeout):
            return None
        return self.result


class StateRegistry:
    """Lock-guarded map of live state values to pending attempts."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, PendingAttempt] = {}

    def put(self, attempt: PendingAttempt) -> None:
        """
        Register an attempt under its state.

        Raises:
            DuplicateStateError: If a live attempt already uses this state
        """
        with self._lock:
            if attempt.state in self._attempts:
                raise DuplicateStateError(
                    f"An attempt with state {attempt.state!r} is already pending"
                )
            self._attempts[attempt.state] = attempt

    def get(self, state: Optional[str]) -> Optional[PendingAttempt]:
        """Look up the attempt for ``state``; None if unknown."""
        if not state:
            return None
        with self._lock:
            return self._attempts.get(state)

    def require(self, state: Optional[str]) -> PendingAttempt:
        """
        Look up the attempt for ``state``.

        Raises:
            CorrelationError: If no live attempt uses this state
        """
        attempt = self.get(state)
        if attempt is None:
            raise CorrelationError(
                f'Failed - Unable to find auth request with state "{state}" - Please retry'
            )
        return attempt

    def remove(self, state: str) -> Optional[PendingAttempt]:
        """Remove ``state`` if present. Safe to call repeatedly."""
        with self._lock:
            return self._attempts.pop(state, None)

    def __contains__(self, state: str) -> bool:
        with self._lock:
            return state in self._attempts

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
