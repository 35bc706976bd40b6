"""One-shot access token expiry timer."""

import logging
import threading
from typing import Callable, Optional

from .models import Token

logger = logging.getLogger(__name__)


class ExpiryTimer:
    """
    Fires ``on_expired`` once a token's lifetime has elapsed.

    At most one timer is live at a time: arming always disarms the previous
    timer first. A generation counter drops a firing that raced with
    ``arm`` or ``disarm``. Tokens without a positive lifetime are never
    timed, and once closed the timer ignores further ``arm`` calls.

    Args:
        on_expired: Called with the expired token on the timer thread
        enabled: When False, ``arm`` only disarms
    """

    def __init__(self, on_expired: Callable[[Token], None], enabled: bool = True):
        self._on_expired = on_expired
        self.enabled = enabled
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._closed = False

    @property
    def is_armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def arm(self, token: Token) -> None:
        """Start timing ``token``, replacing any running timer."""
        with self._lock:
            self._cancel_locked()
            if not self.enabled or self._closed:
                return
            delay = token.expires_in
            if delay <= 0:
                logger.warning("Access token has no positive expires_in; expiry not timed")
                return
            self._generation += 1
            timer = threading.Timer(delay, self._fire, args=(self._generation, token))
            timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug(f"Access token expiry timer armed for {delay:.2f}s")

    def disarm(self) -> None:
        """Cancel the running timer, if any."""
        with self._lock:
            self._cancel_locked()

    def close(self) -> None:
        """Disarm for good; later ``arm`` calls do nothing."""
        with self._lock:
            self._closed = True
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int, token: Token) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self._generation += 1
        logger.info("Access token expired")
        self._on_expired(token)
