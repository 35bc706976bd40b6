"""
Token endpoint client for the Spotify authorization flow.

This module performs the two token requests the flow needs:
- Code exchange (authorization code -> access/refresh tokens)
- Refresh (refresh token -> new access token)

Network failures are retried with a linear backoff. Any HTTP response,
including one that carries an OAuth error, is parsed and returned as is.
"""

import logging
import time
from base64 import b64encode
from typing import Callable, Dict, Optional, Tuple

import requests

from .exceptions import ProtocolError, TransportError
from .models import SPOTIFY_TOKEN_URL, Token

logger = logging.getLogger(__name__)

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"

RETRY_BACKOFF_SECONDS = 0.125


class TokenExchangeClient:
    """
    Issues token requests with bounded retry.

    Args:
        base_url: Token endpoint, or exchange server base URI for token swap
        max_retries: Maximum number of requests made per exchange
        timeout: Per-request timeout in seconds
        proxies: Optional proxy mapping handed to requests
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        base_url: str = SPOTIFY_TOKEN_URL,
        max_retries: int = 10,
        timeout: float = 30.0,
        proxies: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self.proxies = proxies
        self._sleep = sleep

    def exchange(
        self,
        grant_type: str,
        value: str,
        endpoint: str = "",
        redirect_uri: Optional[str] = None,
        credentials: Optional[Tuple[str, str]] = None,
    ) -> Token:
        """
        POST a grant to the token endpoint and parse the response.

        Args:
            grant_type: "authorization_code" or "refresh_token"
            value: The authorization code or refresh token
            endpoint: Suffix appended to the base URL (e.g. "/refresh")
            redirect_uri: Sent with code exchanges when given
            credentials: (client_id, secret_id) for the Basic auth header

        Returns:
            Parsed Token, which may carry an OAuth error

        Raises:
            ValueError: If grant_type is not supported
            TransportError: If every attempt failed at the network level
            ProtocolError: If the response body is not a JSON object
        """
        if grant_type == GRANT_AUTHORIZATION_CODE:
            data = {"grant_type": grant_type, "code": value}
            if redirect_uri:
                data["redirect_uri"] = redirect_uri
        elif grant_type == GRANT_REFRESH_TOKEN:
            data = {"grant_type": grant_type, "refresh_token": value}
        else:
            raise ValueError(f"Unsupported grant_type: {grant_type}")

        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if credentials is not None:
            client_id, secret_id = credentials
            encoded = b64encode(f"{client_id}:{secret_id}".encode()).decode()
            headers["Authorization"] = f"Basic {encoded}"

        url = f"{self.base_url}{endpoint}"
        response = self._post_with_retry(url, headers, data)
        return self._parse(response)

    def exchange_code(
        self,
        code: str,
        endpoint: str = "",
        redirect_uri: Optional[str] = None,
        credentials: Optional[Tuple[str, str]] = None,
    ) -> Token:
        """Exchange an authorization code for tokens."""
        logger.info("Exchanging authorization code for tokens")
        return self.exchange(
            GRANT_AUTHORIZATION_CODE,
            code,
            endpoint=endpoint,
            redirect_uri=redirect_uri,
            credentials=credentials,
        )

    def refresh(
        self,
        refresh_token: str,
        endpoint: str = "",
        credentials: Optional[Tuple[str, str]] = None,
    ) -> Token:
        """Obtain a fresh access token with a refresh token."""
        logger.info("Refreshing access token")
        return self.exchange(
            GRANT_REFRESH_TOKEN, refresh_token, endpoint=endpoint, credentials=credentials
        )

    def _post_with_retry(
        self, url: str, headers: Dict[str, str], data: Dict[str, str]
    ) -> requests.Response:
        attempt = 0
        while True:
            attempt += 1
            try:
                return requests.post(
                    url,
                    headers=headers,
                    data=data,
                    timeout=self.timeout,
                    proxies=self.proxies,
                )
            except requests.RequestException as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"Token request to {url} failed after {attempt} attempts: {e}"
                    )
                    raise TransportError(
                        f"Network error during token request after {attempt} attempts: {e}"
                    ) from e

                delay = RETRY_BACKOFF_SECONDS * attempt
                logger.warning(
                    f"Network error during token request "
                    f"(attempt {attempt}/{self.max_retries}), retrying in {delay:.3f}s: {e}"
                )
                self._sleep(delay)

    @staticmethod
    def _parse(response: requests.Response) -> Token:
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(
                f"Invalid response from token endpoint: {response.status_code} - {response.text}"
            )
            raise ProtocolError(
                f"Token endpoint returned a non-JSON response (status {response.status_code})"
            ) from e

        if not isinstance(payload, dict):
            raise ProtocolError(
                f"Token endpoint returned {type(payload).__name__}, expected an object"
            )

        try:
            return Token.from_dict(payload)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid token response: {e}") from e
