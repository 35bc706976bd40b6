"""Authorization URL construction and listener address parsing."""

import logging
from typing import Tuple
from urllib.parse import quote, urlencode, urlsplit

from .models import SPOTIFY_AUTHORIZE_URL, AuthRequest, FlowVariant

logger = logging.getLogger(__name__)


def build_authorization_url(request: AuthRequest, variant: FlowVariant) -> str:
    """
    Build the URL the user (or exchange server) must visit.

    The code variant without client credentials points at the bootstrap
    page served next to the redirect URI, which posts the credentials back
    to the callback listener.

    Args:
        request: The attempt's authorization request
        variant: Flow variant deciding the URL shape

    Returns:
        Percent-escaped authorization URL
    """
    scope = " ".join(request.scope)
    show_dialog = "true" if request.show_dialog else "false"

    if variant is FlowVariant.AUTHORIZATION_CODE and not request.has_credentials:
        url = f"{(request.redirect_uri or '').rstrip('/')}/start.html#{request.state}"
    elif variant is FlowVariant.TOKEN_SWAP:
        params = {
            "response_type": variant.response_type,
            "state": request.state,
            "scope": scope,
            "show_dialog": show_dialog,
        }
        base = (request.exchange_server_uri or "").rstrip("/")
        url = f"{base}/authorize?{urlencode(params, quote_via=quote)}"
    else:
        params = {
            "client_id": request.client_id or "",
            "response_type": variant.response_type,
            "redirect_uri": request.redirect_uri or "",
            "state": request.state,
            "scope": scope,
            "show_dialog": show_dialog,
        }
        url = f"{SPOTIFY_AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"

    logger.debug(f"Generated authorization URL: {url}")
    return url


def parse_server_uri(server_uri: str) -> Tuple[str, int]:
    """
    Split a listener URI such as ``http://localhost:4002`` into host and port.

    Port 0 is accepted and lets the OS pick a free port.

    Raises:
        ValueError: If the URI is not a plain http URI with a valid port
    """
    parts = urlsplit(server_uri)
    if parts.scheme != "http":
        raise ValueError(f"server_uri must be an http:// URI, got {server_uri!r}")
    try:
        port = parts.port
    except ValueError as e:
        raise ValueError(f"Invalid port in server_uri {server_uri!r}: {e}") from e
    return parts.hostname or "localhost", 80 if port is None else port
