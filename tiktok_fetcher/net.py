"""Outbound HTTP helpers: browser headers, sessions and error translation."""

import errno
import logging

import requests

from .exceptions import (
    UpstreamConnectionResetError,
    UpstreamError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

MAX_REDIRECTS = 10

# Headers for fetching TikTok pages as a regular desktop browser
BROWSER_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Ch-Ua": '"Chromium";v="124", "Google Chrome";v="124"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "Referer": "https://www.google.com/",
}


def new_session():
    """Create a session for one inbound request."""
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    session.max_redirects = MAX_REDIRECTS
    return session


def _is_connection_reset(exc):
    """Walk causes and wrapped args looking for an ECONNRESET socket error."""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNRESET:
            return True
        pending.extend(a for a in current.args if isinstance(a, BaseException))
        pending.append(current.__cause__ or current.__context__)
    return False


def request(session, method, url, *, timeout, **kwargs):
    """Perform an HTTP call and raise on non-2xx answers.

    All ``requests`` failures are converted into the ``UpstreamError``
    family so callers only deal with one taxonomy.
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout as e:
        raise UpstreamTimeoutError(f"Timed out after {timeout}s: {url}") from e
    except requests.exceptions.TooManyRedirects as e:
        raise UpstreamError(f"Too many redirects: {url}") from e
    except requests.exceptions.ConnectionError as e:
        if _is_connection_reset(e):
            raise UpstreamConnectionResetError(f"Connection reset: {url}") from e
        raise UpstreamError(f"Connection failed: {url} ({e})") from e
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"Request failed: {url} ({e})") from e

    if response.status_code >= 400:
        status = response.status_code
        response.close()
        raise UpstreamError(
            f"HTTP {status} {response.reason or ''}".strip() + f" from {url}",
            upstream_status=status,
        )
    return response
