"""Turn user supplied input into a ContentReference."""

import logging
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from . import net
from .config import timeouts
from .exceptions import InvalidUrlError, UpstreamError
from .models import PHOTO, VIDEO, ContentReference

logger = logging.getLogger(__name__)

SHORT_DOMAINS = ("vm.tiktok.com", "vt.tiktok.com")

DIRECT_PATTERN = re.compile(r"@([\w.-]+)/(video|photo)/(\d{15,})", re.ASCII)
CONTENT_ID_PATTERN = re.compile(r"[0-9]{15,}")
BARE_ID_PATTERN = re.compile(r"(?<!\d)(\d{15,})(?!\d)", re.ASCII)
SCRIPT_ID_PATTERNS = (
    re.compile(r'"(?:itemId|aweme_id|awemeId|id)"\s*:\s*"(\d{15,})"'),
    re.compile(r"/(?:video|photo)/(\d{15,})"),
)
SCRIPT_HANDLE_PATTERN = re.compile(r'"uniqueId"\s*:\s*"([\w.-]+)"')


def match_direct(text, source_url=None):
    """Return a reference for ``@user/(video|photo)/id`` text, else None."""
    if not text:
        return None
    match = DIRECT_PATTERN.search(text)
    if not match:
        return None
    username, kind, content_id = match.groups()
    return ContentReference(username, content_id, kind, source_url=source_url or text)


def canonical_url(ref):
    return f"https://www.tiktok.com/@{ref.username}/{ref.kind}/{ref.content_id}"


def _with_scheme(text):
    if text.startswith(("http://", "https://")):
        return text
    return "https://" + text


def is_short_link(text):
    try:
        host = urlparse(_with_scheme(text)).hostname
    except ValueError:
        return False
    return host in SHORT_DOMAINS


class UrlNormalizer:
    """Canonicalizes TikTok links, expanding short links over HTTP."""

    def __init__(self, session, timeout=None, log=None):
        self.session = session
        self.timeout = timeout or timeouts["short_link"]
        self.log = log or logger

    def normalize(self, raw):
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidUrlError("Missing TikTok URL")

        text = raw.strip()
        # Pasted links sometimes keep the "@" of a mention in front of them
        if re.match(r"^@+https?://", text, re.IGNORECASE):
            text = text.lstrip("@")

        ref = match_direct(text)
        if ref:
            self.log.debug(f"Direct link: @{ref.username}/{ref.kind}/{ref.content_id}")
            return ref

        if is_short_link(text):
            ref = self._expand_short_link(_with_scheme(text))
            if ref:
                return ref

        match = BARE_ID_PATTERN.search(text)
        if match:
            kind = PHOTO if "/photo/" in text else VIDEO
            self.log.info(f"Using bare content id {match.group(1)} from input")
            return ContentReference("unknown", match.group(1), kind, source_url=text)

        raise InvalidUrlError(
            "Invalid TikTok URL format. Please use a valid video or photo URL."
        )

    def _expand_short_link(self, url):
        self.log.info(f"Resolving short link {url}")
        try:
            response = net.request(
                self.session,
                "GET",
                url,
                timeout=self.timeout,
                headers=net.BROWSER_HEADERS,
                allow_redirects=True,
            )
        except UpstreamError as e:
            self.log.warning(f"Short link resolution failed: {e}")
            return None

        resolved = response.url
        ref = match_direct(resolved)
        if ref:
            self.log.info(f"Short link redirected to {resolved}")
            return ref

        self.log.debug(f"Redirect target {resolved} not recognized, inspecting document")
        return self._reference_from_document(response.text, resolved)

    def _reference_from_document(self, html, resolved_url):
        soup = BeautifulSoup(html or "", "html.parser")

        canonical = soup.find("link", rel="canonical")
        if canonical and match_direct(canonical.get("href")):
            return match_direct(canonical.get("href"))

        og_url = soup.find("meta", property="og:url")
        if og_url and match_direct(og_url.get("content")):
            return match_direct(og_url.get("content"))

        scripts = " ".join(script.get_text() for script in soup.find_all("script"))
        content_id = None
        for pattern in SCRIPT_ID_PATTERNS:
            match = pattern.search(scripts)
            if match:
                content_id = match.group(1)
                break
        if not content_id:
            return None

        handle = SCRIPT_HANDLE_PATTERN.search(scripts)
        kind = PHOTO if "/photo/" in (resolved_url or "") else VIDEO
        return ContentReference(
            handle.group(1) if handle else "unknown",
            content_id,
            kind,
            source_url=resolved_url,
        )
