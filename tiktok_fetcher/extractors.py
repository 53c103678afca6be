"""Metadata extraction strategies.

Every extractor exposes a ``name`` and ``extract(ref, attempts)`` and either
returns a complete ``ExtractionResult`` or raises a ``FetcherError``. The
resolver tries them in order and keeps the first success, so site specific
parsing rules stay isolated in their own class.
"""

import html as html_lib
import json
import logging
import re

from bs4 import BeautifulSoup

from . import net
from .config import timeouts
from .exceptions import ExtractionFailedError, UpstreamConnectionResetError, UpstreamError
from .models import DownloadRefs, ExtractionResult, Profile, Stats
from .normalizer import canonical_url
from .response import generated_avatar

logger = logging.getLogger(__name__)

EMBEDDED_SCRIPT_ID = "__UNIVERSAL_DATA_FOR_REHYDRATION__"
_EMBEDDED_SCRIPT = re.compile(
    r'<script[^>]*id="' + EMBEDDED_SCRIPT_ID + r'"[^>]*>(.+?)</script>', re.DOTALL
)
_META_DESCRIPTION = re.compile(r'<meta name="description" content="([^"]+)"')
_META_OG_TITLE = re.compile(r'<meta property="og:title" content="([^"]+)"')
_META_OG_IMAGE = re.compile(r'<meta property="og:image" content="([^"]+)"')
_URL_USERNAME = re.compile(r"@([^/?#]+)")
_HASHTAG = re.compile(r"#(\w+)")


def extract_hashtags(text):
    if not text:
        return []
    return _HASHTAG.findall(text)


def find_embedded_payload(html):
    """Return the rehydration JSON embedded in a TikTok page, or None."""
    match = _EMBEDDED_SCRIPT.search(html or "")
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        logger.debug("Found rehydration script but failed to parse JSON")
        return None


def find_item_struct(payload):
    if not isinstance(payload, dict):
        return None
    scope = payload.get("__DEFAULT_SCOPE__") or {}
    detail = scope.get("webapp.video-detail") or {}
    item = (detail.get("itemInfo") or {}).get("itemStruct")
    return item if isinstance(item, dict) else None


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _https(url):
    if url and url.startswith("//"):
        return "https:" + url
    return url


class PrimarySiteExtractor:
    """Scrapes the canonical TikTok page.

    Reads the embedded rehydration payload first and falls back to
    ``<meta>`` tags, the URL and ``#tags`` in the title when the payload is
    missing or has changed shape.
    """

    name = "primary"

    def __init__(self, session, timeout=None, log=None):
        self.session = session
        self.timeout = timeout or timeouts["page"]
        self.log = log or logger

    def extract(self, ref, attempts=()):
        url = canonical_url(ref)
        self.log.info(f"Fetching TikTok page {url}")
        response = net.request(
            self.session,
            "GET",
            url,
            timeout=self.timeout,
            headers=net.BROWSER_HEADERS,
            allow_redirects=True,
        )
        return self.parse(response.text, ref, page_url=response.url or url)

    def parse(self, html, ref, page_url=""):
        title = ""
        thumbnail = ""
        username = ""
        avatar = ""
        hashtags = []
        alternates = []
        stats = None
        duration = 0
        refs = DownloadRefs()

        payload = find_embedded_payload(html)
        item = find_item_struct(payload)
        if item:
            self.log.debug("Found video data structure in embedded JSON")
            video = item.get("video") or {}
            author = item.get("author") or {}

            thumbnail = video.get("cover") or video.get("originCover") or ""
            refs.primary = video.get("playAddr") or None
            refs.secondary = video.get("downloadAddr") or refs.primary
            refs.audio = (item.get("music") or {}).get("playUrl") or None
            duration = _to_int(video.get("duration"))
            title = item.get("desc") or ""
            username = author.get("uniqueId") or ""
            avatar = (
                author.get("avatarLarger")
                or author.get("avatarMedium")
                or author.get("avatarThumb")
                or ""
            )

            raw_stats = item.get("stats")
            if isinstance(raw_stats, dict):
                stats = Stats(
                    likes=_to_int(raw_stats.get("diggCount")),
                    comments=_to_int(raw_stats.get("commentCount")),
                    bookmarks=_to_int(raw_stats.get("collectCount")),
                    views=_to_int(raw_stats.get("playCount")),
                )

            for extra in item.get("textExtra") or []:
                if isinstance(extra, dict) and extra.get("hashtagName"):
                    hashtags.append(extra["hashtagName"])

            for image in (item.get("imagePost") or {}).get("images") or []:
                url_list = (image.get("imageURL") or {}).get("urlList") or []
                if url_list:
                    alternates.append(url_list[0])
            if alternates and not thumbnail:
                thumbnail = alternates[0]
        elif payload is not None and self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(f"Payload keys: {list((payload.get('__DEFAULT_SCOPE__') or {}).keys())}")

        photo = ((payload or {}).get("routeData") or {}).get("photoDetail")
        if isinstance(photo, dict):
            author_info = photo.get("authorInfo") or {}
            title = photo.get("title") or title
            thumbnail = photo.get("cover") or thumbnail
            username = author_info.get("uniqueId") or username
            avatar = author_info.get("avatarLarger") or avatar
            if photo.get("challenges"):
                hashtags = [c.get("title") or "" for c in photo["challenges"]]

        if not title:
            match = _META_DESCRIPTION.search(html) or _META_OG_TITLE.search(html)
            if match:
                title = html_lib.unescape(match.group(1))

        if not thumbnail:
            match = _META_OG_IMAGE.search(html)
            if match:
                thumbnail = _https(html_lib.unescape(match.group(1)))
                self.log.debug(f"Found thumbnail from og:image: {thumbnail}")

        if not username:
            if ref.username and ref.username != "unknown":
                username = ref.username
            else:
                match = _URL_USERNAME.search(page_url or "")
                if match:
                    username = match.group(1)

        if not hashtags and title:
            hashtags = extract_hashtags(title)

        if not username or not thumbnail:
            raise ExtractionFailedError("Incomplete data from TikTok")

        return ExtractionResult(
            title=title,
            thumbnail=thumbnail,
            profile=Profile(username, avatar or None),
            reference=ref,
            hashtags=hashtags,
            alternate_thumbnails=alternates,
            stats=stats,
            duration=duration,
            download_refs=refs,
            source=self.name,
        )


class MirrorSiteExtractor:
    """Submits the link to a downloader mirror and scrapes its result page."""

    name = "mirror"

    base_url = "https://ssstik.io"
    endpoints = ("/abc?url=dl", "/abc", "/api/ajaxSearch")

    author_selectors = ("#avatarAndTextUsual h2", "h2.author", ".author-name", "h2")
    title_selectors = ("#avatarAndTextUsual p.maintext", "p.maintext", ".video-title", ".result p")
    thumbnail_selectors = ("img.result_overlay", ".result_overlay img", "img.thumbnail", ".video-thumbnail img")
    avatar_selectors = ("img.result_author", ".author img", "img.avatar")
    hd_selectors = ("a.without_watermark_hd", "a[data-quality='hd']", "a.download_link.hd")
    nowm_selectors = ("a.without_watermark", "a.download_link.without_watermark", "a.no-watermark")
    audio_selectors = ("a.music", "a.download_link.music", "a[data-type='audio']")

    def __init__(self, session, timeout=None, form_timeout=None, log=None):
        self.session = session
        self.timeout = timeout or timeouts["mirror"]
        self.form_timeout = form_timeout or timeouts["form"]
        self.log = log or logger

    def extract(self, ref, attempts=()):
        if ref.username == "unknown" and ref.source_url:
            target = ref.source_url
        else:
            target = canonical_url(ref)

        token = self._fetch_token()
        headers = {
            "Accept": "text/html, */*",
            "Origin": self.base_url,
            "Referer": self.base_url + "/en",
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
        }
        form = {"id": target, "locale": "en", "tt": token or ""}

        errors = []
        for path in self.endpoints:
            try:
                response = net.request(
                    self.session,
                    "POST",
                    self.base_url + path,
                    timeout=self.timeout,
                    data=form,
                    headers=headers,
                )
            except UpstreamError as e:
                self.log.debug(f"Mirror endpoint {path} failed: {e}")
                errors.append(f"{path}: {e}")
                continue

            body = self._unwrap(response.text)
            if not self._looks_like_download(body):
                errors.append(f"{path}: unrecognized response")
                continue
            self.log.info(f"Mirror endpoint {path} returned a download page")
            return self.parse(body, ref)

        raise ExtractionFailedError(
            "Mirror site returned no download page (" + "; ".join(errors) + ")"
        )

    def _fetch_token(self):
        try:
            response = net.request(
                self.session,
                "GET",
                self.base_url + "/en",
                timeout=self.form_timeout,
                headers=net.BROWSER_HEADERS,
            )
        except UpstreamError as e:
            self.log.debug(f"Mirror landing page unavailable: {e}")
            return None
        match = re.search(r"tt\s*:\s*'([^']+)'", response.text)
        if match:
            return match.group(1)
        field = BeautifulSoup(response.text, "html.parser").find("input", {"name": "token"})
        return field.get("value") if field else None

    @staticmethod
    def _unwrap(body):
        # JSON flavoured endpoints wrap the result markup in {"data": "..."}
        if body.lstrip().startswith("{"):
            try:
                data = json.loads(body)
            except ValueError:
                return body
            if isinstance(data, dict) and isinstance(data.get("data"), str):
                return data["data"]
        return body

    @staticmethod
    def _looks_like_download(body):
        lowered = (body or "").lower()
        if "href" not in lowered:
            return False
        return any(marker in lowered for marker in ("without_watermark", "download_link", "download"))

    @staticmethod
    def _select(soup, selectors, attrs=None):
        for selector in selectors:
            node = soup.select_one(selector)
            if node is None:
                continue
            if attrs is None:
                text = node.get_text(" ", strip=True)
                if text:
                    return text
                continue
            for attr in attrs:
                value = node.get(attr)
                if value:
                    return _https(value)
        return None

    def parse(self, html, ref):
        soup = BeautifulSoup(html, "html.parser")

        author = self._select(soup, self.author_selectors)
        title = self._select(soup, self.title_selectors) or ""
        thumbnail = self._select(soup, self.thumbnail_selectors, ("src", "data-src"))
        avatar = self._select(soup, self.avatar_selectors, ("src", "data-src"))
        hd = self._select(soup, self.hd_selectors, ("href",))
        nowm = self._select(soup, self.nowm_selectors, ("href",))
        audio = self._select(soup, self.audio_selectors, ("href",))

        if not (hd or nowm or audio):
            self.log.debug("No quality selectors matched, scanning anchors by text")
            for anchor in soup.find_all("a", href=True):
                href = _https(anchor["href"])
                if not href.startswith("http"):
                    continue
                text = anchor.get_text(" ", strip=True).lower()
                if "mp3" in text or "audio" in text or "music" in text:
                    audio = audio or href
                elif re.search(r"\bhd\b", text):
                    hd = hd or href
                elif "watermark" in text or "download" in text:
                    nowm = nowm or href

        if hd and hd == nowm:
            hd = None
        if not (hd or nowm):
            raise ExtractionFailedError("Mirror page had no video links")

        if ref.username and ref.username != "unknown":
            username = ref.username
        else:
            username = (author or "unknown").lstrip("@").strip() or "unknown"

        return ExtractionResult(
            title=title,
            thumbnail=thumbnail,
            profile=Profile(username, avatar),
            reference=ref,
            hashtags=extract_hashtags(title),
            stats=None,
            download_refs=DownloadRefs(
                primary=nowm or hd, secondary=hd if nowm else None, audio=audio
            ),
            source=self.name,
        )


class CdnPatternExtractor:
    """Builds a minimal result from CDN URL templates without network calls.

    Only applies when the primary extractor failed with a connection reset,
    which is how TikTok's edge usually blocks server side scraping.
    """

    name = "cdn-pattern"

    thumbnail_templates = (
        "https://p16-sign.tiktokcdn-us.com/tos-useast5-p-0068-tx/videos/tos/useast5/tos-useast5-pve-0068-tx/o0koLsADzQHxkQjNAMrPy/{content_id}~tplv-tx-video.jpeg",
        "https://p19-sign.tiktokcdn-us.com/obj/tos-useast5-p-0068-tx/{content_id}~c5_720x720.jpeg",
        "https://p16-sign.tiktokcdn-us.com/obj/tos-maliva-p-0068/{content_id}~c5_720x720.jpeg",
        "https://p16-sign-va.tiktokcdn.com/tos-maliva-p-0068/{content_id}~c5_720x720.jpeg",
    )

    def __init__(self, trigger="primary", log=None):
        self.trigger = trigger
        self.log = log or logger

    def extract(self, ref, attempts=()):
        reset = any(
            a.name == self.trigger and isinstance(a.error, UpstreamConnectionResetError)
            for a in attempts
        )
        if not reset:
            raise ExtractionFailedError("not applicable without a connection reset")
        if not ref.username or ref.username == "unknown":
            raise ExtractionFailedError("not applicable without a known author handle")

        self.log.info("Connection reset from TikTok, using CDN thumbnail patterns")
        thumbnails = [t.format(content_id=ref.content_id) for t in self.thumbnail_templates]
        return ExtractionResult(
            title=f"TikTok by @{ref.username}",
            thumbnail=thumbnails[0],
            profile=Profile(ref.username, generated_avatar(ref.username)),
            reference=ref,
            alternate_thumbnails=thumbnails,
            source=self.name,
        )
