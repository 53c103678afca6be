"""Download providers.

A provider turns a content reference into an open media stream using one
third-party service. Any failing step raises ``ProviderFailedError``; a
provider never retries on its own, falling back is the resolver's job.
"""

import json
import logging
import re

from . import net
from .config import timeouts
from .exceptions import ProviderFailedError, UpstreamError
from .extractors import find_embedded_payload, find_item_struct
from .models import StreamHandle
from .normalizer import canonical_url

logger = logging.getLogger(__name__)


class BaseProvider:
    name = "base"

    def __init__(self, session, log=None):
        self.session = session
        self.log = log or logger

    def fetch(self, ref, request):
        """Return a ``StreamHandle`` for ``ref`` or raise ``ProviderFailedError``."""
        try:
            return self._fetch(ref, request)
        except ProviderFailedError:
            raise
        except UpstreamError as e:
            raise ProviderFailedError(self.name, str(e)) from e
        except ValueError as e:
            raise ProviderFailedError(self.name, f"unreadable response ({e})") from e

    def _fetch(self, ref, request):
        raise NotImplementedError

    def fail(self, reason):
        return ProviderFailedError(self.name, reason)

    def open_stream(self, url, filename, referer, timeout=None, headers=None):
        request_headers = {"User-Agent": net.USER_AGENT, "Referer": referer, "Accept": "*/*"}
        request_headers.update(headers or {})
        self.log.info(f"{self.name}: streaming media from {url}")
        response = net.request(
            self.session,
            "GET",
            url,
            timeout=timeout or timeouts["stream"],
            headers=request_headers,
            stream=True,
        )
        return StreamHandle(response, filename, self.name)


class TikWMProvider(BaseProvider):
    """JSON API provider; picks ``play``, ``sdplay``, ``hdplay`` or ``wmplay``."""

    name = "tikwm"
    base_url = "https://www.tikwm.com"
    api_url = "https://www.tikwm.com/api/"

    def __init__(self, session, watermark=False, log=None):
        super().__init__(session, log)
        self.watermark = watermark
        if watermark:
            self.name = "tikwm-watermark"

    def _fetch(self, ref, request):
        quality = (request.quality or "").lower()
        form = {"url": canonical_url(ref), "hd": "0" if quality == "sd" else "1"}
        self.log.info(f"{self.name}: submitting URL for {quality or 'default'} quality")
        response = net.request(
            self.session,
            "POST",
            self.api_url,
            timeout=timeouts["api"],
            data=form,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
                "Origin": self.base_url,
                "Referer": self.base_url + "/",
            },
        )
        data = response.json()

        if not isinstance(data, dict) or data.get("code") != 0 or not isinstance(data.get("data"), dict):
            reason = "API format error or video not found."
            if isinstance(data, dict) and data.get("msg"):
                reason = data["msg"]
            raise self.fail(reason)

        link = self.select_link(data["data"], quality)
        if not link:
            raise self.fail("no matching play link in API response")
        if not link.startswith("http"):
            link = self.base_url + link
        return self.open_stream(
            link, request.filename, self.base_url + "/", timeout=timeouts["api_stream"]
        )

    def select_link(self, item, quality=None):
        if self.watermark:
            return item.get("wmplay")
        if quality == "sd" and item.get("sdplay"):
            return item["sdplay"]
        if quality == "hd" and item.get("hdplay"):
            return item["hdplay"]
        return item.get("play")


class SaveTTProvider(BaseProvider):
    """Token form provider: GET the form, POST the URL, regex the MP4 link."""

    name = "savett"
    base_url = "https://savett.cc"

    def _fetch(self, ref, request):
        page = net.request(
            self.session,
            "GET",
            self.base_url + "/en",
            timeout=timeouts["form"],
            headers={
                "User-Agent": net.USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
                "Referer": "https://www.google.com/",
            },
        )
        token = re.search(r'name="_token".*?value="(.*?)"', page.text)
        if not token:
            raise self.fail("failed to extract _token")

        result = net.request(
            self.session,
            "POST",
            self.base_url + "/en/download",
            timeout=timeouts["submit"],
            data={"url": canonical_url(ref), "_token": token.group(1)},
            headers={
                "Accept": "text/html",
                "Content-Type": "application/x-www-form-urlencoded",
                "Origin": self.base_url,
                "Referer": self.base_url + "/en",
            },
        )
        link = re.search(r'href="(https://[^"]+\.mp4[^"]*?)"', result.text)
        if not link:
            raise self.fail("failed to extract MP4 download link")
        return self.open_stream(link.group(1), request.filename, self.base_url + "/")


class SnapTikProvider(BaseProvider):
    """Form POST provider answering with either HTML or a JSON link list."""

    name = "snaptik"
    base_url = "https://snaptik.app"

    def _fetch(self, ref, request):
        response = net.request(
            self.session,
            "POST",
            self.base_url + "/abc.php",
            timeout=timeouts["submit"],
            data={"url": canonical_url(ref)},
            headers={
                "Accept": "text/html",
                "Content-Type": "application/x-www-form-urlencoded",
                "Origin": self.base_url,
                "Referer": self.base_url + "/",
                "X-Requested-With": "XMLHttpRequest",
            },
        )
        link = self.find_link(response.text)
        if not link:
            raise self.fail("failed to extract MP4 download link")
        return self.open_stream(link, request.filename, self.base_url + "/")

    @staticmethod
    def find_link(body):
        body = body or ""
        if body.lstrip().startswith("{"):
            try:
                data = json.loads(body)
            except ValueError:
                data = None
            links = data.get("links") if isinstance(data, dict) else None
            if isinstance(links, list) and links:
                for entry in links:
                    url = entry.get("url") if isinstance(entry, dict) else None
                    if isinstance(url, str) and ".mp4" in url:
                        return url
                first = links[0] if isinstance(links[0], dict) else {}
                return first.get("url") or first.get("v_download")
            return None
        match = re.search(r'href="(https?://[^"\s]+\.mp4[^"\s]*)"', body, re.IGNORECASE)
        return match.group(1) if match else None


class TemplatedMirrorWatermarkProvider(BaseProvider):
    """Streams the watermarked file from a mirror's predictable media path."""

    name = "tikwm-template"
    template = "https://www.tikwm.com/video/media/wmplay/{content_id}.mp4"
    referer = "https://www.tikwm.com/"

    def _fetch(self, ref, request):
        handle = self.open_stream(
            self.template.format(content_id=ref.content_id), request.filename, self.referer
        )
        declared = handle.response.headers.get("Content-Type", "")
        if declared and not declared.startswith(("video/", "application/octet-stream")):
            handle.close()
            raise self.fail(f"template URL answered with {declared}")
        return handle


class OriginalSourceWatermarkProvider(BaseProvider):
    """Streams TikTok's own (watermarked) file found in the page payload."""

    name = "tiktok-original"
    referer = "https://www.tiktok.com/"

    def _fetch(self, ref, request):
        page = net.request(
            self.session,
            "GET",
            canonical_url(ref),
            timeout=timeouts["page"],
            headers=net.BROWSER_HEADERS,
        )
        item = find_item_struct(find_embedded_payload(page.text))
        video = (item or {}).get("video") or {}
        link = video.get("downloadAddr") or video.get("playAddr")
        if not link:
            raise self.fail("video data not found in page")
        return self.open_stream(
            link,
            request.filename,
            self.referer,
            timeout=timeouts["api_stream"],
            headers={"Origin": "https://www.tiktok.com"},
        )
