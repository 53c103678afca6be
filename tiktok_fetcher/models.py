"""Data models shared by the normalizer, extractors, providers and resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional
from urllib.parse import quote, urlencode

import requests

VIDEO = "video"
PHOTO = "photo"

DOWNLOAD_ROUTE = "/api/tiktok-video-download"


@dataclass(frozen=True)
class ContentReference:
    """Identifies one TikTok post.

    Attributes:
        username: Author handle without the leading ``@`` ("unknown" when
            only a bare id could be recovered)
        content_id: Numeric post id, at least 15 digits
        kind: "video" or "photo"
        source_url: The URL the reference was derived from, if any
    """

    username: str
    content_id: str
    kind: str = VIDEO
    source_url: Optional[str] = field(default=None, compare=False)


@dataclass
class Profile:
    username: str
    avatar: Optional[str] = None


@dataclass
class Stats:
    likes: int = 0
    comments: int = 0
    bookmarks: int = 0
    views: int = 0


@dataclass
class DownloadRefs:
    """Direct upstream media URLs found while extracting metadata."""

    primary: Optional[str] = None
    secondary: Optional[str] = None
    audio: Optional[str] = None


@dataclass
class ExtractionResult:
    """Metadata produced by exactly one extractor for one request."""

    title: str
    thumbnail: Optional[str]
    profile: Profile
    reference: ContentReference
    hashtags: List[str] = field(default_factory=list)
    alternate_thumbnails: List[str] = field(default_factory=list)
    stats: Optional[Stats] = None
    duration: int = 0
    download_refs: DownloadRefs = field(default_factory=DownloadRefs)
    source: str = ""


@dataclass
class ProxyRoute:
    """Descriptor for the internal download route of one post."""

    content_id: str
    filename: str
    username: Optional[str] = None
    provider_hint: Optional[str] = None
    quality_hint: Optional[str] = None
    watermark: bool = False

    def to_path(self) -> str:
        params = {}
        if self.username:
            params["username"] = self.username
        if self.quality_hint:
            params["quality"] = self.quality_hint
        if self.provider_hint:
            params["pref_source"] = self.provider_hint
        if self.watermark:
            params["watermark"] = "true"
        path = f"{DOWNLOAD_ROUTE}/{quote(self.content_id, safe='')}/{quote(self.filename, safe='')}"
        if params:
            path += "?" + urlencode(params)
        return path


@dataclass
class DownloadRequest:
    content_id: str
    filename: str
    username: str = "user"
    quality: Optional[str] = None
    provider_preference: Optional[str] = None
    watermark: bool = False


@dataclass
class AttemptOutcome:
    """Outcome of one extractor or provider attempt, kept for diagnostics."""

    name: str
    success: bool
    error: Optional[Exception] = None

    def describe(self) -> str:
        if self.success:
            return f"{self.name}: ok"
        return f"{self.name}: {self.error}"


@dataclass
class StreamHandle:
    """An open upstream media response ready to be piped to the caller.

    Attributes:
        response: Streaming ``requests`` response (opened with ``stream=True``)
        filename: Attachment filename suggested by the caller
        provider: Name of the provider that produced the stream
        default_type: Content type used when the upstream does not declare one
    """

    response: requests.Response
    filename: str
    provider: str
    default_type: str = "video/mp4"

    @property
    def content_type(self) -> str:
        return self.response.headers.get("Content-Type") or self.default_type

    @property
    def content_length(self) -> Optional[str]:
        # iter_content decodes gzip/deflate, so an encoded length would be wrong
        if self.response.headers.get("Content-Encoding"):
            return None
        return self.response.headers.get("Content-Length")

    def iter_content(self, chunk_size: int = 8192) -> Iterator[bytes]:
        """Yield upstream chunks, closing the upstream response afterwards."""
        try:
            for chunk in self.response.iter_content(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        finally:
            self.close()

    def close(self) -> None:
        self.response.close()
