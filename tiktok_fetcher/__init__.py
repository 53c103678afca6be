"""TikTok metadata extraction and download brokering.

Resolves a TikTok link into display metadata (title, hashtags, stats,
thumbnail, author) and streams the media through a chain of downloader
services when TikTok's own CDN refuses direct access.

Example:
    >>> from tiktok_fetcher import build_resolver, build_payload, new_session
    >>>
    >>> resolver = build_resolver(new_session())
    >>> result = resolver.resolve("https://www.tiktok.com/@user/video/7123456789012345678")
    >>> build_payload(result)["profile"]["username"]
    'user'
"""

from .exceptions import (
    AllProvidersFailedError,
    ExtractionFailedError,
    FetcherError,
    InvalidUrlError,
    ProviderFailedError,
    UpstreamConnectionResetError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .models import (
    AttemptOutcome,
    ContentReference,
    DownloadRefs,
    DownloadRequest,
    ExtractionResult,
    Profile,
    ProxyRoute,
    Stats,
    StreamHandle,
)
from .net import new_session
from .normalizer import UrlNormalizer, canonical_url
from .resolver import FallbackResolver, build_resolver
from .response import build_payload

__all__ = [
    # Pipeline
    "FallbackResolver",
    "build_resolver",
    "UrlNormalizer",
    "canonical_url",
    "build_payload",
    "new_session",
    # Models
    "AttemptOutcome",
    "ContentReference",
    "DownloadRefs",
    "DownloadRequest",
    "ExtractionResult",
    "Profile",
    "ProxyRoute",
    "Stats",
    "StreamHandle",
    # Exceptions
    "FetcherError",
    "InvalidUrlError",
    "ExtractionFailedError",
    "ProviderFailedError",
    "AllProvidersFailedError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "UpstreamConnectionResetError",
]
