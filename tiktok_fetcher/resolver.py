"""Ordered fallback across extractors and download providers."""

import logging

from .exceptions import AllProvidersFailedError, ExtractionFailedError
from .extractors import CdnPatternExtractor, MirrorSiteExtractor, PrimarySiteExtractor
from .models import AttemptOutcome, ContentReference
from .normalizer import UrlNormalizer
from .providers import (
    OriginalSourceWatermarkProvider,
    SaveTTProvider,
    SnapTikProvider,
    TemplatedMirrorWatermarkProvider,
    TikWMProvider,
)

logger = logging.getLogger(__name__)

# Older clients send aliases instead of provider names
PROVIDER_ALIASES = {
    "alt1": "savett",
    "alt2": "snaptik",
    "default": "tikwm",
}


class FallbackResolver:
    """Tries strategies strictly in order and stops at the first success.

    Args:
        normalizer: ``UrlNormalizer`` used by ``resolve``
        extractors: Ordered metadata extractors
        providers: Ordered non-watermark download providers; this order is
            the fixed fallback order
        watermark_chain: Ordered providers tried first when a watermarked
            file is requested
        default_provider: Name of the provider tried first without a preference
    """

    def __init__(
        self,
        normalizer,
        extractors,
        providers,
        watermark_chain=(),
        default_provider="tikwm",
        log=None,
    ):
        self.normalizer = normalizer
        self.extractors = list(extractors)
        self.providers = list(providers)
        self.watermark_chain = list(watermark_chain)
        self.default_provider = default_provider
        self.log = log or logger

    def resolve(self, source_url):
        ref = self.normalizer.normalize(source_url)
        return self.extract(ref)

    def extract(self, ref):
        attempts = []
        for extractor in self.extractors:
            try:
                result = extractor.extract(ref, attempts)
            except Exception as e:
                self.log.warning(f"Extractor {extractor.name} failed: {e}")
                attempts.append(AttemptOutcome(extractor.name, False, e))
                continue
            self.log.info(f"Extracted metadata with {extractor.name}")
            return result

        summary = "; ".join(a.describe() for a in attempts)
        self.log.error(f"All extractors failed for {ref.content_id}: {summary}")
        raise ExtractionFailedError(
            f"Failed to fetch TikTok data, all {len(attempts)} extractors failed ({summary})",
            attempts,
        )

    def provider_order(self, preference=None):
        """Return the non-watermark providers in the order they will be tried."""
        by_name = {p.name: p for p in self.providers}
        ordered = []

        if preference:
            name = PROVIDER_ALIASES.get(preference.lower(), preference.lower())
            if name in by_name:
                ordered.append(by_name[name])
            else:
                self.log.warning(f"Unknown provider preference {preference!r}, using default")
        if not ordered and self.default_provider in by_name:
            ordered.append(by_name[self.default_provider])

        for provider in self.providers:
            if provider not in ordered:
                ordered.append(provider)
        return ordered

    def resolve_download(self, request):
        """Return an open ``StreamHandle`` from the first provider that works."""
        ref = ContentReference(request.username or "user", request.content_id)
        attempts = []

        chains = []
        if request.watermark:
            chains.append(("watermark", self.watermark_chain))
        chains.append(("download", self.provider_order(request.provider_preference)))

        for label, chain in chains:
            for provider in chain:
                self.log.info(f"Attempting {label} provider {provider.name}")
                try:
                    handle = provider.fetch(ref, request)
                except Exception as e:
                    self.log.warning(f"Provider {provider.name} failed: {e}")
                    attempts.append(AttemptOutcome(provider.name, False, e))
                    continue
                self.log.info(f"Provider {provider.name} succeeded")
                return handle

        self.log.error(f"All download providers failed for {ref.content_id}")
        raise AllProvidersFailedError(attempts)


def build_resolver(session, log=None, default_provider="tikwm"):
    """Wire the default extractor and provider chains for one request."""
    return FallbackResolver(
        UrlNormalizer(session, log=log),
        [
            PrimarySiteExtractor(session, log=log),
            MirrorSiteExtractor(session, log=log),
            CdnPatternExtractor(log=log),
        ],
        [
            TikWMProvider(session, log=log),
            SaveTTProvider(session, log=log),
            SnapTikProvider(session, log=log),
        ],
        watermark_chain=[
            TemplatedMirrorWatermarkProvider(session, log=log),
            OriginalSourceWatermarkProvider(session, log=log),
            TikWMProvider(session, watermark=True, log=log),
        ],
        default_provider=default_provider,
        log=log,
    )
