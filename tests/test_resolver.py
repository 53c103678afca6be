import pytest

from tiktok_fetcher.exceptions import (
    AllProvidersFailedError,
    ExtractionFailedError,
    ProviderFailedError,
    UpstreamError,
)
from tiktok_fetcher.models import ContentReference, DownloadRequest, ExtractionResult, Profile
from tiktok_fetcher.resolver import FallbackResolver

REF = ContentReference("alice", "7123456789012345678")


class StaticNormalizer:
    def normalize(self, raw):
        return REF


class FakeExtractor:
    def __init__(self, name, error=None):
        self.name = name
        self.error = error
        self.calls = 0

    def extract(self, ref, attempts=()):
        self.calls += 1
        if self.error:
            raise self.error
        return ExtractionResult(
            title=f"from {self.name}",
            thumbnail="https://t.example/x.jpg",
            profile=Profile(ref.username),
            reference=ref,
            source=self.name,
        )


class FakeProvider:
    def __init__(self, name, log, fails=True):
        self.name = name
        self.log = log
        self.fails = fails

    def fetch(self, ref, request):
        self.log.append(self.name)
        if self.fails:
            raise ProviderFailedError(self.name, "boom")
        return f"stream:{self.name}"


def make_resolver(extractors=(), providers=(), watermark_chain=()):
    return FallbackResolver(StaticNormalizer(), extractors, providers, watermark_chain)


def test_first_successful_extractor_wins():
    a = FakeExtractor("a", ExtractionFailedError("a broke"))
    b = FakeExtractor("b", UpstreamError("HTTP 403"))
    c = FakeExtractor("c")
    d = FakeExtractor("d")

    result = make_resolver([a, b, c, d]).resolve("anything")

    assert result.source == "c"
    assert result.title == "from c"
    assert [a.calls, b.calls, c.calls, d.calls] == [1, 1, 1, 0]


def test_unexpected_extractor_errors_are_not_fatal():
    broken = FakeExtractor("broken", KeyError("itemStruct"))
    ok = FakeExtractor("ok")

    assert make_resolver([broken, ok]).resolve("x").source == "ok"


def test_exhausted_extractors_report_every_attempt():
    extractors = [
        FakeExtractor("primary", UpstreamError("HTTP 500", upstream_status=500)),
        FakeExtractor("mirror", ExtractionFailedError("no links")),
        FakeExtractor("cdn-pattern", ExtractionFailedError("not applicable")),
    ]

    with pytest.raises(ExtractionFailedError) as excinfo:
        make_resolver(extractors).resolve("x")

    message = str(excinfo.value)
    for name in ("primary", "mirror", "cdn-pattern"):
        assert name in message
    assert len(excinfo.value.attempts) == 3
    assert excinfo.value.status_code == 500


def test_exhausted_extractors_with_only_not_found_answers_404():
    extractors = [
        FakeExtractor("primary", UpstreamError("HTTP 404", upstream_status=404)),
        FakeExtractor("mirror", UpstreamError("HTTP 404", upstream_status=404)),
    ]

    with pytest.raises(ExtractionFailedError) as excinfo:
        make_resolver(extractors).resolve("x")

    assert excinfo.value.status_code == 404


def download(**kwargs):
    kwargs.setdefault("content_id", REF.content_id)
    kwargs.setdefault("filename", "alice_HD.mp4")
    kwargs.setdefault("username", "alice")
    return DownloadRequest(**kwargs)


def test_default_provider_then_fixed_order():
    calls = []
    providers = [
        FakeProvider("tikwm", calls),
        FakeProvider("savett", calls),
        FakeProvider("snaptik", calls, fails=False),
    ]

    handle = make_resolver(providers=providers).resolve_download(download())

    assert handle == "stream:snaptik"
    assert calls == ["tikwm", "savett", "snaptik"]


def test_preferred_provider_goes_first_and_is_not_repeated():
    calls = []
    providers = [FakeProvider("tikwm", calls), FakeProvider("savett", calls), FakeProvider("snaptik", calls)]

    with pytest.raises(AllProvidersFailedError):
        make_resolver(providers=providers).resolve_download(download(provider_preference="snaptik"))

    assert calls == ["snaptik", "tikwm", "savett"]


def test_provider_alias_and_unknown_preference():
    resolver = make_resolver(providers=[FakeProvider(n, []) for n in ("tikwm", "savett", "snaptik")])

    assert [p.name for p in resolver.provider_order("alt1")] == ["savett", "tikwm", "snaptik"]
    assert [p.name for p in resolver.provider_order("nope")] == ["tikwm", "savett", "snaptik"]


def test_watermark_chain_short_circuits():
    calls = []
    chain = [
        FakeProvider("tikwm-template", calls),
        FakeProvider("tiktok-original", calls),
        FakeProvider("tikwm-watermark", calls, fails=False),
    ]
    providers = [FakeProvider("tikwm", calls, fails=False)]

    handle = make_resolver(providers=providers, watermark_chain=chain).resolve_download(
        download(watermark=True)
    )

    assert handle == "stream:tikwm-watermark"
    assert calls == ["tikwm-template", "tiktok-original", "tikwm-watermark"]


def test_exhausted_watermark_chain_falls_through_to_regular_providers():
    calls = []
    chain = [FakeProvider("tikwm-template", calls)]
    providers = [FakeProvider("tikwm", calls, fails=False)]

    handle = make_resolver(providers=providers, watermark_chain=chain).resolve_download(
        download(watermark=True)
    )

    assert handle == "stream:tikwm"
    assert calls == ["tikwm-template", "tikwm"]


def test_all_providers_failed_lists_attempts():
    calls = []
    providers = [FakeProvider("tikwm", calls), FakeProvider("savett", calls)]

    with pytest.raises(AllProvidersFailedError) as excinfo:
        make_resolver(providers=providers).resolve_download(download())

    assert [a.name for a in excinfo.value.attempts] == ["tikwm", "savett"]
    assert excinfo.value.status_code == 500
