"""Exception classes for TikTok extraction and download failures."""


class FetcherError(Exception):
    """Base exception for extraction and download errors."""

    status_code = 500


class InvalidUrlError(FetcherError):
    """Input could not be turned into a TikTok content reference."""

    status_code = 400


class ExtractionFailedError(FetcherError):
    """Every metadata extractor was tried and none succeeded."""

    def __init__(self, message, attempts=()):
        super().__init__(message)
        self.attempts = list(attempts)
        upstream = [a.error for a in self.attempts if isinstance(a.error, UpstreamError)]
        if upstream and all(e.upstream_status == 404 for e in upstream):
            self.status_code = 404


class ProviderFailedError(FetcherError):
    """A single download provider could not produce a media stream."""

    status_code = 502

    def __init__(self, provider, reason):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class AllProvidersFailedError(FetcherError):
    """Every eligible download provider was tried and failed."""

    def __init__(self, attempts=()):
        self.attempts = list(attempts)
        names = ", ".join(a.name for a in self.attempts) or "none"
        super().__init__(
            f"All video download services failed (tried: {names}). "
            "Please try again later."
        )


class UpstreamError(FetcherError):
    """Network or HTTP failure talking to a third-party site."""

    status_code = 502

    def __init__(self, message, upstream_status=None):
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamTimeoutError(UpstreamError):
    """The upstream did not answer within the per-call timeout."""

    status_code = 504


class UpstreamConnectionResetError(UpstreamError):
    """The upstream dropped the connection (ECONNRESET and friends)."""

    pass
