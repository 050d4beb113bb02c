"""Provider exceptions."""


class ProviderError(RuntimeError):
    """A provider request failed."""

    def __init__(self, provider: str, model: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.model = model
        self.status_code = status_code
        super().__init__(f"{provider} request for {model} failed: {message}")


class ProviderRateLimitError(ProviderError):
    """The provider kept rejecting requests for quota reasons."""

    def __init__(self, provider: str, model: str, retry_after_ms: int):
        self.retry_after_ms = retry_after_ms
        super().__init__(
            provider,
            model,
            f"rate limited, retry after {retry_after_ms}ms",
            status_code=429,
        )
