"""Provider exceptions and failure classification."""

from typing import Optional

# 429 is the standard throttle status; 529 is the "overloaded" status some
# upstreams (Anthropic, OpenRouter passthrough) use under capacity pressure.
RATE_LIMIT_STATUS_CODES = frozenset({429, 529})
RESOURCE_EXHAUSTED_MARKERS = ("resource_exhausted", "overloaded_error", "overloaded")


class ProviderError(RuntimeError):
    """A generation call failed for a reason that must not trigger fallback."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class ProviderRateLimitError(ProviderError):
    """Upstream reported throttling or capacity exhaustion for a model."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider=provider, model=model, status_code=status_code)
        self.retry_after = retry_after


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def has_rate_limit_marker(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in RESOURCE_EXHAUSTED_MARKERS)


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True when ``exc`` signals throttling/overload rather than a defect."""
    if isinstance(exc, ProviderRateLimitError):
        return True
    status = _status_of(exc)
    if status is not None:
        return status in RATE_LIMIT_STATUS_CODES
    return has_rate_limit_marker(str(exc))
