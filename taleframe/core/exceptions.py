"""
Illustration Pipeline Errors
Typed failure conditions shared by providers, the orchestrator, the descriptor
cache, the asset store and the job queue, plus a retry decorator for
retryable upstream calls.
"""

import asyncio
import logging
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class IllustrationError(Exception):
    """Base exception for illustration pipeline errors."""

    def __init__(self, message: str, retryable: bool = False, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}

    @property
    def user_message(self) -> str:
        """Message suitable for callers (job error field, HTTP detail)."""
        return self.message


class ProviderUnavailable(IllustrationError):
    """Provider is disabled or missing configuration."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} unavailable: {reason}", details={"provider": provider})
        self.provider = provider


class ReferenceImageMissing(IllustrationError):
    """No local reference image could be resolved for a reference-only tier."""

    def __init__(self, locator: Optional[str] = None):
        super().__init__(
            f"Reference image not found: {locator}" if locator else "No reference image provided",
            details={"locator": locator},
        )


class UpstreamErrorKind(str, Enum):
    """Classification of upstream provider failures."""
    QUOTA_EXCEEDED = "quota_exceeded"
    CONTENT_POLICY = "content_policy_violation"
    RATE_LIMITED = "rate_limited"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"


_USER_MESSAGES = {
    UpstreamErrorKind.QUOTA_EXCEEDED: "Image provider quota exceeded for image generation.",
    UpstreamErrorKind.CONTENT_POLICY: "Image request violates the provider content policy.",
    UpstreamErrorKind.RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    UpstreamErrorKind.MALFORMED_RESPONSE: "Image generation failed: provider returned no image.",
}


class UpstreamAPIError(IllustrationError):
    """Error returned by (or while talking to) an upstream provider."""

    def __init__(self, kind: UpstreamErrorKind, message: str, provider: Optional[str] = None):
        super().__init__(
            message,
            retryable=kind in (UpstreamErrorKind.RATE_LIMITED, UpstreamErrorKind.UNKNOWN),
            details={"kind": kind.value, "provider": provider},
        )
        self.kind = kind
        self.provider = provider

    @property
    def user_message(self) -> str:
        """Caller-facing message for this class of failure."""
        return _USER_MESSAGES.get(self.kind, f"Image generation failed: {self.message or 'Unknown error'}")


class PayloadTooLarge(IllustrationError):
    """Input exceeds a configured byte ceiling."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Image too large ({size} > {limit})", details={"size": size, "limit": limit})
        self.size = size
        self.limit = limit


class PersistenceFailure(IllustrationError):
    """Writing or downloading a generated asset failed. Best-effort callers log it and move on."""


class JobNotFound(IllustrationError):
    """Unknown job id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", details={"job_id": job_id})
        self.job_id = job_id


def _error_code(exc: Exception) -> str:
    """Best-effort extraction of a provider error code from SDK exceptions."""
    for attr in ("code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, str):
            return value.lower()
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and isinstance(inner.get("code"), str):
            return inner["code"].lower()
    return ""


def _status_code(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_provider_error(exc: Exception, provider: Optional[str] = None) -> UpstreamAPIError:
    """
    Map an arbitrary SDK / HTTP exception onto an UpstreamAPIError.

    Works on OpenAI SDK errors (``code`` like ``insufficient_quota``),
    google-genai errors (numeric ``code`` plus ``RESOURCE_EXHAUSTED`` status)
    and httpx status errors.
    """
    if isinstance(exc, UpstreamAPIError):
        return exc

    code = _error_code(exc)
    status = _status_code(exc)
    text = str(exc)
    lowered = text.lower()

    if code == "insufficient_quota" or "quota" in lowered:
        kind = UpstreamErrorKind.QUOTA_EXCEEDED
    elif code == "content_policy_violation" or "content policy" in lowered or "safety" in lowered:
        kind = UpstreamErrorKind.CONTENT_POLICY
    elif code in ("rate_limit_exceeded", "resource_exhausted") or status == 429 or "rate limit" in lowered:
        kind = UpstreamErrorKind.RATE_LIMITED
    elif isinstance(exc, (ValueError, KeyError, IndexError, TypeError)):
        kind = UpstreamErrorKind.MALFORMED_RESPONSE
    else:
        kind = UpstreamErrorKind.UNKNOWN

    return UpstreamAPIError(kind, text or exc.__class__.__name__, provider=provider)


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
):
    """
    Decorator to retry async upstream calls on retryable IllustrationErrors.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except IllustrationError as e:
                    if not e.retryable or attempt >= max_retries:
                        if e.retryable:
                            logger.error(
                                f"[Failed] {func.__name__} exhausted all {max_retries} retries: {e}"
                            )
                        raise
                    delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                    logger.warning(
                        f"[Retry {attempt + 1}/{max_retries}] {func.__name__} failed: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
        return wrapper

    return decorator
