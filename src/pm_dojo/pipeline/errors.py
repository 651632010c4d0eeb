"""
Error taxonomy for LLM calls and the batch jobs built on them.

Every call site classifies HTTP failures through classify(), so retry policy
(extractor), abort policy (batch loops) and user-facing messages (API) all
agree on what a status code means.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NO_CREDENTIAL = "no_credential"
    RATE_LIMITED = "rate_limited"
    PAYMENT_REQUIRED = "payment_required"
    BAD_CREDENTIAL = "bad_credential"
    GATEWAY_ERROR = "gateway_error"
    EMPTY_RESPONSE = "empty_response"
    MALFORMED_RESPONSE = "malformed_response"


# Body fragments providers use when a key is out of credit rather than throttled.
# OpenAI answers 429 with "insufficient_quota" when billing is exhausted.
_QUOTA_MARKERS = ("insufficient_quota", "billing", "credit balance", "payment required")


def classify(status: int, body_text: str = "") -> ErrorKind:
    """
    Map a non-2xx status (and its body) to an ErrorKind.

    Pure function: no I/O, no logging.
    """
    body = (body_text or "").lower()
    if status == 402:
        return ErrorKind.PAYMENT_REQUIRED
    if status == 429:
        if any(marker in body for marker in _QUOTA_MARKERS):
            return ErrorKind.PAYMENT_REQUIRED
        return ErrorKind.RATE_LIMITED
    if status in (401, 403):
        return ErrorKind.BAD_CREDENTIAL
    return ErrorKind.GATEWAY_ERROR


class DojoError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.GATEWAY_ERROR


class NoCredential(DojoError):
    kind = ErrorKind.NO_CREDENTIAL

    def __init__(self, message: str = "No API key configured. Add an API key before using this feature."):
        super().__init__(message)


class GatewayError(DojoError):
    """Non-2xx response (or transport failure, status=None) from a provider."""

    kind = ErrorKind.GATEWAY_ERROR

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        provider: Optional[str] = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status = status
        self.provider = provider
        self.body = body


class RateLimited(GatewayError):
    kind = ErrorKind.RATE_LIMITED


class PaymentRequired(GatewayError):
    kind = ErrorKind.PAYMENT_REQUIRED


class BadCredential(GatewayError):
    kind = ErrorKind.BAD_CREDENTIAL


class EmptyResponse(DojoError):
    kind = ErrorKind.EMPTY_RESPONSE

    def __init__(self, message: str = "AI returned an empty response"):
        super().__init__(message)


class MalformedResponse(DojoError):
    kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, message: str, excerpt: str = ""):
        super().__init__(message)
        self.excerpt = excerpt


class ExtractionFailed(DojoError):
    """Umbrella for any failure extracting one transcript."""

    def __init__(self, episode_id: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(f"Extraction failed for {episode_id}: {reason}")
        self.episode_id = episode_id
        self.reason = reason
        self.cause = cause
        self.kind = getattr(cause, "kind", ErrorKind.GATEWAY_ERROR)


class AssemblyFailed(DojoError):
    """Umbrella for any failure generating one question triple."""

    def __init__(self, triple: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(f"Question generation failed for {triple}: {reason}")
        self.triple = triple
        self.reason = reason
        self.cause = cause
        self.kind = getattr(cause, "kind", ErrorKind.GATEWAY_ERROR)


_ERROR_CLASSES = {
    ErrorKind.RATE_LIMITED: RateLimited,
    ErrorKind.PAYMENT_REQUIRED: PaymentRequired,
    ErrorKind.BAD_CREDENTIAL: BadCredential,
    ErrorKind.GATEWAY_ERROR: GatewayError,
}

# Kinds that mean every remaining call in a batch will fail the same way
SYSTEMIC_KINDS = {
    ErrorKind.RATE_LIMITED,
    ErrorKind.PAYMENT_REQUIRED,
    ErrorKind.NO_CREDENTIAL,
    ErrorKind.BAD_CREDENTIAL,
}


def friendly_message(kind: ErrorKind, provider_name: str, status: Optional[int]) -> str:
    """User-facing text for a classified provider failure."""
    if kind == ErrorKind.BAD_CREDENTIAL:
        return f"Your {provider_name} API key is invalid or has been revoked. Please update it in Settings."
    if kind == ErrorKind.RATE_LIMITED:
        return f"Your {provider_name} API key has hit its rate limit. Please wait a moment or check your plan's usage limits."
    if kind == ErrorKind.PAYMENT_REQUIRED:
        return f"Your {provider_name} API key request was rejected ({status}). Please check your billing and API key permissions."
    return f"{provider_name} returned an error ({status})."


def error_for_status(status: int, body_text: str, provider_name: str) -> GatewayError:
    """Build (not raise) the taxonomy exception for a non-2xx response."""
    kind = classify(status, body_text)
    error_cls = _ERROR_CLASSES[kind]
    return error_cls(
        friendly_message(kind, provider_name, status),
        status=status,
        provider=provider_name,
        body=(body_text or "")[:2000],
    )


def is_systemic(exc: BaseException) -> bool:
    """
    True when an error means the rest of a batch will fail identically.
    Umbrella errors are judged by their cause.
    """
    cause = getattr(exc, "cause", None)
    if isinstance(exc, (ExtractionFailed, AssemblyFailed)) and cause is not None:
        exc = cause
    return getattr(exc, "kind", None) in SYSTEMIC_KINDS
