import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

lib_logger = logging.getLogger("lookup_rotator")


class LookupRotatorError(Exception):
    """Base class for every error raised by the lookup library."""

    pass


class InvalidInputError(LookupRotatorError):
    """Raised when a lookup subject is malformed. No adapter has been tried."""

    def __init__(self, subject: str, message: str = ""):
        self.subject = subject
        self.message = message or f"Invalid lookup subject: '{subject}'"
        super().__init__(self.message)


class UnknownCapabilityError(InvalidInputError):
    """Raised when resolve() is asked for a capability with no provider chain."""

    def __init__(self, capability: str):
        self.capability = capability
        super().__init__(capability, f"Unknown capability: '{capability}'")


class UnknownProviderError(LookupRotatorError):
    """Raised when a provider name is not in the registry."""

    def __init__(self, provider: str):
        self.provider = provider
        self.message = f"Unknown provider: '{provider}'"
        super().__init__(self.message)


class NotConfiguredError(LookupRotatorError):
    """
    Raised when the resolved credential slot has no usable secret.

    Attributes:
        provider: The provider name (e.g., "gemini")
        slot: The slot that was resolved
    """

    def __init__(self, provider: str, slot: int, message: str = ""):
        self.provider = provider
        self.slot = slot
        self.message = (
            message or f"No usable credential configured for {provider} slot {slot}"
        )
        super().__init__(self.message)


class InvalidSlotError(LookupRotatorError):
    """
    Raised when a slot selection is out of range or points at an
    unconfigured credential.
    """

    def __init__(self, provider: str, slot: Any, message: str = ""):
        self.provider = provider
        self.slot = slot
        self.message = message or f"Invalid slot {slot!r} for provider {provider}"
        super().__init__(self.message)


class NoAlternativeSlotError(LookupRotatorError):
    """Raised by rotation when no other configured slot exists."""

    def __init__(self, provider: str, current_slot: int):
        self.provider = provider
        self.current_slot = current_slot
        self.message = (
            f"No configured alternative to slot {current_slot} for {provider}"
        )
        super().__init__(self.message)


class RateLimitExceededError(LookupRotatorError):
    """Raised when a provider's local request budget is exhausted."""

    def __init__(self, provider: str):
        self.provider = provider
        self.message = f"Rate limit exceeded for {provider}"
        super().__init__(self.message)


class AdapterFailure(LookupRotatorError):
    """
    Raised by an adapter when its outbound call or normalization fails.

    The provider chain catches it, records it and moves on; it never
    escapes resolve().
    """

    def __init__(self, adapter: str, detail: str, message: str = ""):
        self.adapter = adapter
        self.detail = detail
        self.message = message or f"{adapter} failed: {detail}"
        super().__init__(self.message)


class PersistenceError(LookupRotatorError):
    """
    Raised when a durable file could not be written.

    The in-memory state already holds the attempted value; only the copy
    on disk is stale.
    """

    def __init__(self, path: str, cause: Optional[Exception] = None):
        self.path = path
        self.cause = cause
        self.message = f"Failed to persist {path}" + (f": {cause}" if cause else "")
        super().__init__(self.message)


# =============================================================================
# PER-ADAPTER FAILURE RECORDS
# =============================================================================


class FailureReason(str, Enum):
    """Why one adapter in a chain did not produce a result."""

    NOT_CONFIGURED = "not_configured"
    RATE_LIMITED = "rate_limited"
    ADAPTER_FAILURE = "adapter_failure"


@dataclass(frozen=True)
class AdapterAttempt:
    """One adapter's outcome inside a failed (or partially failed) resolve."""

    adapter: str
    provider: str
    reason: FailureReason
    detail: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "adapter": self.adapter,
            "provider": self.provider,
            "reason": self.reason.value,
            "detail": self.detail,
        }


class AllProvidersFailedError(LookupRotatorError):
    """
    Raised when every adapter of a capability was skipped or failed.

    Keeps each adapter's own reason, in the order the adapters were tried, so
    "all rate-limited" can be told apart from "all misconfigured" and from
    "all network failures".
    """

    def __init__(self, capability: str, subject: str, attempts: List[AdapterAttempt]):
        self.capability = capability
        self.subject = subject
        self.attempts = list(attempts)
        self.message = self.build_log_message()
        super().__init__(self.message)

    @property
    def reasons(self) -> List[FailureReason]:
        return [a.reason for a in self.attempts]

    def get_reason_summary(self) -> str:
        """Summary like '2 adapter_failure, 1 not_configured'."""
        counts: Dict[str, int] = {}
        for attempt in self.attempts:
            counts[attempt.reason.value] = counts.get(attempt.reason.value, 0) + 1
        return ", ".join(f"{count} {reason}" for reason, count in counts.items())

    def build_log_message(self) -> str:
        """
        One-line account of every attempt, for the server log.

        Secrets never appear here; only adapter names and short details.
        """
        if not self.attempts:
            return f"ALL PROVIDERS FAILED: no adapters configured for {self.capability}"
        per_adapter = ", ".join(
            f"{a.adapter}={a.reason.value}" + (f"({a.detail})" if a.detail else "")
            for a in self.attempts
        )
        return f"ALL PROVIDERS FAILED for {self.capability} '{self.subject}': {per_adapter}"

    def build_client_error_response(self) -> dict:
        """
        Body returned to HTTP callers (and printed by the admin console).

        Everything in it is JSON-serializable.
        """
        return {
            "error": {
                "message": "Service unavailable, try again later.",
                "type": "all_providers_failed",
                "details": {
                    "capability": self.capability,
                    "subject": self.subject,
                    "summary": self.get_reason_summary(),
                    "attempts": [a.to_dict() for a in self.attempts],
                },
            }
        }


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


class ClassifiedError:
    """A structured representation of a classified adapter error."""

    def __init__(
        self,
        error_type: str,
        original_exception: Exception,
        status_code: Optional[int] = None,
    ):
        self.error_type = error_type
        self.original_exception = original_exception
        self.status_code = status_code

    @property
    def detail(self) -> str:
        """Short detail string recorded on the AdapterAttempt."""
        if self.error_type == "http_status" and self.status_code is not None:
            return f"http_{self.status_code}"
        if isinstance(self.original_exception, AdapterFailure):
            return self.original_exception.detail
        return self.error_type

    def __str__(self):
        return (
            f"ClassifiedError(type={self.error_type}, status={self.status_code}, "
            f"original_exc={self.original_exception})"
        )


def classify_adapter_error(e: Exception) -> ClassifiedError:
    """
    Classifies an exception raised while invoking an adapter.

    Error types:
    - timeout: connect/read/write/pool timeout
    - http_status: non-2xx response (status_code set)
    - connection: DNS, refused connection, TLS or other transport errors
    - parse: body was not JSON or lacked the fields the normalizer needs
    - adapter: an AdapterFailure raised by the adapter itself
    - unknown: anything else
    """
    if isinstance(e, httpx.TimeoutException):
        return ClassifiedError("timeout", e)
    if isinstance(e, httpx.HTTPStatusError):
        return ClassifiedError("http_status", e, status_code=e.response.status_code)
    if isinstance(e, httpx.TransportError):
        return ClassifiedError("connection", e)
    if isinstance(e, (json.JSONDecodeError, KeyError, TypeError, ValueError)):
        return ClassifiedError("parse", e)
    if isinstance(e, AdapterFailure):
        return ClassifiedError("adapter", e)
    return ClassifiedError("unknown", e)


def mask_credential(credential: Optional[str]) -> str:
    """
    Mask a credential for safe display in logs and listings.

    Shows the last 4 characters of keys longer than 8 characters.
    """
    if not credential:
        return "-"
    if len(credential) > 8:
        return f"...{credential[-4:]}"
    return "***"
