# Error Handling for AI Backends and the Analysis Pipeline
# Error taxonomy, circuit breaker, and the domain errors surfaced to API callers

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_MODELS_FAILED_MESSAGE = "All AI models failed. Please try again later."


class ErrorSeverity(str, Enum):
    """Error severity levels for prioritization and alerting."""
    LOW = "low"           # Transient, next backend will likely succeed
    MEDIUM = "medium"     # May need intervention but not critical
    HIGH = "high"         # Requires immediate attention
    CRITICAL = "critical" # System-level failure


class ErrorCategory(str, Enum):
    """Categories of backend errors, used to explain why a fallback happened."""
    RATE_LIMIT = "rate_limit"           # API rate limit exceeded
    TIMEOUT = "timeout"                  # Request timed out
    SERVER_ERROR = "server_error"        # 5xx errors
    CLIENT_ERROR = "client_error"        # 4xx errors
    NETWORK = "network"                  # Network connectivity issues
    VALIDATION = "validation"            # Request or response shape rejected
    QUOTA_EXCEEDED = "quota_exceeded"    # Provider quota exceeded
    NOT_CONFIGURED = "not_configured"    # Missing API credential
    CIRCUIT_OPEN = "circuit_open"        # Backend short-circuited after repeated failures
    UNKNOWN = "unknown"                  # Unclassified error


TRANSIENT_CATEGORIES = frozenset({
    ErrorCategory.RATE_LIMIT,
    ErrorCategory.TIMEOUT,
    ErrorCategory.SERVER_ERROR,
    ErrorCategory.NETWORK,
    ErrorCategory.CIRCUIT_OPEN,
})


class CircuitBreaker:
    """
    Circuit breaker pattern to stop hammering a backend that keeps failing.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, reject requests immediately
    - HALF_OPEN: Testing if service recovered
    """

    class State(str, Enum):
        CLOSED = "closed"
        OPEN = "open"
        HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "default"
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of failures before opening circuit
            recovery_timeout: Seconds to wait before trying to recover
            name: Identifier for this circuit breaker
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name

        self.failure_count = 0
        self.last_failure_time = 0.0
        self.state = self.State.CLOSED

        logger.info(f"CircuitBreaker '{name}' initialized (threshold={failure_threshold})")

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If circuit is open
        """
        if self.state == self.State.OPEN:
            if time.time() - self.last_failure_time >= self.recovery_timeout:
                logger.info(f"CircuitBreaker '{self.name}': Attempting recovery (HALF_OPEN)")
                self.state = self.State.HALF_OPEN
            else:
                raise CircuitBreakerOpen(
                    f"Circuit breaker '{self.name}' is OPEN. "
                    f"Will retry in {self.recovery_timeout - (time.time() - self.last_failure_time):.1f}s"
                )

        try:
            result = func(*args, **kwargs)
            self._on_success()
            return result
        except Exception:
            self._on_failure()
            raise

    def reset(self):
        """Close the circuit and forget past failures."""
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.state = self.State.CLOSED

    def _on_success(self):
        if self.state == self.State.HALF_OPEN:
            logger.info(f"CircuitBreaker '{self.name}': Recovery successful (CLOSED)")
            self.state = self.State.CLOSED
        self.failure_count = 0

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.failure_count >= self.failure_threshold:
            logger.error(
                f"CircuitBreaker '{self.name}': Threshold exceeded ({self.failure_count} failures) - OPENING circuit"
            )
            self.state = self.State.OPEN


class CircuitBreakerOpen(Exception):
    """Raised when circuit breaker is open."""
    pass


class RetryableError(Exception):
    """Transient backend error: the next backend in the chain should be tried."""
    def __init__(self, message: str, category: ErrorCategory, severity: ErrorSeverity):
        super().__init__(message)
        self.category = category
        self.severity = severity


class NonRetryableError(Exception):
    """Permanent backend error (bad credential, rejected request)."""
    def __init__(self, message: str, category: ErrorCategory, severity: ErrorSeverity):
        super().__init__(message)
        self.category = category
        self.severity = severity


# =========================================================================
# Analysis errors (propagated to the API layer)
# =========================================================================

class AnalysisError(Exception):
    """Base class for errors raised while analyzing a document."""

    user_message = "Analysis failed. Please try again later."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)


class TextTooShortError(AnalysisError):
    user_message = "The provided text is too short for a meaningful analysis (minimum 100 characters)."


class InvalidAIResponseError(AnalysisError):
    user_message = "Invalid AI response. Please try again."


@dataclass
class FailedAttempt:
    """One failed step of the fallback chain, kept for logs only."""
    model: str
    error: str | None
    category: ErrorCategory


class AllModelsFailedError(AnalysisError):
    """
    Every backend in the fallback chain failed.

    The message shown to users is always the same. ``attempts`` and
    ``failure_kind`` keep enough detail for operators to tell a budget or
    configuration problem from a provider outage.
    """

    user_message = ALL_MODELS_FAILED_MESSAGE

    def __init__(self, attempts: list[FailedAttempt] | None = None, context: dict[str, Any] | None = None):
        super().__init__(ALL_MODELS_FAILED_MESSAGE)
        self.attempts = attempts or []
        self.context = context or {}

    @property
    def failure_kind(self) -> str:
        categories = {attempt.category for attempt in self.attempts}
        if not categories:
            return "unknown"
        if self.context.get("budget_exhausted") and not self.context.get("paid_attempted"):
            return "budget_exhausted"
        if categories == {ErrorCategory.NOT_CONFIGURED}:
            return "not_configured"
        if categories <= TRANSIENT_CATEGORIES:
            return "transient"
        return "mixed"

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "failure_kind": self.failure_kind,
            "attempts": [
                {"model": a.model, "category": a.category.value, "error": a.error}
                for a in self.attempts
            ],
            **self.context,
        }


def _categorize_error(exception: Exception) -> ErrorCategory:
    """Categorize an unexpected exception from its type and message."""
    if isinstance(exception, (RetryableError, NonRetryableError)):
        return exception.category
    if isinstance(exception, CircuitBreakerOpen):
        return ErrorCategory.CIRCUIT_OPEN

    error_str = str(exception).lower()
    exception_name = type(exception).__name__.lower()

    if "429" in error_str or "rate limit" in error_str or "too many requests" in error_str:
        return ErrorCategory.RATE_LIMIT
    elif "timeout" in error_str or "timeout" in exception_name:
        return ErrorCategory.TIMEOUT
    elif "500" in error_str or "502" in error_str or "503" in error_str or "504" in error_str:
        return ErrorCategory.SERVER_ERROR
    elif "400" in error_str or "401" in error_str or "403" in error_str or "404" in error_str:
        return ErrorCategory.CLIENT_ERROR
    elif "quota" in error_str or "limit exceeded" in error_str:
        return ErrorCategory.QUOTA_EXCEEDED
    elif "network" in error_str or "connection" in error_str:
        return ErrorCategory.NETWORK
    elif "validation" in error_str:
        return ErrorCategory.VALIDATION
    else:
        return ErrorCategory.UNKNOWN


# Global circuit breakers, one per backend
_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, **kwargs) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Args:
        name: Circuit breaker identifier
        **kwargs: Additional arguments for CircuitBreaker constructor
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name=name, **kwargs)
    return _circuit_breakers[name]


def reset_circuit_breakers() -> None:
    """Close every circuit breaker. Useful for testing."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
