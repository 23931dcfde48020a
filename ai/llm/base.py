# Base Backend Interface
# Abstract base class that every analysis backend implements
# invoke() never raises: provider errors come back as a failed InvokeResult

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ai.error_handling import (
    CircuitBreakerOpen,
    ErrorCategory,
    _categorize_error,
    get_circuit_breaker,
)
from ai.llm.model_config import AIModel, ModelConfig, get_model_config

logger = logging.getLogger(__name__)

NOT_CONFIGURED_ERROR = "not configured"


@dataclass
class BackendConfig:
    """Configuration for a backend client."""

    api_key: str | None = None
    timeout: float | None = None        # Defaults to the model's configured bound
    temperature: float = 0.2


@dataclass
class TokenUsage:
    """Token counts reported by a provider."""

    prompt_tokens: int
    completion_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
        }


@dataclass
class InvokeResult:
    """Uniform outcome of one backend call."""

    success: bool
    model: AIModel
    response: str | None = None
    usage: TokenUsage | None = None
    error: str | None = None
    error_category: ErrorCategory | None = None

    # Metadata
    provider_model: str | None = None
    latency_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "model": self.model.value}
        if self.response is not None:
            data["response"] = self.response
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data


class BaseBackend(ABC):
    """
    Abstract base class for analysis backends.

    Subclasses implement the provider protocol in ``_do_api_request`` and map
    provider errors to RetryableError/NonRetryableError. ``invoke`` converts
    every failure, including a missing credential or an open circuit, into
    ``InvokeResult(success=False)`` so callers only ever branch on a value.
    """

    def __init__(self, model: AIModel, config: BackendConfig | None = None):
        self.model = AIModel(model)
        self.model_config: ModelConfig = get_model_config(self.model)
        self.config = config or BackendConfig()
        self._setup_client()
        self.timeout = self.config.timeout or self.model_config.timeout_seconds
        self.circuit_breaker = get_circuit_breaker(
            f"{self.model.value}_api", failure_threshold=5, recovery_timeout=60.0
        )

    @abstractmethod
    def _setup_client(self) -> None:
        """Provider-specific setup: API keys, endpoints."""
        pass

    @abstractmethod
    def _do_api_request(self, prompt: str) -> dict[str, Any]:
        """Execute the provider request and return the decoded JSON body."""
        pass

    @abstractmethod
    def _parse_response(self, body: dict[str, Any]) -> tuple[str, TokenUsage | None, str | None]:
        """Extract (text, usage, provider model name) from a provider body."""
        pass

    def is_available(self) -> bool:
        """True when the backend has the credential it needs."""
        return bool(self.config.api_key)

    def invoke(self, prompt: str) -> InvokeResult:
        """
        Call the backend once, without retries.

        Args:
            prompt: Fully rendered analysis prompt

        Returns:
            InvokeResult; success=False carries the error and its category
        """
        if not self.is_available():
            logger.warning(f"{self.model.value} backend is not configured, skipping")
            return InvokeResult(
                success=False,
                model=self.model,
                error=NOT_CONFIGURED_ERROR,
                error_category=ErrorCategory.NOT_CONFIGURED,
            )

        start_time = time.time()
        try:
            body = self.circuit_breaker.call(self._do_api_request, prompt)
            text, usage, provider_model = self._parse_response(body)
        except CircuitBreakerOpen as e:
            logger.warning(f"{self.model.value} skipped: {e}")
            return InvokeResult(
                success=False,
                model=self.model,
                error=str(e),
                error_category=ErrorCategory.CIRCUIT_OPEN,
            )
        except Exception as e:
            logger.error(f"{self.model.value} call failed: {e}")
            return InvokeResult(
                success=False,
                model=self.model,
                error=str(e),
                error_category=_categorize_error(e),
                latency_ms=int((time.time() - start_time) * 1000),
            )

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(f"{self.model.value} responded in {latency_ms}ms")
        return InvokeResult(
            success=True,
            model=self.model,
            response=text,
            usage=usage,
            provider_model=provider_model or self.model_config.provider_model,
            latency_ms=latency_ms,
        )
