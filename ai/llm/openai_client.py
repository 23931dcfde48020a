# OpenAI Backend
# Paid analysis backends (gpt-3.5-turbo, gpt-4-turbo) over the chat-completions API
# Uses plain HTTP with an explicit timeout instead of the client library default

import logging
import os
from typing import Any

import requests

from ai.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    NonRetryableError,
    RetryableError,
)
from ai.llm.base import BackendConfig, BaseBackend, TokenUsage
from ai.llm.model_config import AIModel

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a legal document analysis expert. "
    "Always respond with valid JSON format as requested."
)


class OpenAIBackend(BaseBackend):
    """
    OpenAI chat-completions client for the paid tiers.

    Without OPENAI_API_KEY the backend reports itself unavailable and
    ``invoke`` returns a "not configured" failure without any network I/O.
    """

    BASE_URL = "https://api.openai.com/v1/chat/completions"

    def __init__(self, model: AIModel, config: BackendConfig | None = None):
        if not AIModel(model).is_paid:
            raise ValueError(f"{model} is not served by OpenAI")
        super().__init__(model, config)

    def _setup_client(self) -> None:
        """Set up the OpenAI client."""
        self.config.api_key = self.config.api_key or os.environ.get("OPENAI_API_KEY")

        if not self.config.api_key:
            logger.warning(
                f"OPENAI_API_KEY not set. {self.model.value} will be unavailable."
            )

        env_timeout = os.environ.get("AI_REQUEST_TIMEOUT")
        if env_timeout and not self.config.timeout:
            try:
                self.config.timeout = float(env_timeout)
            except ValueError:
                logger.warning(
                    f"Ignoring invalid AI_REQUEST_TIMEOUT='{env_timeout}', using {self.model_config.timeout_seconds}s"
                )

    def _do_api_request(self, prompt: str) -> dict[str, Any]:
        """Execute the actual API request to OpenAI."""

        headers = {"Authorization": f"Bearer {self.config.api_key}", "Content-Type": "application/json"}

        data = {
            "model": self.model_config.provider_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.model_config.max_output_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            resp = requests.post(self.BASE_URL, headers=headers, json=data, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code

            if status_code == 429:
                retry_after = e.response.headers.get("retry-after", "60")
                raise RetryableError(
                    f"Rate limit exceeded. Retry after {retry_after}s",
                    category=ErrorCategory.RATE_LIMIT,
                    severity=ErrorSeverity.LOW,
                )
            elif status_code >= 500:
                raise RetryableError(
                    f"OpenAI server error ({status_code}): {e}",
                    category=ErrorCategory.SERVER_ERROR,
                    severity=ErrorSeverity.MEDIUM,
                )
            elif status_code in (401, 403):
                raise NonRetryableError(
                    f"Authentication failed ({status_code}): Check OPENAI_API_KEY",
                    category=ErrorCategory.CLIENT_ERROR,
                    severity=ErrorSeverity.HIGH,
                )
            elif status_code == 400:
                try:
                    error_detail = e.response.json().get("error", {}).get("message", str(e))
                except ValueError:
                    error_detail = str(e)
                raise NonRetryableError(
                    f"Invalid request ({status_code}): {error_detail}",
                    category=ErrorCategory.VALIDATION,
                    severity=ErrorSeverity.MEDIUM,
                )
            else:
                raise NonRetryableError(
                    f"Client error ({status_code}): {e}",
                    category=ErrorCategory.CLIENT_ERROR,
                    severity=ErrorSeverity.MEDIUM,
                )

        except requests.exceptions.Timeout as e:
            raise RetryableError(
                f"Request timeout after {self.timeout}s: {e}",
                category=ErrorCategory.TIMEOUT,
                severity=ErrorSeverity.LOW,
            )

        except requests.exceptions.ConnectionError as e:
            raise RetryableError(
                f"Network error: {e}", category=ErrorCategory.NETWORK, severity=ErrorSeverity.MEDIUM
            )

    def _parse_response(self, body: dict[str, Any]) -> tuple[str, TokenUsage | None, str | None]:
        try:
            text = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise NonRetryableError(
                f"Malformed completion: {str(body)[:200]}",
                category=ErrorCategory.VALIDATION,
                severity=ErrorSeverity.MEDIUM,
            )

        usage = None
        raw_usage = body.get("usage")
        if raw_usage:
            usage = TokenUsage(
                prompt_tokens=raw_usage.get("prompt_tokens", 0),
                completion_tokens=raw_usage.get("completion_tokens", 0),
            )

        return text, usage, body.get("model")
