# Gemini Backend
# Free analysis backend calling Google's Generative Language API over HTTP

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


class GeminiBackend(BaseBackend):
    """
    Google Gemini client used as the free backend.

    The call is bounded by a 30 second timeout; a timed-out request is
    reported as a failed result so the fallback chain can move on.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, config: BackendConfig | None = None):
        super().__init__(AIModel.GEMINI, config)

    def _setup_client(self) -> None:
        """Set up the Gemini client."""
        self.config.api_key = self.config.api_key or os.environ.get("GEMINI_API_KEY")

        if not self.config.api_key:
            logger.warning("GEMINI_API_KEY not set. Gemini backend will not be functional.")

    def _get_model_url(self) -> str:
        return f"{self.BASE_URL}/{self.model_config.provider_model}:generateContent"

    def _do_api_request(self, prompt: str) -> dict[str, Any]:
        """Execute the actual API request to Gemini."""

        headers = {"Content-Type": "application/json"}
        params = {"key": self.config.api_key}

        data = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.model_config.max_output_tokens,
                "topP": 0.7,
            },
        }

        try:
            resp = requests.post(
                self._get_model_url(), headers=headers, params=params, json=data, timeout=self.timeout
            )
            resp.raise_for_status()
            return resp.json()

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code

            if status_code == 429:
                raise RetryableError(
                    f"Rate limit exceeded: {e}", category=ErrorCategory.RATE_LIMIT, severity=ErrorSeverity.LOW
                )
            elif status_code >= 500:
                raise RetryableError(
                    f"Server error ({status_code}): {e}",
                    category=ErrorCategory.SERVER_ERROR,
                    severity=ErrorSeverity.MEDIUM,
                )
            elif status_code in (401, 403):
                raise NonRetryableError(
                    f"Authentication failed ({status_code}): Check GEMINI_API_KEY",
                    category=ErrorCategory.CLIENT_ERROR,
                    severity=ErrorSeverity.HIGH,
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
        """Extract text from the Gemini candidates structure."""
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Unexpected Gemini response structure: {str(body)[:200]}")
            raise NonRetryableError(
                "Gemini returned no candidate text",
                category=ErrorCategory.VALIDATION,
                severity=ErrorSeverity.MEDIUM,
            )

        if not text or not text.strip():
            raise NonRetryableError(
                "Gemini returned empty text",
                category=ErrorCategory.VALIDATION,
                severity=ErrorSeverity.MEDIUM,
            )

        usage = None
        usage_metadata = body.get("usageMetadata")
        if usage_metadata:
            usage = TokenUsage(
                prompt_tokens=usage_metadata.get("promptTokenCount", 0),
                completion_tokens=usage_metadata.get("candidatesTokenCount", 0),
            )

        return text, usage, body.get("modelVersion")
