# Model Configuration
# Centralized configuration for the three analysis backends and their pricing
# Costs are configuration constants, never computed at runtime

import logging
import math
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class AIModel(StrEnum):
    """Backends that can serve a document analysis."""

    GEMINI = "gemini"                # Free backend
    GPT_35_TURBO = "gpt-3.5-turbo"   # Mid-tier paid backend
    GPT_4_TURBO = "gpt-4-turbo"      # Top-tier paid backend

    @property
    def is_paid(self) -> bool:
        return self is not AIModel.GEMINI

    @property
    def family(self) -> str:
        """Usage-stats bucket: 'gpt' or 'gemini'."""
        return "gpt" if self.is_paid else "gemini"


class PreferredModel(StrEnum):
    """What a user asked for in their AI settings. AUTO lets the selector decide."""

    AUTO = "auto"
    GEMINI = AIModel.GEMINI.value
    GPT_35_TURBO = AIModel.GPT_35_TURBO.value
    GPT_4_TURBO = AIModel.GPT_4_TURBO.value

    @classmethod
    def parse(cls, value: str | None) -> "PreferredModel":
        """Convert a stored string to the enum, treating unknown values as AUTO."""
        if not value:
            return cls.AUTO
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown preferred model '{value}', using auto selection")
            return cls.AUTO

    def as_model(self) -> AIModel | None:
        """The concrete backend for an explicit preference, None for AUTO."""
        if self is PreferredModel.AUTO:
            return None
        return AIModel(self.value)


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for a specific backend."""
    model: AIModel
    provider: str                       # gemini or openai
    provider_model: str                 # Model id sent to the provider API
    cost_per_1k_tokens: float           # Input + output combined (USD)
    timeout_seconds: int                # Upper bound for one call
    max_output_tokens: int = 2048

    def estimate_cost(self, total_tokens: int) -> float:
        return (total_tokens / 1000) * self.cost_per_1k_tokens


# =============================================================================
# Pricing and selection thresholds
# =============================================================================

CHARS_PER_TOKEN = 3                  # Rough heuristic, acknowledged as approximate
HIGH_COMPLEXITY_THRESHOLD = 0.7      # Above: top-tier model for premium plans
MEDIUM_COMPLEXITY_THRESHOLD = 0.4    # Above: mid-tier model when budget allows
MIN_FALLBACK_BUDGET = 0.01           # Remaining budget needed for the paid fallback step

GEMINI_TIMEOUT_SECONDS = 30
PAID_TIMEOUT_SECONDS = 60

MODEL_CONFIGS: dict[AIModel, ModelConfig] = {
    AIModel.GEMINI: ModelConfig(
        model=AIModel.GEMINI,
        provider="gemini",
        provider_model="gemini-2.0-flash",
        cost_per_1k_tokens=0.0,          # Free
        timeout_seconds=GEMINI_TIMEOUT_SECONDS,
    ),
    AIModel.GPT_35_TURBO: ModelConfig(
        model=AIModel.GPT_35_TURBO,
        provider="openai",
        provider_model="gpt-3.5-turbo",
        cost_per_1k_tokens=0.003,        # $0.003 per 1K tokens
        timeout_seconds=PAID_TIMEOUT_SECONDS,
    ),
    AIModel.GPT_4_TURBO: ModelConfig(
        model=AIModel.GPT_4_TURBO,
        provider="openai",
        provider_model="gpt-4-turbo",
        cost_per_1k_tokens=0.015,        # $0.015 per 1K tokens
        timeout_seconds=PAID_TIMEOUT_SECONDS,
    ),
}

MODEL_COSTS: dict[AIModel, float] = {
    model: config.cost_per_1k_tokens for model, config in MODEL_CONFIGS.items()
}


def get_model_config(model: AIModel | str) -> ModelConfig:
    """Get the configuration for a backend. Raises ValueError for unknown ids."""
    return MODEL_CONFIGS[AIModel(model)]


def estimate_tokens(text: str) -> int:
    """Token estimate used for pre-call budgeting: ceil(chars / 3)."""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def estimate_cost(model: AIModel | str, text: str) -> float:
    """
    Estimate the cost of analyzing ``text`` with ``model`` before calling it.

    Args:
        model: Backend to price
        text: Document text (not the rendered prompt)

    Returns:
        Estimated cost in USD
    """
    return get_model_config(model).estimate_cost(estimate_tokens(text))
