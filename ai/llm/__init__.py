# Analysis Backends
# Uniform clients for the free (Gemini) and paid (OpenAI) backends

from ai.llm.base import BackendConfig, BaseBackend, InvokeResult, TokenUsage
from ai.llm.factory import clear_backend_cache, get_available_models, get_backend
from ai.llm.gemini import GeminiBackend
from ai.llm.model_config import (
    MODEL_CONFIGS,
    MODEL_COSTS,
    AIModel,
    ModelConfig,
    PreferredModel,
    estimate_cost,
    get_model_config,
)
from ai.llm.openai_client import OpenAIBackend

__all__ = [
    # Base
    "BaseBackend",
    "BackendConfig",
    "InvokeResult",
    "TokenUsage",

    # Backends
    "GeminiBackend",
    "OpenAIBackend",

    # Factory
    "get_backend",
    "get_available_models",
    "clear_backend_cache",

    # Model Config
    "AIModel",
    "PreferredModel",
    "ModelConfig",
    "MODEL_CONFIGS",
    "MODEL_COSTS",
    "estimate_cost",
    "get_model_config",
]
