# Backend Factory
# Central place for getting the client that serves a given model

import logging
import os

from ai.llm.base import BackendConfig, BaseBackend
from ai.llm.model_config import AIModel

logger = logging.getLogger(__name__)

# Cache for backend instances (one per model)
_backend_cache: dict[AIModel, BaseBackend] = {}


def get_backend(
    model: AIModel | str,
    config: BackendConfig | None = None,
    force_new: bool = False,
) -> BaseBackend:
    """
    Get the backend client for a model.

    By default, it returns a cached instance.

    Args:
        model: Model to serve (gemini, gpt-3.5-turbo, gpt-4-turbo)
        config: Optional configuration (API key, timeout)
        force_new: If True, create a new instance instead of using cache

    Returns:
        A backend client instance

    Raises:
        ValueError: For an unknown model id
    """
    model = AIModel(model)

    if not force_new and config is None and model in _backend_cache:
        return _backend_cache[model]

    backend = _create_backend(model, config)

    if config is None:
        _backend_cache[model] = backend

    return backend


def _create_backend(model: AIModel, config: BackendConfig | None) -> BaseBackend:
    """Create a new backend instance."""

    if model == AIModel.GEMINI:
        from ai.llm.gemini import GeminiBackend

        return GeminiBackend(config)

    from ai.llm.openai_client import OpenAIBackend

    return OpenAIBackend(model, config)


def clear_backend_cache() -> None:
    """Clear the backend cache. Useful for testing."""
    _backend_cache.clear()
    logger.info("Backend cache cleared")


def get_available_models() -> list[AIModel]:
    """
    Get the models whose credentials are configured.

    Returns:
        List of available models, free backend first
    """
    available = []

    if os.environ.get("GEMINI_API_KEY"):
        available.append(AIModel.GEMINI)

    if os.environ.get("OPENAI_API_KEY"):
        available.extend([AIModel.GPT_35_TURBO, AIModel.GPT_4_TURBO])

    return available
