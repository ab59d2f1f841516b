"""
AI provider backends.

One backend per provider; the active one is chosen from configuration by
``create_backend`` and reused until the configuration changes.
Concrete backends are auto-registered when this package is imported.
"""

from .base import (
    AIBackend,
    ProviderRegistry,
    build_enhancement_prompt,
    estimate_cost,
    get_registry,
    hash_embedding,
)

# Import concrete providers to trigger registration
from . import llm  # noqa: F401


def backend_params(config) -> dict:
    """Constructor kwargs for the configured provider's backend."""
    provider = config.provider
    generation = {
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
    }
    if provider == "openai":
        return {
            "model": config.effective_llm_model,
            "embedding_model": config.effective_embedding_model,
            "api_key": config.openai_api_key,
            **generation,
        }
    if provider == "google":
        return {
            "model": config.effective_llm_model,
            "embedding_model": config.effective_embedding_model,
            "api_key": config.google_api_key,
            **generation,
        }
    if provider == "grok":
        return {
            "model": config.effective_llm_model,
            "api_key": config.grok_api_key,
            **generation,
        }
    if provider == "azure":
        return {
            "model": config.effective_llm_model,
            "api_key": config.azure_api_key,
            "endpoint": config.azure_endpoint,
            **generation,
        }
    if provider == "local":
        return {
            "model": config.effective_llm_model,
            "embedding_model": config.effective_embedding_model,
            "endpoint": config.local_endpoint,
        }
    return {}


def create_backend(config) -> AIBackend:
    """Instantiate the backend selected by ``config.provider``."""
    return get_registry().create_backend(config.provider, backend_params(config))


__all__ = [
    "AIBackend",
    "ProviderRegistry",
    "backend_params",
    "build_enhancement_prompt",
    "create_backend",
    "estimate_cost",
    "get_registry",
    "hash_embedding",
]
