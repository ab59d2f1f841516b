"""
Shared Ollama utilities: endpoint normalization and model listing.
"""

import logging

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(endpoint: str | None) -> str:
    """Normalize an Ollama endpoint.

    Accepts the bare ``host:port`` form that OLLAMA_HOST commonly uses and
    strips trailing slashes. Blank input means the default local server.
    """
    url = (endpoint or "").strip() or DEFAULT_OLLAMA_URL
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_list_models(base_url: str) -> list[str]:
    """Return installed model names (``name:tag``).

    Raises RuntimeError if Ollama is unreachable.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e
    return [m["name"] for m in resp.json().get("models", [])]


def ollama_has_model(base_url: str, model: str) -> bool:
    """Check whether a model is installed. Ollama lists ``name`` as ``name:latest``."""
    installed = set(ollama_list_models(base_url))
    bare = model.split(":")[0]
    return any(
        candidate in installed
        for candidate in (model, f"{model}:latest", bare, f"{bare}:latest")
    )
