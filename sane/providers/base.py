"""
Base provider protocol, shared prompt, pricing and the provider registry.

Concrete backends implement ``AIBackend`` structurally; no inheritance is
required. Selection happens once per configuration load via
``create_backend``.
"""

import math
from typing import Any, Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Backend Protocol
# -----------------------------------------------------------------------------

@runtime_checkable
class AIBackend(Protocol):
    """
    Produces embeddings and enhancement text for notes.

    Example implementation:
        class EchoBackend:
            name = "echo"
            native_embeddings = False

            def is_configured(self) -> bool:
                return True

            def embed(self, text: str) -> list[float]:
                return hash_embedding(text)

            def enhance(self, text: str, related_texts: list[str]) -> str:
                return '{"tags": [], "keywords": [], "links": [], "summary": ""}'

            def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
                return 0.0
    """

    name: str

    # False when embed() falls back to hash_embedding
    native_embeddings: bool

    def is_configured(self) -> bool:
        """
        Whether the minimum credentials/endpoint for this provider are present.

        Checked before any processing; no network call is made.
        """
        ...

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding vector for the text.

        Raises:
            ProviderError: If the provider call fails
        """
        ...

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """
        Ask the language model for tags, keywords, links and a summary.

        Args:
            text: Cleaned note content
            related_texts: Context from related notes (content or titles)

        Returns:
            Raw model output; parse with ``parse_enhancement``

        Raises:
            ProviderError: If the provider call fails
        """
        ...

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        """Estimated spend in dollars for ``tokens`` tokens of ``operation``."""
        ...


# -----------------------------------------------------------------------------
# Prompt
# -----------------------------------------------------------------------------

def build_enhancement_prompt(content: str, related_texts: list[str]) -> str:
    """Build the single user prompt sent to every provider."""
    related_context = (
        "\n\nRelated notes context:\n" + "\n---\n".join(related_texts)
        if related_texts else ""
    )
    return f"""Analyze this note and generate enhancements based on the content and related notes.

Note content:
{content}{related_context}

Please provide ONLY a valid JSON response with this exact format (no markdown, no code blocks, no extra text):

{{
  "tags": ["tag1", "tag2", "tag3"],
  "keywords": ["keyword1", "keyword2", "keyword3"],
  "links": ["Note Title 1", "Note Title 2"],
  "summary": "Brief 1-2 sentence summary"
}}

Requirements:
- Generate 3-7 relevant tags (lowercase, no spaces, use hyphens)
- Extract 3-8 important keywords or phrases
- Suggest links only to notes mentioned in related context, and ONLY return the note titles. Return no titles if no related notes provided
- Keep summary under 50 words
- Return ONLY valid JSON, no markdown formatting"""


# -----------------------------------------------------------------------------
# Fallback Embedding
# -----------------------------------------------------------------------------

FALLBACK_DIMENSION = 384


def string_hash(value: str) -> int:
    """
    Signed 32-bit rolling hash (h * 31 + code unit) over UTF-16 code units.

    Matches the hash used for vectors persisted by earlier releases, so
    stored fallback embeddings stay comparable.
    """
    data = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def hash_embedding(text: str, dimension: int = FALLBACK_DIMENSION) -> list[float]:
    """
    Deterministic bag-of-words vector for providers without an embedding API.

    Each lowercase word adds ``1 / (position + 1)`` to bucket
    ``|hash(word)| mod dimension``; the result is L2-normalized. Text with
    no words yields the zero vector.
    """
    vector = [0.0] * dimension
    for index, word in enumerate(text.lower().split()):
        vector[abs(string_hash(word)) % dimension] += 1 / (index + 1)

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


# -----------------------------------------------------------------------------
# Pricing
# -----------------------------------------------------------------------------

# Dollars per 1K tokens. Providers or operations without a rate use
# the generation rate, then DEFAULT_RATE_PER_1K.
PRICING: dict[str, dict[str, float]] = {
    "openai": {"generation": 0.03, "embedding": 0.0001},
    "google": {"generation": 0.0005, "embedding": 0.00001},
    "grok": {"generation": 0.002},
    "azure": {"generation": 0.03},
    "local": {"generation": 0.0, "embedding": 0.0},
}
DEFAULT_RATE_PER_1K = 0.01


def estimate_cost(provider: str, tokens: int, operation: str = "generation") -> float:
    """Look up the per-1K rate for provider/operation and scale by tokens."""
    rates = PRICING.get(provider)
    if rates is None:
        rate = DEFAULT_RATE_PER_1K
    else:
        rate = rates.get(operation, rates.get("generation", DEFAULT_RATE_PER_1K))
    return (tokens / 1000) * rate


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry mapping provider names to backend classes.

    Example:
        registry = ProviderRegistry()
        registry.register_backend("openai", OpenAIBackend)

        # Later, from config:
        backend = registry.create_backend("openai", {"api_key": "sk-..."})
    """

    def __init__(self):
        self._backends: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import llm  # noqa: F401

    def register_backend(self, name: str, provider_class: type) -> None:
        """Register a backend class."""
        self._backends[name] = provider_class

    def create_backend(self, name: str, params: dict[str, Any] | None = None) -> AIBackend:
        """
        Create a backend instance.

        Raises:
            ValueError: If no backend is registered under ``name``
        """
        self._ensure_providers_loaded()
        if name not in self._backends:
            available = ", ".join(self._backends) or "none"
            raise ValueError(
                f"Unknown AI provider: '{name}'. Available providers: {available}."
            )
        return self._backends[name](**(params or {}))

    def list_backends(self) -> list[str]:
        """List registered backend names."""
        self._ensure_providers_loaded()
        return list(self._backends.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
