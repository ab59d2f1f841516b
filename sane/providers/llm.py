"""
AI backends: OpenAI, Google Gemini, Grok (xAI), Azure OpenAI and local Ollama.

Each backend wraps one vendor's request/response shape and reports failures
as ProviderError. Clients are created lazily so an unconfigured backend can
be constructed and asked ``is_configured()`` without credentials.
"""

import logging

import httpx
import requests

from ..errors import ProviderError
from .base import (
    build_enhancement_prompt,
    estimate_cost,
    get_registry,
    hash_embedding,
)
from .ollama_utils import ollama_base_url

logger = logging.getLogger(__name__)

# Read timeout for REST providers; generation can be slow
HTTP_TIMEOUT = httpx.Timeout(120.0, connect=10.0)

GROK_API_URL = "https://api.x.ai/v1/chat/completions"
AZURE_API_VERSION = "2024-02-15-preview"


def _json_object(provider: str, response) -> dict:
    """Decode a 200 response body that must be a JSON object."""
    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(provider, f"invalid JSON response: {e}") from e
    if not isinstance(data, dict):
        raise ProviderError(provider, f"unexpected response body: {type(data).__name__}")
    return data


def _chat_content(provider: str, response: httpx.Response) -> str:
    """Extract the first choice's message text from an OpenAI-style response."""
    if response.status_code != 200:
        raise ProviderError(
            provider, f"API error: {response.status_code}", status=response.status_code
        )
    choices = _json_object(provider, response).get("choices") or []
    if not choices:
        return ""
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise ProviderError(provider, "malformed choices in response")
    message = choices[0].get("message") or {}
    if not isinstance(message, dict):
        raise ProviderError(provider, "malformed message in response")
    content = message.get("content") or ""
    if not isinstance(content, str):
        raise ProviderError(provider, "malformed message content in response")
    return content


# -----------------------------------------------------------------------------
# OpenAI
# -----------------------------------------------------------------------------

class OpenAIBackend:
    """
    Backend using OpenAI's chat and embeddings APIs (openai SDK).

    Default models: gpt-4o-mini for generation, text-embedding-3-small for
    embeddings.
    """

    name = "openai"
    native_embeddings = True

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._api_key = api_key or ""
        self._client = None

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self):
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise RuntimeError("OpenAIBackend requires 'openai' library")
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def _completion_kwargs(self) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """Generate enhancement JSON using OpenAI chat completions."""
        from openai import OpenAIError

        prompt = build_enhancement_prompt(text, related_texts)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                **self._completion_kwargs(),
            )
        except OpenAIError as e:
            raise ProviderError(self.name, str(e), status=getattr(e, "status_code", None)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def embed(self, text: str) -> list[float]:
        """Generate an embedding using OpenAI."""
        from openai import OpenAIError

        try:
            response = self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )
        except OpenAIError as e:
            raise ProviderError(self.name, str(e), status=getattr(e, "status_code", None)) from e
        if not response.data:
            raise ProviderError(self.name, "no embedding in response")
        return list(response.data[0].embedding)

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return estimate_cost(self.name, tokens, operation)


# -----------------------------------------------------------------------------
# Google Gemini
# -----------------------------------------------------------------------------

class GoogleBackend:
    """
    Backend using Google's Gemini API (google-genai SDK).

    Default models: gemini-2.0-flash for generation, embedding-001 for
    embeddings.
    """

    name = "google"
    native_embeddings = True

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        embedding_model: str = "embedding-001",
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._api_key = api_key or ""
        self._client = None

    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self):
        if self._client is None:
            from .gemini_client import create_gemini_client
            self._client = create_gemini_client(self._api_key)
        return self._client

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """Generate enhancement JSON using Gemini."""
        from google.genai import errors, types

        prompt = build_enhancement_prompt(text, related_texts)
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    max_output_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
            )
        except errors.APIError as e:
            raise ProviderError(self.name, str(e), status=getattr(e, "code", None)) from e
        return response.text or ""

    def embed(self, text: str) -> list[float]:
        """Generate an embedding using Gemini."""
        from google.genai import errors

        try:
            result = self.client.models.embed_content(
                model=self.embedding_model,
                contents=text,
            )
        except errors.APIError as e:
            raise ProviderError(self.name, str(e), status=getattr(e, "code", None)) from e
        if not result.embeddings:
            return []
        return list(result.embeddings[0].values or [])

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return estimate_cost(self.name, tokens, operation)


# -----------------------------------------------------------------------------
# Grok (xAI) and Azure OpenAI: REST, no embedding endpoint
# -----------------------------------------------------------------------------

class GrokBackend:
    """
    Backend using xAI's OpenAI-compatible chat API over REST.

    Grok has no embedding endpoint; ``embed`` uses ``hash_embedding``.
    """

    name = "grok"
    native_embeddings = False

    def __init__(
        self,
        model: str = "grok-3-latest",
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        api_url: str = GROK_API_URL,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.api_url = api_url
        self._api_key = api_key or ""
        self._client: httpx.Client | None = None

    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=HTTP_TIMEOUT,
            )
        return self._client

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """Generate enhancement JSON using Grok."""
        prompt = build_enhancement_prompt(text, related_texts)
        try:
            response = self.client.post(
                self.api_url,
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": self.max_tokens,
                    "temperature": self.temperature,
                },
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        return _chat_content(self.name, response)

    def embed(self, text: str) -> list[float]:
        return hash_embedding(text)

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return estimate_cost(self.name, tokens, operation)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class AzureBackend:
    """
    Backend using an Azure OpenAI deployment over REST.

    ``model`` is the deployment name. Embeddings use ``hash_embedding``.
    """

    name = "azure"
    native_embeddings = False

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        endpoint: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        api_version: str = AZURE_API_VERSION,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.api_version = api_version
        self.endpoint = (endpoint or "").rstrip("/")
        self._api_key = api_key or ""
        self._client: httpx.Client | None = None

    def is_configured(self) -> bool:
        return bool(self._api_key) and bool(self.endpoint)

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers={
                    "api-key": self._api_key,
                    "Content-Type": "application/json",
                },
                timeout=HTTP_TIMEOUT,
            )
        return self._client

    @property
    def chat_url(self) -> str:
        return (
            f"{self.endpoint}/openai/deployments/{self.model}/chat/completions"
            f"?api-version={self.api_version}"
        )

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """Generate enhancement JSON using Azure OpenAI."""
        prompt = build_enhancement_prompt(text, related_texts)
        try:
            response = self.client.post(
                self.chat_url,
                json={
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": self.max_tokens,
                    "temperature": self.temperature,
                },
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        return _chat_content(self.name, response)

    def embed(self, text: str) -> list[float]:
        return hash_embedding(text)

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return estimate_cost(self.name, tokens, operation)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


# -----------------------------------------------------------------------------
# Local (Ollama)
# -----------------------------------------------------------------------------

class LocalBackend:
    """
    Backend using a local Ollama server.

    Generation goes to ``/api/generate``, embeddings to ``/api/embeddings``.
    Endpoint defaults to http://localhost:11434.
    """

    name = "local"
    native_embeddings = True

    def __init__(
        self,
        model: str = "llama3",
        embedding_model: str = "nomic-embed-text",
        endpoint: str | None = None,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self._endpoint = (endpoint or "").strip()
        self.base_url = ollama_base_url(self._endpoint)

    def is_configured(self) -> bool:
        return bool(self._endpoint)

    def enhance(self, text: str, related_texts: list[str]) -> str:
        """Generate enhancement JSON using Ollama."""
        prompt = build_enhancement_prompt(text, related_texts)
        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                },
                timeout=(10, 300),  # (connect, read)
            )
        except requests.RequestException as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        if response.status_code != 200:
            detail = response.text[:200] if response.text else ""
            raise ProviderError(
                self.name,
                f"Local LLM error (model={self.model}): HTTP {response.status_code}. {detail}",
                status=response.status_code,
            )
        content = _json_object(self.name, response).get("response") or ""
        if not isinstance(content, str):
            raise ProviderError(self.name, "malformed response text")
        return content

    def embed(self, text: str) -> list[float]:
        """Generate an embedding using Ollama."""
        try:
            response = requests.post(
                f"{self.base_url}/api/embeddings",
                json={
                    "model": self.embedding_model,
                    "prompt": text,
                },
                timeout=(10, 120),
            )
        except requests.RequestException as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        if response.status_code != 200:
            raise ProviderError(
                self.name,
                f"Local embedding error (model={self.embedding_model}): HTTP {response.status_code}",
                status=response.status_code,
            )
        values = _json_object(self.name, response).get("embedding") or []
        try:
            return [float(v) for v in values]
        except (TypeError, ValueError) as e:
            raise ProviderError(self.name, f"malformed embedding: {e}") from e

    def estimate_cost(self, tokens: int, operation: str = "generation") -> float:
        return estimate_cost(self.name, tokens, operation)


# Register providers
_registry = get_registry()
_registry.register_backend("openai", OpenAIBackend)
_registry.register_backend("google", GoogleBackend)
_registry.register_backend("grok", GrokBackend)
_registry.register_backend("azure", AzureBackend)
_registry.register_backend("local", LocalBackend)
