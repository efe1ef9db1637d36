"""
embedding.py
------------

Embedding provider clients.  Each client maps one text string to one
:class:`~hybrid_rag.records.EmbeddingVector` and does nothing else: no
caching, no retries, no batching.  Retry policy belongs to the caller.

Two providers are supported:

- :class:`OllamaEmbeddingClient` talks to Ollama's ``/api/embed``
  endpoint over HTTP using ``httpx``.
- :class:`OpenAIEmbeddingClient` uses the ``openai`` SDK and works with
  any OpenAI compatible server.

Both distinguish a failed call (:class:`ProviderUnavailable` when the
provider cannot be reached, :class:`ProviderError` when it answers with
a failure) from a successful call that returned no vector, which
yields an empty ``EmbeddingVector``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx
import openai

from .config import Settings
from .errors import ConfigurationError, ProviderError, ProviderUnavailable
from .records import EmbeddingVector

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    model_name: str

    def embed(self, text: str) -> EmbeddingVector:
        ...

    def close(self) -> None:
        ...


def _coerce_vector(raw: Any, provider: str) -> EmbeddingVector:
    if raw is None:
        return EmbeddingVector()
    if not isinstance(raw, (list, tuple)):
        raise ProviderError(f"{provider} returned a malformed embedding: {type(raw).__name__}")
    try:
        return EmbeddingVector.of(raw)
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"{provider} returned non-numeric embedding values") from exc


class OllamaEmbeddingClient:
    """Embed text through an Ollama server.

    Parameters
    ----------
    model_name : str
        The Ollama model, e.g. ``bge-m3``.
    base_url : str
        Server root, e.g. ``http://localhost:11434``.
    timeout : float
        Per-request timeout in seconds.  A timeout surfaces as
        :class:`ProviderUnavailable`.
    transport : httpx.BaseTransport, optional
        Custom transport, mainly for tests.
    """

    def __init__(
        self,
        model_name: str = "bge-m3",
        *,
        base_url: str = "http://localhost:11434",
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.model_name = model_name
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def embed(self, text: str) -> EmbeddingVector:
        try:
            response = self._client.post(
                "/api/embed",
                json={"model": self.model_name, "input": text},
            )
        except httpx.TransportError as exc:
            raise ProviderUnavailable(f"Ollama at {self.base_url} is unreachable: {exc}") from exc
        if not response.is_success:
            raise ProviderError(
                f"Ollama returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("Ollama returned a non-JSON response") from exc
        if not isinstance(body, dict):
            raise ProviderError("Ollama returned an unexpected response shape")
        embeddings = body.get("embeddings")
        if not embeddings:
            return EmbeddingVector()
        if not isinstance(embeddings, list):
            raise ProviderError("Ollama returned a malformed 'embeddings' field")
        return _coerce_vector(embeddings[0], "Ollama")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OllamaEmbeddingClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class OpenAIEmbeddingClient:
    """Embed text with the OpenAI embeddings API.

    The SDK's own retries are disabled so that a failure is reported
    to the caller exactly once.
    """

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[Any] = None,
    ) -> None:
        self.model_name = model_name
        if client is None:
            try:
                client = openai.OpenAI(
                    api_key=api_key,
                    base_url=base_url,
                    timeout=timeout,
                    max_retries=0,
                )
            except openai.OpenAIError as exc:
                raise ConfigurationError(f"Cannot initialise OpenAI client: {exc}") from exc
        self._client = client

    def embed(self, text: str) -> EmbeddingVector:
        try:
            response = self._client.embeddings.create(model=self.model_name, input=text)
        except openai.APIConnectionError as exc:
            raise ProviderUnavailable(f"OpenAI embeddings endpoint is unreachable: {exc}") from exc
        except openai.APIStatusError as exc:
            raise ProviderError(
                f"OpenAI embeddings request failed with HTTP {exc.status_code}: {exc.message}"
            ) from exc
        data = getattr(response, "data", None) or []
        if not data:
            return EmbeddingVector()
        # the API returns one item per input, tagged with its index
        first = min(data, key=lambda item: getattr(item, "index", 0))
        return _coerce_vector(getattr(first, "embedding", None), "OpenAI")

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    """Create the embedding client selected by ``settings.embedding_provider``."""
    model = settings.hybrid.embedding_model
    if settings.embedding_provider == "openai":
        logger.debug("Using OpenAI embeddings (model=%s)", model)
        return OpenAIEmbeddingClient(
            model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.embedding_timeout,
        )
    logger.debug("Using Ollama embeddings at %s (model=%s)", settings.ollama_url, model)
    return OllamaEmbeddingClient(
        model,
        base_url=settings.ollama_url,
        timeout=settings.embedding_timeout,
    )
