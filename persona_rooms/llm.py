"""LLM client: HTTP connection to a text-completion backend.

The runtime talks to the model through a callable matching the protocol:

    async def __call__(self, stage: str, prompt: str,
                       model_class: ModelClass = ModelClass.LARGE) -> str: ...
    async def embed(self, text: str) -> list[float] | None: ...

`stage` identifies the calling step (e.g. "dialogue", "action:setMood").
The implementation may use it for logging or routing.

Production code constructs an HttpLLM from Settings and hands it to the
Framework. Tests use a scripted double (see conftest.py) instead.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


class ModelClass(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self, stage: str, prompt: str, model_class: ModelClass = ModelClass.LARGE
    ) -> str: ...

    async def embed(self, text: str) -> list[float] | None: ...


# ---------------------------------------------------------------------------
# HttpLLM: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class HttpLLM:
    """Async HTTP client for text-completion backends.

    Supported formats:
      "koboldcpp"  POST /api/v1/generate  {"prompt": ...}
                   Response: {"results": [{"text": "..."}]}
      "openai"     POST /v1/completions   {"model": ..., "prompt": ...}
                   Response: {"choices": [{"text": "..."}]}

    Embeddings always use the OpenAI-compatible POST /v1/embeddings route and
    are only requested when an embedding model is configured.

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "koboldcpp".
        models:          Model identifier per ModelClass (openai format only).
        embedding_model: Embedding model identifier; empty disables embed().
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        models: dict[ModelClass, str] | None = None,
        embedding_model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._models = dict(models or {})
        self._embedding_model = embedding_model
        self._timeout = timeout

    @property
    def provider_format(self) -> ProviderFormat:
        return self._format

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, model_class: ModelClass) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/completions"
            body: dict = {"prompt": prompt}
            model = self._models.get(model_class, "")
            if model:
                body["model"] = model
            return url, body

        # koboldcpp (default)
        url = f"{self._base_url}/api/v1/generate"
        return url, {"prompt": prompt}

    def _parse_response(self, data: dict) -> str:
        """Extract the completion text from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "text" not in choices[0]:
                raise LLMError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["text"]

        # koboldcpp
        results = data.get("results")
        if not results or "text" not in results[0]:
            raise LLMError("Unexpected response format from KoboldCpp backend")
        return results[0]["text"]

    async def _post(self, url: str, body: dict) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        return resp

    async def __call__(
        self, stage: str, prompt: str, model_class: ModelClass = ModelClass.LARGE
    ) -> str:
        url, body = self._build_request(prompt, model_class)
        logger.debug(
            "llm call stage=%s class=%s url=%s prompt_len=%d",
            stage, model_class.value, url, len(prompt),
        )
        resp = await self._post(url, body)
        text = self._parse_response(resp.json())
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text

    async def embed(self, text: str) -> list[float] | None:
        """Return an embedding vector, or None when embeddings are disabled."""
        if not self._embedding_model:
            return None
        url = f"{self._base_url}/v1/embeddings"
        resp = await self._post(url, {"model": self._embedding_model, "input": text})
        data = resp.json().get("data")
        if not data or "embedding" not in data[0]:
            raise LLMError("Unexpected response format from embeddings endpoint")
        return [float(v) for v in data[0]["embedding"]]


# ---------------------------------------------------------------------------
# LLMError: raised by HttpLLM for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""
