"""
Async HTTP client for a local (or remote) Ollama service.

Two endpoints are used:
    GET  /api/tags      -> {"models": [{"name": ...}, ...]}
    POST /api/generate  -> {"response": "..."}
"""

from __future__ import annotations

import logging

import httpx

from ..errors import NetworkError
from .ollama_utils import ollama_base_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0
LIST_TIMEOUT = 5.0


class OllamaClient:
    """Thin async wrapper over the Ollama REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = ollama_base_url(base_url)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def list_models(self) -> list[str]:
        """GET /api/tags -> model names. Any failure yields an empty list."""
        try:
            resp = await self._client.get("/api/tags", timeout=LIST_TIMEOUT)
            resp.raise_for_status()
            data = resp.json()
            return [
                m["name"] for m in data.get("models") or []
                if isinstance(m, dict) and isinstance(m.get("name"), str)
            ]
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            logger.warning("Failed to fetch Ollama models from %s: %s", self.base_url, e)
            return []

    async def generate(self, model: str, prompt: str) -> str:
        """POST /api/generate (non-streaming) -> response text.

        A JSON body without a string ``response`` field yields "".

        Raises:
            NetworkError: Transport failure, HTTP error status, or a body
                that is not JSON.
        """
        payload = {"model": model, "prompt": prompt, "stream": False}
        try:
            resp = await self._client.post("/api/generate", json=payload)
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Cannot reach Ollama at {self.base_url}: {e}"
            ) from e

        if resp.is_error:
            detail = resp.text[:200] if resp.text else ""
            raise NetworkError(
                f"Ollama generate failed (model={model}): "
                f"HTTP {resp.status_code} from {self.base_url}. {detail}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError(
                f"Ollama returned malformed JSON (model={model})"
            ) from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            logger.warning("Ollama response missing 'response' field (model=%s)", model)
            return ""
        return text

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
