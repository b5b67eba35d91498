"""API providers that produce the responses under evaluation."""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, List, Optional

import httpx
from ollama import AsyncClient, ResponseError

from evalrunner.config import settings
from evalrunner.evaluator.models import ProviderResponse

logger = logging.getLogger(__name__)


class ApiProvider(abc.ABC):
    """Opaque backend: given a prompt and context, return an output or an error."""

    @abc.abstractmethod
    async def call_api(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> ProviderResponse:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class OllamaProvider(ApiProvider):
    """Chat completions from an Ollama server, one non-streaming request per call."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.model = model or settings.text_llm_model
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = settings.llm_max_tokens if max_tokens is None else max_tokens
        self._owns_client = client is None
        self._client = client or AsyncClient(
            host=base_url or settings.ollama_base,
            timeout=settings.llm_timeout,
        )

    async def call_api(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> ProviderResponse:
        context = context or {}
        messages: List[Dict[str, str]] = []
        system = context.get("system")
        if system:
            messages.append({"role": "system", "content": str(system)})
        messages.append({"role": "user", "content": prompt})

        options = {
            "temperature": self.temperature,
            "num_predict": max(1, self.max_tokens),
        }

        try:
            response = await self._client.chat(model=self.model, messages=messages, options=options)
        except ResponseError as exc:
            logger.error("Ollama request failed (status %s): %s", exc.status_code, exc.error)
            return ProviderResponse(error=f"ollama returned status {exc.status_code}: {exc.error}")
        except (httpx.HTTPError, ConnectionError, ValueError) as exc:
            logger.error("Ollama request failed: %s", exc)
            return ProviderResponse(error=str(exc) or exc.__class__.__name__)

        content = response.message.content if response.message else None
        if not content:
            return ProviderResponse(error="text llm returned empty content")
        return ProviderResponse(output=str(content).strip())

    async def aclose(self) -> None:
        if not self._owns_client:
            return
        close = getattr(self._client, "close", None)
        if callable(close):  # pragma: no cover - depends on the ollama release
            await close()
