"""Model client for the narrator stream and mission generation.

Callers depend on the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...
    def stream(self, stage: str, prompt: str) -> AsyncIterator[str]: ...

`stage` names the caller ("narrator", "mission_designer") and only shows up
in logs. A narrator turn pulls `stream()` chunk by chunk; mission generation
needs the whole JSON answer and awaits `__call__`.

    HttpLLM   — KoboldCpp or OpenAI-compatible completion server, chosen by
                 provider_format.
    EchoLLM   — streams the prompt back word by word, for running the server
                 without a model.

Tests script responses with StubLLM from conftest.py.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """The model backend was unreachable, failed, or answered in a shape we can't read."""


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...

    def stream(self, stage: str, prompt: str) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# HttpLLM
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]

_ENDPOINTS: dict[tuple[str, bool], str] = {
    ("koboldcpp", False): "/api/v1/generate",
    ("koboldcpp", True): "/api/extra/generate/stream",
    ("openai", False): "/v1/completions",
    ("openai", True): "/v1/completions",
}


class HttpLLM:
    """Async client for a text-completion server.

    koboldcpp:
        POST /api/v1/generate            -> {"results": [{"text": ...}]}
        POST /api/extra/generate/stream  -> SSE, data: {"token": ...}
    openai:
        POST /v1/completions             -> {"choices": [{"text": ...}]}
        same, with "stream": true        -> SSE, data: {"choices": [...]}, then data: [DONE]

    Args:
        provider_url:    Server base URL, e.g. "http://localhost:5001".
        api_key:         Sent as a Bearer token when non-empty.
        provider_format: "koboldcpp" (default) or "openai".
        model:           Only sent in the openai format.
        timeout:         Seconds, applied to every request.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    @classmethod
    def from_config(cls, llm_config: dict[str, Any]) -> HttpLLM:
        """Build from the `llm` section of the app config."""
        return cls(
            provider_url=llm_config.get("provider_url", ""),
            api_key=llm_config.get("api_key", ""),
            provider_format=llm_config.get("provider_format", "koboldcpp"),
            model=llm_config.get("model", ""),
            timeout=float(llm_config.get("timeout", 120)),
        )

    def _url(self, streaming: bool) -> str:
        return self._base_url + _ENDPOINTS[(self._format, streaming)]

    def _body(self, prompt: str, streaming: bool) -> dict[str, Any]:
        body: dict[str, Any] = {"prompt": prompt}
        if self._format == "openai":
            if self._model:
                body["model"] = self._model
            if streaming:
                body["stream"] = True
        return body

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _translate(self, e: httpx.HTTPError, streaming: bool) -> LLMError:
        if isinstance(e, httpx.ConnectError):
            return LLMError(f"Cannot connect to LLM backend at {self._base_url}")
        if isinstance(e, httpx.HTTPStatusError):
            return LLMError(f"LLM backend returned HTTP {e.response.status_code}")
        if isinstance(e, httpx.TimeoutException):
            return LLMError(f"LLM backend timed out after {self._timeout}s")
        if streaming:
            return LLMError(f"LLM stream interrupted: {e}")
        return LLMError(f"LLM request failed: {e}")

    def _completion_text(self, resp: httpx.Response) -> str:
        key, backend = ("choices", "OpenAI-compatible") if self._format == "openai" else ("results", "KoboldCpp")
        try:
            text = resp.json()[key][0]["text"]
        except (ValueError, LookupError, TypeError) as e:
            raise LLMError(f"Unexpected response format from {backend} backend") from e
        if not isinstance(text, str):
            raise LLMError(f"Unexpected response format from {backend} backend")
        return text

    def _token(self, payload: str) -> str | None:
        """Text carried by one SSE `data:` payload; None marks end of stream."""
        if payload == "[DONE]":
            return None
        try:
            data = json.loads(payload)
            if self._format == "openai":
                text = (data.get("choices") or [{}])[0].get("text")
            else:
                text = data.get("token")
        except (ValueError, LookupError, TypeError, AttributeError) as e:
            raise LLMError(f"Malformed stream event from LLM backend: {payload[:80]!r}") from e
        if text is not None and not isinstance(text, str):
            raise LLMError(f"Malformed stream event from LLM backend: {payload[:80]!r}")
        return text or ""

    async def __call__(self, stage: str, prompt: str) -> str:
        url = self._url(streaming=False)
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=self._body(prompt, False), headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise self._translate(e, streaming=False) from e

        text = self._completion_text(resp)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text

    async def stream(self, stage: str, prompt: str) -> AsyncIterator[str]:
        """Yield completion text in arrival order, skipping empty tokens."""
        url = self._url(streaming=True)
        logger.debug("llm stream stage=%s url=%s prompt_len=%d", stage, url, len(prompt))
        received = 0
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                async with client.stream(
                    "POST", url, json=self._body(prompt, True), headers=self._headers()
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        token = self._token(line[len("data:"):].strip())
                        if token is None:
                            break
                        if token:
                            received += len(token)
                            yield token
        except httpx.HTTPError as e:
            raise self._translate(e, streaming=True) from e
        logger.debug("llm stream done stage=%s len=%d", stage, received)


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class EchoLLM:
    """Echoes the prompt. No network calls."""

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(prompt))
        return prompt

    async def stream(self, stage: str, prompt: str) -> AsyncIterator[str]:
        logger.debug("EchoLLM stream stage=%s prompt_len=%d", stage, len(prompt))
        for word in prompt.split(" "):
            yield word + " "
