from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from syn.config import DEFAULT_BASE_URL, ChatDefaults
from syn.errors import APIError, ChatError, ConfigError
from syn.utils.retry import RetryConfig, async_retry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "Be concise and direct. Answer briefly and to the point."

# Short names accepted on the command line.
MODEL_ALIASES: dict[str, str] = {
    "deepseek": "hf:deepseek-ai/DeepSeek-V3.2",
    "deepseek-v3.2": "hf:deepseek-ai/DeepSeek-V3.2",
    "kimi": "hf:moonshotai/Kimi-K2-Thinking",
    "kimi-thinking": "hf:moonshotai/Kimi-K2-Thinking",
    "glm": "hf:zai-org/GLM-4.7",
    "qwen": "hf:Qwen/Qwen3-235B-A22B-Instruct-2507",
    "qwen-coder": "hf:Qwen/Qwen3-Coder-480B-A35B-Instruct",
    "minimax": "hf:MiniMaxAI/MiniMax-M2.1",
    "gpt-oss": "hf:openai/gpt-oss-120b",
}


def resolve_model(model: str) -> str:
    return MODEL_ALIASES.get(model, model)


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> "Usage":
        if not isinstance(raw, dict):
            return cls()

        def _int(key: str) -> int:
            v = raw.get(key)
            # json.loads reads 1e999 as inf
            if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
                return 0
            return int(v)

        return cls(
            prompt_tokens=_int("prompt_tokens"),
            completion_tokens=_int("completion_tokens"),
            total_tokens=_int("total_tokens"),
        )


@dataclass(frozen=True)
class StreamResult:
    content: str = ""
    usage: Usage = field(default_factory=Usage)
    # Time to first content token; 0 when no token arrived.
    ttft_ms: int = 0


def _chunk_text(chunk: dict[str, Any]) -> str:
    parts: list[str] = []
    for choice in chunk.get("choices") or []:
        if not isinstance(choice, dict):
            continue
        delta = choice.get("delta") or {}
        t = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(t, str) and t:
            parts.append(t)
    return "".join(parts)


class ChatClient:
    """
    Minimal async client for an OpenAI-compatible /chat/completions API.

    Transport failures surface as ChatError (APIError for non-200 responses) after retries.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        *,
        model: str = "",
        timeout_s: float = 60.0,
        defaults: ChatDefaults | None = None,
        retry_cfg: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = (api_key or "").strip()
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._defaults = defaults or ChatDefaults()
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_s),
            headers={"Authorization": f"Bearer {self._api_key}"},
            transport=transport,
        )
        retrying = async_retry(retry_cfg or RetryConfig())
        self._stream_with_retry = retrying(self._stream_once)
        self._get_with_retry = retrying(self._get_json)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _require_api_key(self) -> None:
        if not self._api_key:
            raise ConfigError("API key is not configured. Set SYN_API_KEY (or SYNTHETIC_API_KEY)")

    def build_payload(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
    ) -> dict[str, Any]:
        return {
            "model": resolve_model(model or self._model),
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._defaults.temperature if temperature is None else temperature,
            "max_tokens": self._defaults.max_tokens if max_tokens is None else max_tokens,
            "top_p": self._defaults.top_p if top_p is None else top_p,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

    async def _stream_once(self, payload: dict[str, Any]) -> StreamResult:
        started = time.perf_counter()
        content: list[str] = []
        usage = Usage()
        ttft_ms = 0

        async with self._client.stream(
            "POST",
            "/chat/completions",
            json=payload,
            headers={"Accept": "text/event-stream"},
        ) as resp:
            if resp.status_code != 200:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                raise APIError(resp.status_code, body)

            async for line in resp.aiter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[len("data: ") :]
                if data.strip() == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except ValueError as e:
                    logger.debug("failed to parse stream chunk: %s", e)
                    continue
                if not isinstance(chunk, dict):
                    continue
                if chunk.get("usage"):
                    usage = Usage.from_raw(chunk["usage"])
                text = _chunk_text(chunk)
                if text:
                    if not content:
                        ttft_ms = max(int((time.perf_counter() - started) * 1000), 1)
                    content.append(text)

        return StreamResult(content="".join(content), usage=usage, ttft_ms=ttft_ms)

    async def stream_chat(
        self,
        prompt: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        top_p: float | None = None,
    ) -> StreamResult:
        self._require_api_key()
        payload = self.build_payload(
            prompt, model=model, temperature=temperature, max_tokens=max_tokens, top_p=top_p
        )
        try:
            result = await self._stream_with_retry(payload)
        except httpx.HTTPError as e:
            raise ChatError(f"failed to send request: {e}") from e
        except (ValueError, OverflowError) as e:
            raise ChatError(f"failed to decode stream: {e}") from e
        logger.debug(
            "chat stream complete model=%s completion_tokens=%s ttft_ms=%s",
            payload["model"],
            result.usage.completion_tokens,
            result.ttft_ms,
        )
        return result

    async def _get_json(self, path: str) -> Any:
        resp = await self._client.get(path)
        if resp.status_code != 200:
            raise APIError(resp.status_code, resp.text)
        return resp.json()

    async def list_models(self) -> list[str]:
        self._require_api_key()
        try:
            raw = await self._get_with_retry("/models")
        except httpx.HTTPError as e:
            raise ChatError(f"failed to list models: {e}") from e
        except ValueError as e:
            raise ChatError(f"failed to decode models response: {e}") from e

        ids: list[str] = []
        for m in (raw.get("data") if isinstance(raw, dict) else None) or []:
            mid = m.get("id") if isinstance(m, dict) else None
            if isinstance(mid, str) and mid.strip():
                ids.append(mid.strip())
        return ids
