"""Ollama 本地 LLM 适配器。

本模块负责：

1. 对本地后端做存活探测（GET /api/tags）与模型目录探测。
2. 把会话历史转换为 Ollama /api/chat 请求。
3. 解析一次性 JSON 响应与 NDJSON 流式响应。
4. 把网络/API/格式错误统一包装为 BusinessError。

探测函数永远不会抛出：任何失败都记录日志并返回“不可用”。
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List

import httpx

from companion_core.domain.exceptions import (
    ApiError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
)
from companion_core.domain.models import Message, ProviderDescriptor, ProviderKind
from companion_core.infrastructure.logging.logger import log_event
from companion_core.providers.base import HistoryBackedAdapter
from companion_core.providers.registry import OLLAMA_CONFIG


# ---- 探测 ----


async def is_ollama_available(endpoint: str, timeout: float = 10.0) -> bool:
    """本地后端是否在运行。"""

    url = f"{endpoint.rstrip('/')}/api/tags"
    try:
        async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
            resp = await client.get(url)
    except httpx.HTTPError as e:
        log_event(logging.INFO, "Ollama probe failed", {"provider": "ollama"}, endpoint=endpoint, error=repr(e))
        return False
    ok = 200 <= resp.status_code < 300
    log_event(logging.INFO, "Ollama probe", {"provider": "ollama"}, endpoint=endpoint, status=resp.status_code)
    return ok


async def list_local_models(endpoint: str, timeout: float = 10.0) -> List[str]:
    """返回本地已下载的模型名列表，失败时返回空列表。"""

    url = f"{endpoint.rstrip('/')}/api/tags"
    try:
        async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
            resp = await client.get(url)
        if resp.status_code >= 400:
            log_event(logging.INFO, "Ollama catalog unavailable", {"provider": "ollama"}, status=resp.status_code)
            return []
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        log_event(logging.INFO, "Ollama catalog probe failed", {"provider": "ollama"}, error=repr(e))
        return []
    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(models, list):
        return []
    names: List[str] = []
    for item in models:
        if isinstance(item, dict) and item.get("name"):
            names.append(str(item["name"]))
    return names


def model_matches(candidate: str, wanted: str) -> bool:
    """phi3 与 phi3:mini 视为同一模型，大小写不敏感。"""

    c = candidate.lower()
    w = wanted.lower()
    return c == w or c.startswith(w + ":")


async def is_model_available(endpoint: str, model: str, timeout: float = 10.0) -> bool:
    """指定模型是否已在本地目录中。"""

    names = await list_local_models(endpoint, timeout=timeout)
    found = any(model_matches(name, model) for name in names)
    log_event(
        logging.INFO,
        "Ollama model lookup",
        {"provider": "ollama"},
        model=model,
        catalog_size=len(names),
        found=found,
    )
    return found


# ---- 适配器 ----


class OllamaClient(HistoryBackedAdapter):
    """Ollama 本地后端客户端实现。"""

    name = "ollama"

    def __init__(self, settings, directive: str):
        endpoint = (getattr(settings, "local_endpoint", None) or OLLAMA_CONFIG.base_url).rstrip("/")
        model = getattr(settings, "local_model", None) or OLLAMA_CONFIG.default_model
        super().__init__(
            ProviderDescriptor(kind=ProviderKind.LOCAL, endpoint=endpoint, model=model),
            directive,
            history_cap=getattr(settings, "max_history_messages", 20),
        )
        self._endpoint = endpoint
        self._model = model
        self._max_tokens = getattr(settings, "local_max_tokens", None) or OLLAMA_CONFIG.max_tokens
        self._temperature = getattr(settings, "local_temperature", OLLAMA_CONFIG.default_temperature)
        self._timeout = getattr(settings, "http_timeout", 60.0)

    # ---- 非流式 ----

    async def _complete(self, messages: List[Message]) -> str:
        payload = self._build_payload(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(f"{self._endpoint}/api/chat", json=payload)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Ollama rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, provider=self.name)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message=f"Invalid JSON from Ollama: {e}")
        return self._extract_content(data)

    # ---- 流式 ----

    async def _stream_fragments(self, messages: List[Message]) -> AsyncIterator[str]:
        payload = self._build_payload(messages, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream("POST", f"{self._endpoint}/api/chat", json=payload) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="Ollama rate limit", provider=self.name)
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise ApiError(code="API_ERROR", message=body, http_status=resp.status_code, provider=self.name)
                    async for line in resp.aiter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            chunk = json.loads(line)
                        except json.JSONDecodeError:
                            raise MalformedResponseError(code="MALFORMED_RESPONSE", message=f"Invalid stream line: {line[:80]}")
                        text = self._extract_content(chunk, allow_empty=True)
                        if text:
                            yield text
                        if chunk.get("done"):
                            break
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, provider=self.name)

    # ---- 辅助方法 ----

    def _build_payload(self, messages: List[Message], stream: bool) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [m.to_payload() for m in messages],
            "stream": stream,
            "options": {
                "num_predict": self._max_tokens,
                "temperature": self._temperature,
            },
        }

    def _extract_content(self, data: Any, allow_empty: bool = False) -> str:
        if not isinstance(data, dict):
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="Ollama response is not an object")
        if data.get("error"):
            raise ApiError(code="API_ERROR", message=str(data["error"]), provider=self.name)
        message = data.get("message")
        if not isinstance(message, dict):
            if allow_empty and data.get("done"):
                return ""
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="Ollama response has no message")
        content = message.get("content")
        if content is None:
            if allow_empty:
                return ""
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="Ollama message has no content")
        return str(content)
