"""OpenAI 云端 Provider 适配器。

使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式: stream=true 时返回 SSE，每行以 "data:" 开头，以 "data: [DONE]" 结束。

构造时缺少 API 密钥（或仍是占位值）会抛出 ValidationError，
ProviderSelector 据此把云端分支视为不可用。
"""

import json
from typing import Any, AsyncIterator, Dict, List

import httpx

from companion_core.config.settings import OPENAI_KEY_PLACEHOLDER
from companion_core.domain.exceptions import (
    ApiError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from companion_core.domain.models import Message, ProviderDescriptor, ProviderKind
from companion_core.providers.base import HistoryBackedAdapter
from companion_core.providers.registry import OPENAI_CONFIG


class OpenAIClient(HistoryBackedAdapter):
    """OpenAI Chat Completions 客户端实现。"""

    name = "openai"

    def __init__(self, settings, directive: str):
        api_key = (getattr(settings, "openai_api_key", None) or "").strip()
        if not api_key or api_key == OPENAI_KEY_PLACEHOLDER:
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        base = (getattr(settings, "openai_base_url", None) or OPENAI_CONFIG.base_url).rstrip("/")
        model = getattr(settings, "openai_model", None) or OPENAI_CONFIG.default_model
        super().__init__(
            ProviderDescriptor(kind=ProviderKind.CLOUD, endpoint=base, model=model),
            directive,
            history_cap=getattr(settings, "max_history_messages", 20),
        )
        self._api_key = api_key
        self._base_url = base
        self._model = model
        self._max_tokens = getattr(settings, "openai_max_tokens", None) or OPENAI_CONFIG.max_tokens
        self._temperature = getattr(settings, "openai_temperature", OPENAI_CONFIG.default_temperature)
        self._timeout = getattr(settings, "http_timeout", 60.0)

    # ---- 非流式 ----

    async def _complete(self, messages: List[Message]) -> str:
        payload = self._build_payload(messages, stream=False)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429, provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code, provider=self.name)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message=f"Invalid JSON from OpenAI: {e}")
        return self._parse_response(data)

    # ---- 流式 ----

    async def _stream_fragments(self, messages: List[Message]) -> AsyncIterator[str]:
        payload = self._build_payload(messages, stream=True)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429, provider=self.name)
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise ApiError(code="API_ERROR", message=body, http_status=resp.status_code, provider=self.name)
                    async for line in resp.aiter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str:
                            continue
                        if data_str == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            # SSE 注释或心跳行
                            continue
                        for text in self._parse_stream_chunk(chunk):
                            yield text
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, provider=self.name)

    # ---- 辅助方法 ----

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages: List[Message], stream: bool) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [m.to_payload() for m in messages],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "stream": stream,
        }

    def _parse_response(self, data: Any) -> str:
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="OpenAI response has no choices")
        content = message.get("content") if isinstance(message, dict) else None
        if content is None:
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="OpenAI message has no content")
        return str(content)

    @staticmethod
    def _parse_stream_chunk(data: Any) -> List[str]:
        """提取单条增量中的文本片段。"""

        if not isinstance(data, dict):
            return []
        if data.get("error"):
            err = data["error"]
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise ApiError(code="API_ERROR", message=msg or "stream error", provider="openai")
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise MalformedResponseError(code="MALFORMED_RESPONSE", message="OpenAI stream chunk has invalid choices")
        texts: List[str] = []
        for ch in choices:
            if not isinstance(ch, dict):
                raise MalformedResponseError(code="MALFORMED_RESPONSE", message="OpenAI stream choice is not an object")
            delta = ch.get("delta") or {}
            if not isinstance(delta, dict):
                raise MalformedResponseError(code="MALFORMED_RESPONSE", message="OpenAI stream delta is not an object")
            content = delta.get("content")
            if content:
                texts.append(str(content))
        return texts
