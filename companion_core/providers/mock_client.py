"""确定性的 stand-in 适配器。

本地与云端都不可用时的兜底后端：不访问网络、永不失败，
回答内容只取决于 prompt，延迟由配置给出，便于演示与测试。
"""

import asyncio
from typing import AsyncIterator, Iterator, List

from companion_core.domain.models import Message, ProviderDescriptor, ProviderKind
from companion_core.providers.base import HistoryBackedAdapter
from companion_core.providers.registry import MOCK_CONFIG


class MockClient(HistoryBackedAdapter):
    name = "mock"

    def __init__(self, settings, directive: str):
        super().__init__(
            ProviderDescriptor(kind=ProviderKind.STAND_IN, endpoint="", model=MOCK_CONFIG.default_model),
            directive,
            history_cap=getattr(settings, "max_history_messages", 20),
        )
        self._response_delay = getattr(settings, "mock_response_delay", 0.5)
        self._fragment_delay = getattr(settings, "mock_fragment_delay", 0.1)

    async def _complete(self, messages: List[Message]) -> str:
        await asyncio.sleep(self._response_delay)
        return f'(mock) Received: "{shorten(messages[-1].content)}"'

    async def _stream_fragments(self, messages: List[Message]) -> AsyncIterator[str]:
        full = (
            f"(mock streaming) Answer for: {shorten(messages[-1].content)}. "
            "This is a simulated streaming response."
        )
        for part in chunk_into_words(full, max_words_per_chunk=4):
            await asyncio.sleep(self._fragment_delay)
            yield part


def chunk_into_words(text: str, max_words_per_chunk: int) -> Iterator[str]:
    """按单词切片；除最后一片外都带一个尾随空格，拼接后与原文一致。"""

    words = text.split()
    for i in range(0, len(words), max_words_per_chunk):
        part = " ".join(words[i:i + max_words_per_chunk])
        if i + max_words_per_chunk < len(words):
            part += " "
        yield part


def shorten(s: str, limit: int = 60) -> str:
    if not s:
        return ""
    return s if len(s) <= limit else s[:limit - 3] + "..."
