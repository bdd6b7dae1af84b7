"""Provider 抽象接口。

上层 ConversationSession 不直接依赖具体后端的 HTTP 协议，而是依赖此协议：

- 每个后端实现一个适配器（OllamaClient、OpenAIClient、MockClient）。
- respond(prompt): 一次性取得完整回答，失败时返回错误文本而不是抛出。
- stream(prompt): 惰性、有限、只能向前的 fragment 序列，失败时在序列上抛出。
- clear_history(): 把历史重置为只剩固定的系统指令。

每个适配器实例独占一份 ConversationHistory，外部只能看到聚合后的文本结果。
"""

import logging
from typing import AsyncIterator, List, Protocol

from companion_core.domain.exceptions import BusinessError, error_text
from companion_core.domain.history import ConversationHistory
from companion_core.domain.models import Message, ProviderDescriptor
from companion_core.infrastructure.logging.logger import log_event


class ProviderAdapter(Protocol):
    """文本生成后端的统一协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/横幅。
    - descriptor: 后端描述。
    - respond / stream / clear_history。
    """

    name: str
    descriptor: ProviderDescriptor

    async def respond(self, prompt: str) -> str:
        ...

    def stream(self, prompt: str) -> AsyncIterator[str]:
        ...

    def clear_history(self) -> None:
        ...

    def history(self) -> List[Message]:
        ...


class HistoryBackedAdapter:
    """适配器公共部分：历史维护与错误转换。

    子类只需实现两个钩子：
    - _complete(messages): 返回完整回答文本；
    - _stream_fragments(messages): 逐段产出回答文本。
    两者都应把后端失败转换成 BusinessError 抛出。
    """

    name = "base"

    def __init__(self, descriptor: ProviderDescriptor, directive: str, history_cap: int = 20):
        self.descriptor = descriptor
        self._history = ConversationHistory(directive, cap=history_cap)

    async def respond(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            return ""
        user_message = Message(role="user", content=prompt)
        messages = self._history.preview_with(user_message)
        try:
            text = await self._complete(messages)
        except BusinessError as e:
            log_event(
                logging.WARNING,
                "Backend call failed",
                {"provider": self.name},
                code=e.code,
                error=e.message,
            )
            return error_text(e)
        self._history.extend(user_message, Message(role="assistant", content=text))
        return text

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        if not prompt or not prompt.strip():
            return
        user_message = Message(role="user", content=prompt)
        messages = self._history.preview_with(user_message)
        parts: List[str] = []
        fragments = self._stream_fragments(messages)
        try:
            async for fragment in fragments:
                if not fragment:
                    continue
                if not parts:
                    self._history.append(user_message)
                parts.append(fragment)
                yield fragment
        finally:
            await fragments.aclose()
        # 只有正常结束才会走到这里，取消或异常时不写入回答；
        # 没有任何 fragment 时历史保持不变
        if parts:
            self._history.append(Message(role="assistant", content="".join(parts)))

    def clear_history(self) -> None:
        self._history.clear()

    def history(self) -> List[Message]:
        return self._history.as_ordered_list()

    def history_count(self) -> int:
        return len(self._history)

    async def _complete(self, messages: List[Message]) -> str:
        raise NotImplementedError

    def _stream_fragments(self, messages: List[Message]) -> AsyncIterator[str]:
        raise NotImplementedError
