"""有上限的会话历史。

每个适配器实例独占一份 ConversationHistory：

- 下标 0 永远是固定的 system 指令，裁剪时不会被移除；
- 每次 append 之后立即裁剪，调用方永远看不到超过上限的列表；
- clear() 之后重新插入同样文本的指令，而不是留空。
"""

from typing import List

from companion_core.domain.models import Message


class ConversationHistory:
    def __init__(self, directive: str, cap: int = 20):
        if cap < 2:
            raise ValueError("history cap must leave room for the directive and one turn")
        self._directive = Message(role="system", content=directive)
        self._cap = cap
        self._messages: List[Message] = [self._directive]

    @property
    def cap(self) -> int:
        return self._cap

    @property
    def directive(self) -> Message:
        return self._directive

    def append(self, message: Message) -> None:
        self._messages.append(message)
        self.trim_if_needed()

    def extend(self, *messages: Message) -> None:
        for message in messages:
            self.append(message)

    def trim_if_needed(self) -> None:
        """超过上限时保留指令与最近的 cap-1 条消息。"""

        self._messages = self._trimmed(self._messages)

    def clear(self) -> None:
        self._messages = [self._directive]

    def as_ordered_list(self) -> List[Message]:
        return list(self._messages)

    def preview_with(self, message: Message) -> List[Message]:
        """返回 append(message) 之后的列表，但不修改历史。

        用于构造发给后端的请求：请求内容与提交成功后的历史一致。
        """

        return self._trimmed(self._messages + [message])

    def _trimmed(self, messages: List[Message]) -> List[Message]:
        if len(messages) <= self._cap:
            return list(messages)
        return [messages[0]] + messages[len(messages) - self._cap + 1:]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(list(self._messages))
