"""统一的消息、Provider 描述与会话状态模型。

本模块定义了核心在不同 Provider 与展示层之间共享的标准数据结构：

- Message: 一条对话消息（system/user/assistant），创建后不可变。
- ProviderDescriptor: 由配置生成的后端描述，选择完成后只读。
- SessionState / PartialResponse / SessionChange: ConversationSession 对外可观察的状态。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Literal


# LLM 消息角色类型（与 OpenAI / Ollama 的 role 字段对应）
Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    """一条对话消息，既可用于请求，也可用于响应。"""

    role: Role
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class ProviderKind(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"
    STAND_IN = "stand-in"


@dataclass(frozen=True)
class ProviderDescriptor:
    """某个后端的描述。

    - kind: 后端类别（local/cloud/stand-in）。
    - endpoint: 后端地址，stand-in 为空字符串。
    - model: 厂商实际模型 ID。
    - available: 选择器探测后的可用性。
    """

    kind: ProviderKind
    endpoint: str
    model: str
    available: bool = True

    def with_availability(self, available: bool) -> "ProviderDescriptor":
        return replace(self, available=available)


class SessionState(str, Enum):
    IDLE = "Idle"
    LISTENING = "Listening"
    THINKING = "Thinking"
    SPEAKING = "Speaking"


class SessionOutcome(str, Enum):
    """一次 submit 的结果。"""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SUPERSEDED = "superseded"
    SKIPPED = "skipped"


@dataclass
class PartialResponse:
    """流式回答的累积文本，sequence 随每个 fragment 单调递增。"""

    text: str = ""
    sequence: int = 0

    def append(self, fragment: str) -> None:
        self.text += fragment
        self.sequence += 1


@dataclass(frozen=True)
class SessionChange:
    """推送给展示层的变更通知。

    field 为 "state" 或 "response_text"，其余字段是变更后的快照。
    """

    field: Literal["state", "response_text"]
    state: SessionState
    text: str
    sequence: int = 0
