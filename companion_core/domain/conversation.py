from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Protocol
from datetime import datetime
from .models import Role


@dataclass
class Conversation:
    id: str
    title: str
    provider: str
    created_at: datetime
    updated_at: datetime
    meta: Dict[str, Any]


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: Role
    content: str
    created_at: datetime
    meta: Dict[str, Any]


class ConversationStore(Protocol):
    def create_conversation(self, provider: str, meta: Dict[str, Any], title: Optional[str] = None) -> Conversation:
        ...

    def get_conversation(self, conversation_id: str) -> Conversation:
        ...

    def list_conversations(self) -> List[Conversation]:
        ...

    def add_message(self, message: MessageRecord) -> None:
        ...

    def list_messages(self, conversation_id: str) -> List[MessageRecord]:
        ...

    def delete_conversation(self, conversation_id: str) -> None:
        ...
