"""会话记录的 JSON 存储。

核心不拥有任何磁盘格式；这里只是一个观察者，记录已经完成的回合：

    <root>/conversations/<id>/meta.json
    <root>/conversations/<id>/messages.jsonl

每个会话最多保留 max_messages 条消息，会话总数超过 max_conversations 时删除最旧的。
"""

import json
import os
import shutil
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from companion_core.domain.conversation import ConversationStore, Conversation, MessageRecord
from companion_core.domain.exceptions import BusinessError

TITLE_MAX_CHARS = 30


def make_title(text: str, limit: int = TITLE_MAX_CHARS) -> str:
    """取首条用户消息生成标题，换行压平后截断。"""

    flat = text.replace("\r", "").replace("\n", " ").strip()
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonTranscriptStore(ConversationStore):
    def __init__(self, root: str | Path, max_messages: int = 100, max_conversations: int = 50):
        self._root = Path(root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)
        self._max_messages = max_messages
        self._max_conversations = max_conversations

    def create_conversation(self, provider: str, meta: Dict[str, Any], title: Optional[str] = None) -> Conversation:
        cid = f"c-{uuid4().hex}"
        cdir = self._conv_root / cid
        cdir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        conv = Conversation(id=cid, title=title or "", provider=provider, created_at=now, updated_at=now, meta=dict(meta))
        self._write_meta(cdir, conv)
        self._prune_conversations()
        return conv

    def get_conversation(self, conversation_id: str) -> Conversation:
        meta_path = self._conv_root / conversation_id / "meta.json"
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id)
        except (OSError, ValueError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return self._to_conversation(data)

    def list_conversations(self) -> List[Conversation]:
        """按更新时间倒序返回；损坏的会话目录被跳过。"""

        items: List[Conversation] = []
        for cdir in self._conv_root.iterdir():
            meta_path = cdir / "meta.json"
            if not meta_path.exists():
                continue
            try:
                items.append(self._to_conversation(json.loads(meta_path.read_text(encoding="utf-8"))))
            except (OSError, ValueError, KeyError):
                continue
        items.sort(key=lambda c: c.updated_at, reverse=True)
        return items

    def add_message(self, message: MessageRecord) -> None:
        cdir = self._conv_root / message.conversation_id
        msgs_path = cdir / "messages.jsonl"
        conv = self.get_conversation(message.conversation_id)
        try:
            payload = asdict(message)
            payload["created_at"] = _iso(message.created_at)
            with msgs_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")
            self._trim_messages(msgs_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        if not conv.title and message.role == "user":
            conv.title = make_title(message.content)
        conv.updated_at = datetime.now(timezone.utc)
        self._write_meta(cdir, conv)

    def list_messages(self, conversation_id: str) -> List[MessageRecord]:
        msgs_path = self._conv_root / conversation_id / "messages.jsonl"
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        for line in msgs_path.read_text(encoding="utf-8").splitlines():
            try:
                items.append(self._to_message(json.loads(line)))
            except (ValueError, KeyError):
                continue
        return items

    def delete_conversation(self, conversation_id: str) -> None:
        cdir = self._conv_root / conversation_id
        if not cdir.exists():
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id)
        try:
            shutil.rmtree(cdir)
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        """更新会话标题。"""
        conv = self.get_conversation(conversation_id)
        conv.title = title
        conv.updated_at = datetime.now(timezone.utc)
        self._write_meta(self._conv_root / conversation_id, conv)

    def clear_all(self) -> None:
        for conv in self.list_conversations():
            self.delete_conversation(conv.id)

    def _trim_messages(self, msgs_path: Path) -> None:
        lines = msgs_path.read_text(encoding="utf-8").splitlines()
        if len(lines) <= self._max_messages:
            return
        keep = lines[len(lines) - self._max_messages:]
        tmp_path = msgs_path.with_name(f"messages.{uuid4().hex}.jsonl.tmp")
        tmp_path.write_text("\n".join(keep) + "\n", encoding="utf-8")
        os.replace(tmp_path, msgs_path)

    def _prune_conversations(self) -> None:
        convs = self.list_conversations()
        for conv in convs[self._max_conversations:]:
            self.delete_conversation(conv.id)

    def _write_meta(self, cdir: Path, conv: Conversation) -> None:
        meta_path = cdir / "meta.json"
        tmp_path = cdir / f"meta.{uuid4().hex}.json.tmp"
        obj = {
            "id": conv.id,
            "title": conv.title,
            "provider": conv.provider,
            "created_at": _iso(conv.created_at),
            "updated_at": _iso(conv.updated_at),
            "meta": conv.meta,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_conversation(data: Dict[str, Any]) -> Conversation:
        return Conversation(
            id=data["id"],
            title=data.get("title") or "",
            provider=data.get("provider") or "",
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
            meta=data.get("meta") or {},
        )

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            conversation_id=data["conversation_id"],
            role=data["role"],
            content=data.get("content") or "",
            created_at=_parse_dt(data["created_at"]),
            meta=data.get("meta") or {},
        )


class TranscriptRecorder:
    """把 ConversationSession 的 on_turn 回调写入存储，首个回合时才创建会话。"""

    def __init__(self, store: ConversationStore, provider: str, meta: Optional[Dict[str, Any]] = None):
        self._store = store
        self._provider = provider
        self._meta = dict(meta or {})
        self._conversation_id: Optional[str] = None

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    def start_new(self) -> None:
        """下一回合写入新的会话。"""
        self._conversation_id = None

    def __call__(self, user_text: str, assistant_text: str) -> None:
        if self._conversation_id is None:
            conv = self._store.create_conversation(self._provider, self._meta)
            self._conversation_id = conv.id
        for role, content in (("user", user_text), ("assistant", assistant_text)):
            self._store.add_message(
                MessageRecord(
                    id=f"m-{uuid4().hex}",
                    conversation_id=self._conversation_id,
                    role=role,
                    content=content,
                    created_at=datetime.now(timezone.utc),
                    meta={"provider": self._provider},
                )
            )
