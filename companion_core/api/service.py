"""对外 API 服务模块。

展示层启动时调用 start_session()：配置日志、按可用性选择后端、
创建 ConversationSession，并按配置挂上会话记录。
"""

import logging
from typing import Optional, Tuple

from companion_core.config.settings import CompanionSettings, load_settings
from companion_core.domain.conversation import ConversationStore
from companion_core.infrastructure.logging.logger import log_event, setup_logger
from companion_core.infrastructure.storage.json_store import JsonTranscriptStore, TranscriptRecorder
from companion_core.providers.selector import select_provider
from companion_core.session.conversation_session import ConversationSession
from companion_core.session.dispatch import Dispatcher


async def start_session(
    settings: Optional[CompanionSettings] = None,
    dispatcher: Optional[Dispatcher] = None,
    store: Optional[ConversationStore] = None,
) -> Tuple[ConversationSession, str]:
    """返回 (session, label)，label 用于 UI 横幅。

    Args:
        settings: 启动时构造的配置，缺省时调用 load_settings()
        dispatcher: 把通知切换到 UI 线程的函数，缺省时直接调用
        store: 会话记录存储，缺省时按配置使用 JsonTranscriptStore
    """
    settings = settings or load_settings()
    setup_logger(settings)

    adapter, label = await select_provider(settings)

    on_turn = None
    on_clear = None
    if settings.save_history:
        store = store or JsonTranscriptStore(
            root=settings.storage_root,
            max_messages=settings.max_transcript_messages,
            max_conversations=settings.max_conversations,
        )
        on_turn = TranscriptRecorder(store, provider=adapter.name, meta={"label": label})
        on_clear = on_turn.start_new

    session = ConversationSession(
        adapter,
        settings=settings,
        dispatcher=dispatcher,
        on_turn=on_turn,
        on_clear=on_clear,
    )
    log_event(
        logging.INFO,
        "Session started",
        {"provider": adapter.name},
        label=label,
        save_history=settings.save_history,
    )
    return session, label
