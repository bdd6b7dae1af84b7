"""会话状态机、取消句柄与通知投递。"""

from companion_core.session.cancellation import CancellationHandle
from companion_core.session.conversation_session import ConversationSession
from companion_core.session.dispatch import direct_dispatch, loop_dispatcher, thread_dispatcher

__all__ = [
    "CancellationHandle",
    "ConversationSession",
    "direct_dispatch",
    "loop_dispatcher",
    "thread_dispatcher",
]
