"""每次 submit 新建的取消句柄。

句柄绑定一个 asyncio.Task：任务开始运行后，cancel() 既设置标志也取消任务，
因此无论任务此刻挂起在哪个 await 上都会尽快退出。
任务尚未开始时只设置标志，由周期开头的检查处理，
否则协程体（包括清理逻辑）根本不会执行。
消费流式 fragment 时再在每次拉取前后检查一次标志。
"""

import asyncio
from typing import Optional

from companion_core.domain.models import SessionOutcome


class CancellationHandle:
    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._reason: Optional[SessionOutcome] = None
        self._running = False
        self._disposed = False

    def bind(self, task: asyncio.Task) -> None:
        self._task = task

    def mark_running(self) -> None:
        self._running = True

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[SessionOutcome]:
        return self._reason

    @property
    def disposed(self) -> bool:
        return self._disposed

    def cancel(self, reason: SessionOutcome = SessionOutcome.CANCELLED) -> bool:
        """触发取消，重复调用或已释放时返回 False。"""

        if self._disposed or self._reason is not None:
            return False
        self._reason = reason
        if self._running and self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise asyncio.CancelledError()

    def dispose(self) -> None:
        self._task = None
        self._disposed = True
