"""会话状态机。

ConversationSession 驱动一次 prompt 的完整生命周期：

    Idle → Listening → Thinking → Speaking → Idle

- 每次 submit 都新建一个 CancellationHandle，并取消上一次仍在进行的操作，
  同一会话任何时刻最多只有一个未完成的操作；被取代的操作不再发布任何变更。
- 后端错误不会从会话里抛出，而是作为回答文本发布，照常经过 Speaking 回到 Idle。
- 只有取消是特殊结果：直接回到 Idle，不发布被取消的部分文本。
- 所有对外可观察的变更（state、response_text）都通过注入的 dispatcher 通知监听者。

会话本身应在事件循环线程上驱动；其他线程要取消时，
用 ``loop.call_soon_threadsafe(session.cancel)``。
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from companion_core.domain.exceptions import BusinessError, error_text
from companion_core.domain.models import PartialResponse, SessionChange, SessionOutcome, SessionState
from companion_core.infrastructure.logging.logger import log_event
from companion_core.providers.base import ProviderAdapter
from companion_core.session.cancellation import CancellationHandle
from companion_core.session.dispatch import Dispatcher, direct_dispatch

Listener = Callable[[SessionChange], None]
TurnObserver = Callable[[str, str], None]

DEFAULT_LISTENING_DELAY = 0.08
DEFAULT_SETTLING_DELAY = 0.3


class ConversationSession:
    def __init__(
        self,
        adapter: ProviderAdapter,
        settings=None,
        dispatcher: Optional[Dispatcher] = None,
        on_turn: Optional[TurnObserver] = None,
        on_clear: Optional[Callable[[], None]] = None,
    ):
        self._adapter = adapter
        self._dispatch = dispatcher or direct_dispatch
        self._on_turn = on_turn
        self._on_clear = on_clear
        self._listening_delay = getattr(settings, "listening_delay", DEFAULT_LISTENING_DELAY)
        self._settling_delay = getattr(settings, "settling_delay", DEFAULT_SETTLING_DELAY)

        self._state = SessionState.IDLE
        self._response_text = ""
        self._sequence = 0
        self._partial: Optional[PartialResponse] = None
        self._handle: Optional[CancellationHandle] = None
        self._listeners: List[Listener] = []

    # ---- 只读属性 ----

    @property
    def adapter(self) -> ProviderAdapter:
        return self._adapter

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def response_text(self) -> str:
        return self._response_text

    @property
    def partial(self) -> Optional[PartialResponse]:
        return self._partial

    @property
    def busy(self) -> bool:
        return self._handle is not None

    # ---- 通知 ----

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_turn_observer(self, observer: Optional[TurnObserver]) -> None:
        self._on_turn = observer

    # ---- 入口 ----

    async def submit_prompt(self, prompt: str) -> SessionOutcome:
        """一次性回答。被取代或取消时正常返回对应结果，不抛出。"""

        task = self.start_prompt(prompt, streaming=False)
        if task is None:
            return SessionOutcome.SKIPPED
        return await task

    async def submit_prompt_streaming(self, prompt: str) -> SessionOutcome:
        """流式回答，fragment 到达时逐个发布。"""

        task = self.start_prompt(prompt, streaming=True)
        if task is None:
            return SessionOutcome.SKIPPED
        return await task

    def start_prompt(self, prompt: str, streaming: bool = False) -> Optional["asyncio.Task[SessionOutcome]"]:
        """调度一次周期但不等待，供 UI 回调使用；必须在事件循环中调用。

        空白 prompt 不会调用后端，返回 None。
        """

        if not prompt or not prompt.strip():
            log_event(logging.INFO, "Empty prompt ignored", self._log_ctx())
            return None
        previous = self._handle
        if previous is not None:
            previous.cancel(SessionOutcome.SUPERSEDED)
            log_event(logging.INFO, "Superseded running operation", self._log_ctx())

        handle = CancellationHandle()
        self._handle = handle
        self._partial = None
        self._set_state(SessionState.LISTENING, handle)
        task = asyncio.get_running_loop().create_task(self._run_cycle(prompt, streaming, handle))
        handle.bind(task)
        return task

    def cancel(self) -> bool:
        """仅在 Listening/Thinking 时有效，其他状态下为空操作。"""

        if self._handle is None or self._state not in (SessionState.LISTENING, SessionState.THINKING):
            return False
        cancelled = self._handle.cancel(SessionOutcome.CANCELLED)
        if cancelled:
            log_event(logging.INFO, "Cancel requested", self._log_ctx())
        return cancelled

    def clear_history(self) -> None:
        """清空后端历史；挂了 on_clear 时一并通知（例如会话记录另起新会话）。"""

        self._adapter.clear_history()
        if self._on_clear is not None:
            self._on_clear()
        log_event(logging.INFO, "History cleared", self._log_ctx())

    # ---- 周期 ----

    async def _run_cycle(self, prompt: str, streaming: bool, handle: CancellationHandle) -> SessionOutcome:
        start_time = time.time()
        log_ctx = self._log_ctx(trace_id=f"tr-{uuid4().hex}", streaming=streaming)
        text_before = self._response_text
        published = False
        outcome = SessionOutcome.COMPLETED
        handle.mark_running()
        try:
            handle.raise_if_cancelled()
            await asyncio.sleep(self._listening_delay)
            handle.raise_if_cancelled()
            self._set_state(SessionState.THINKING, handle)
            log_event(logging.INFO, "Dispatched prompt", log_ctx, prompt_chars=len(prompt))

            if streaming:
                final_text = await self._consume_stream(prompt, handle, log_ctx)
            else:
                final_text = await self._adapter.respond(prompt)
            handle.raise_if_cancelled()

            self._partial = None
            self._set_response_text(final_text, handle)
            self._set_state(SessionState.SPEAKING, handle)
            published = True
            self._notify_turn(prompt, final_text, log_ctx)

            await asyncio.sleep(self._settling_delay)
        except asyncio.CancelledError:
            if not handle.cancelled:
                # 不是通过句柄发起的取消（例如事件循环关闭），照常向上传播
                raise
            if not published:
                outcome = handle.reason or SessionOutcome.CANCELLED
                if outcome is SessionOutcome.CANCELLED and self._response_text != text_before:
                    self._set_response_text(text_before, handle)
            log_event(logging.INFO, "Operation cancelled", log_ctx, outcome=outcome.value)
        finally:
            if self._handle is handle:
                self._partial = None
                self._handle = None
                self._set_state(SessionState.IDLE, handle, force=True)
            handle.dispose()
            log_event(
                logging.INFO,
                "Cycle finished",
                log_ctx,
                outcome=outcome.value,
                elapsed_seconds=round(time.time() - start_time, 2),
            )
        return outcome

    async def _consume_stream(self, prompt: str, handle: CancellationHandle, log_ctx: Dict[str, Any]) -> str:
        partial = PartialResponse()
        self._partial = partial
        fragments = self._adapter.stream(prompt)
        try:
            async for fragment in fragments:
                handle.raise_if_cancelled()
                partial.append(fragment)
                self._set_response_text(partial.text, handle)
                handle.raise_if_cancelled()
        except BusinessError as e:
            log_event(logging.WARNING, "Stream failed", log_ctx, code=e.code, error=e.message)
            return error_text(e)
        finally:
            # 提前退出时立即关闭生成器，释放连接且不写入历史
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()
        log_event(logging.INFO, "Stream completed", log_ctx, fragments=partial.sequence)
        return partial.text

    def _notify_turn(self, prompt: str, answer: str, log_ctx: Dict[str, Any]) -> None:
        if self._on_turn is None:
            return
        try:
            self._on_turn(prompt, answer)
        except BusinessError as e:
            log_event(logging.WARNING, "Turn observer failed", log_ctx, code=e.code, error=e.message)

    # ---- 状态变更 ----

    def _set_state(self, state: SessionState, handle: CancellationHandle, force: bool = False) -> None:
        if not force and self._handle is not handle:
            return
        if self._state is state:
            return
        self._state = state
        log_event(logging.INFO, "State changed", self._log_ctx(), state=state.value)
        self._publish("state")

    def _set_response_text(self, text: str, handle: CancellationHandle) -> None:
        if self._handle is not handle:
            return
        if self._response_text == text:
            return
        self._response_text = text
        self._sequence += 1
        self._publish("response_text")

    def _publish(self, field: str) -> None:
        change = SessionChange(
            field=field,
            state=self._state,
            text=self._response_text,
            sequence=self._sequence,
        )
        for listener in list(self._listeners):
            self._dispatch(functools.partial(listener, change))

    def _log_ctx(self, **fields: Any) -> Dict[str, Any]:
        ctx: Dict[str, Any] = {"provider": getattr(self._adapter, "name", "unknown"), "state": self._state.value}
        ctx.update(fields)
        return ctx
