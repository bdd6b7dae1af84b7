"""把展示层通知切换到指定执行上下文。

展示层要求所有可观察的变更都在它自己的线程（UI 线程）上送达。
Dispatcher 就是一个接收零参数回调的函数，由展示层注入；
没有这样的上下文时直接同步调用。
"""

import asyncio
import threading
from typing import Callable, Optional

Callback = Callable[[], None]
Dispatcher = Callable[[Callback], None]


def direct_dispatch(callback: Callback) -> None:
    callback()


def loop_dispatcher(loop: Optional[asyncio.AbstractEventLoop]) -> Dispatcher:
    """把回调投递到 loop 所在线程。

    已经在 loop 线程上时直接调用；loop 不存在或已关闭时同样直接调用。
    """

    if loop is None:
        return direct_dispatch

    def dispatch(callback: Callback) -> None:
        if loop.is_closed():
            callback()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            callback()
        else:
            loop.call_soon_threadsafe(callback)

    return dispatch


def thread_dispatcher(post: Callable[[Callback], object], ui_thread: Optional[threading.Thread] = None) -> Dispatcher:
    """适配 GUI 工具包自带的投递函数，例如 tkinter 的 ``lambda cb: root.after(0, cb)``。

    ui_thread 给出时，在 UI 线程上调用会直接执行而不再投递。
    """

    def dispatch(callback: Callback) -> None:
        if ui_thread is not None and threading.current_thread() is ui_thread:
            callback()
            return
        post(callback)

    return dispatch
