"""终端演示：选择后端后逐段打印流式回答。

输入 /clear 清空历史，/quit 退出；回答过程中 Ctrl-C 取消当前回答（仅 POSIX）。
"""

import asyncio
import signal
import sys

from companion_core import load_settings, start_session
from companion_core.domain.models import SessionChange, SessionOutcome


async def main() -> None:
    settings = load_settings()
    session, label = await start_session(settings)
    print(f"[{label}]")

    shown = {"text": ""}

    def on_change(change: SessionChange) -> None:
        if change.field != "response_text":
            return
        if change.text.startswith(shown["text"]):
            sys.stdout.write(change.text[len(shown["text"]):])
        else:
            sys.stdout.write("\n" + change.text)
        sys.stdout.flush()
        shown["text"] = change.text

    session.subscribe(on_change)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
    except NotImplementedError:
        pass

    while True:
        prompt = await loop.run_in_executor(None, input, "\nYou: ")
        if prompt.strip() == "/quit":
            break
        if prompt.strip() == "/clear":
            session.clear_history()
            print("(history cleared)")
            continue
        shown["text"] = session.response_text
        sys.stdout.write("Assistant: ")
        outcome = await session.submit_prompt_streaming(prompt)
        if outcome is not SessionOutcome.COMPLETED:
            print(f"\n({outcome.value})")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except EOFError:
        pass
