"""系统指令加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system 指令文本，
作为 ConversationHistory 中固定的第一条消息。
"""

from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_LOCALE = "en"


def load_system_prompt(locale: str = DEFAULT_LOCALE) -> str:
    """根据语言加载系统指令文本，未知语言回退到英文。"""

    fname = PROMPTS_DIR / locale / "assistant_system.md"
    if not fname.exists():
        fname = PROMPTS_DIR / DEFAULT_LOCALE / "assistant_system.md"
    return fname.read_text(encoding="utf-8").strip()
