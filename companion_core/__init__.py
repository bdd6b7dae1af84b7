"""Companion Core 顶层包。

该包提供桌面助手的 Provider 编排与流式会话引擎，
包括配置加载、领域模型、Provider 适配与选择、
会话状态机与取消、以及会话记录的持久化。
"""

from companion_core.api.service import start_session
from companion_core.config.settings import CompanionSettings, load_settings

__all__ = ["CompanionSettings", "load_settings", "start_session"]
