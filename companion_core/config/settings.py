"""配置管理模块。

支持从 init 参数、环境变量、.env 以及 config.yaml 加载配置。

配置是一个显式的值：在启动时通过 load_settings() 构造一次，
再传给 ProviderSelector、各个适配器与 ConversationSession，
核心逻辑内部不做任何全局查找。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# 与原配置文件模板一致的占位值，视为“未配置”
OPENAI_KEY_PLACEHOLDER = "YOUR_OPENAI_API_KEY_HERE"


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("COMPANION_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class CompanionSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 本地 LLM ----
    local_enabled: bool = Field(default=True, description="是否启用本地 LLM")
    prefer_local: bool = Field(default=True, description="是否优先尝试本地 LLM")
    local_provider: str = Field(default="ollama", description="本地后端类型，目前仅支持 ollama")
    local_endpoint: str = Field(default="http://localhost:11434", description="本地后端地址")
    local_model: str = Field(default="phi3:mini", description="本地模型名")
    local_max_tokens: int = Field(default=500, ge=1, description="本地模型最大输出 token 数")
    local_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # ---- 云端 OpenAI ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    openai_model: str = Field(default="gpt-4")
    openai_max_tokens: int = Field(default=2000, ge=1)
    openai_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # ---- 会话 ----
    max_history_messages: int = Field(default=20, ge=2, description="单个适配器保留的最大消息数（含系统指令）")
    listening_delay: float = Field(default=0.08, ge=0.0, description="进入 Thinking 之前的短暂停顿（秒）")
    settling_delay: float = Field(default=0.3, ge=0.0, description="Speaking 状态保持时间（秒）")
    directive_locale: str = Field(default="en", description="系统指令语言")

    # ---- 超时 ----
    probe_timeout: float = Field(default=10.0, gt=0.0, description="本地后端存活探测超时（秒）")
    catalog_timeout: float = Field(default=10.0, gt=0.0, description="本地模型目录探测超时（秒）")
    http_timeout: float = Field(default=60.0, gt=0.0, description="后端调用超时（秒）")

    # ---- 演示用 stand-in ----
    mock_response_delay: float = Field(default=0.5, ge=0.0)
    mock_fragment_delay: float = Field(default=0.1, ge=0.0)

    # ---- 日志与存储 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_to_file: bool = Field(default=True, description="是否写入日志文件")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    storage_root: str = Field(default=".storage", description="会话记录存储根目录")
    save_history: bool = Field(default=True, description="是否保存会话记录")
    max_transcript_messages: int = Field(default=100, ge=1)
    max_conversations: int = Field(default=50, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def normalize_api_key(cls, v: Optional[str]) -> Optional[str]:
        # 空白值等同于未配置，不报错
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("local_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "").strip().lower()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    @property
    def should_use_local(self) -> bool:
        """本地 LLM 已启用且设置为优先。"""
        return self.local_enabled and self.prefer_local

    @property
    def openai_configured(self) -> bool:
        """API 密钥非空且不是占位值。"""
        return bool(self.openai_api_key) and self.openai_api_key != OPENAI_KEY_PLACEHOLDER


Settings = CompanionSettings


def load_settings(**overrides: Any) -> CompanionSettings:
    """构造一份配置。关键字参数优先级最高，便于测试与 UI 覆盖。"""

    return CompanionSettings(**overrides)
