"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护各后端的默认配置 (registry)。
- 提供各后端的具体实现 (ollama_client、openai_client、mock_client)。
- 启动时按可用性选择后端 (selector)。
"""

from typing import Optional

from companion_core.domain.models import ProviderKind
from companion_core.prompts import load_system_prompt
from companion_core.providers.base import ProviderAdapter
from companion_core.providers.mock_client import MockClient
from companion_core.providers.ollama_client import OllamaClient
from companion_core.providers.openai_client import OpenAIClient


def create_provider(kind: ProviderKind, settings, directive: Optional[str] = None) -> ProviderAdapter:
    """不做探测，直接按类别创建适配器，用于显式重新配置。

    云端配置缺失时会抛出 ValidationError。
    """

    directive = directive or load_system_prompt(getattr(settings, "directive_locale", "en"))
    kind = ProviderKind(kind)
    if kind is ProviderKind.LOCAL:
        return OllamaClient(settings, directive)
    if kind is ProviderKind.CLOUD:
        return OpenAIClient(settings, directive)
    return MockClient(settings, directive)
