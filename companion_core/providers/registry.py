"""Provider 默认配置。

集中记录每类后端的基础地址、默认模型与生成参数默认值；
配置里显式给出的值优先，缺省时回落到这里。"""

from dataclasses import dataclass
from typing import Mapping, Tuple

from companion_core.domain.models import ProviderKind


@dataclass
class ProviderConfig:
    """某个 Provider 的整体默认配置。"""

    name: str
    kind: ProviderKind
    base_url: str
    default_model: str
    max_tokens: int
    default_temperature: float


OLLAMA_CONFIG = ProviderConfig(
    name="ollama",
    kind=ProviderKind.LOCAL,
    base_url="http://localhost:11434",
    default_model="phi3:mini",
    max_tokens=500,
    default_temperature=0.7,
)

OPENAI_CONFIG = ProviderConfig(
    name="openai",
    kind=ProviderKind.CLOUD,
    base_url="https://api.openai.com/v1",
    default_model="gpt-4",
    max_tokens=2000,
    default_temperature=0.7,
)

MOCK_CONFIG = ProviderConfig(
    name="mock",
    kind=ProviderKind.STAND_IN,
    base_url="",
    default_model="mock",
    max_tokens=0,
    default_temperature=0.0,
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "ollama": OLLAMA_CONFIG,
    "openai": OPENAI_CONFIG,
    "mock": MOCK_CONFIG,
}

# 配置里可以选、但还没有实现的本地后端
UNSUPPORTED_LOCAL_PROVIDERS: Tuple[str, ...] = ("llamasharp", "onnx")


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
