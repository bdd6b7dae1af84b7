"""ProviderSelector：按优先级探测后端并选出一个适配器。

顺序（遇到第一个可用的即返回）：

1. 配置了本地优先：探测本地后端存活，再确认模型在本地目录中；
2. 配置了云端 API 密钥（非空且不是占位值）：构造云端适配器，
   构造时抛出配置错误则视为不可用；
3. 兜底的 stand-in 适配器，永不失败。

每个探测都有独立超时，失败只记录日志，不会中断选择。
选择会发起网络请求，调用方不要对同一份配置并发调用。
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from companion_core.domain.exceptions import BusinessError
from companion_core.domain.models import ProviderKind
from companion_core.infrastructure.logging.logger import log_event
from companion_core.prompts import load_system_prompt
from companion_core.providers import ollama_client
from companion_core.providers.base import ProviderAdapter
from companion_core.providers.mock_client import MockClient
from companion_core.providers.ollama_client import OllamaClient
from companion_core.providers.openai_client import OpenAIClient
from companion_core.providers.registry import UNSUPPORTED_LOCAL_PROVIDERS, get_provider_config

MOCK_LABEL = "Mock (Demo)"
CLOUD_LABEL = "ChatGPT (Cloud)"


async def select_provider(settings, directive: Optional[str] = None) -> Tuple[ProviderAdapter, str]:
    """返回 (adapter, label)。label 仅用于诊断与 UI 横幅。"""

    start_time = time.time()
    log_ctx: Dict[str, Any] = {"trace_id": f"sel-{uuid4().hex}"}
    directive = directive or load_system_prompt(getattr(settings, "directive_locale", "en"))

    if settings.should_use_local:
        local = await _try_local(settings, directive, log_ctx)
        if local is not None:
            _log_choice(local, log_ctx, start_time)
            return local
    else:
        log_event(logging.INFO, "Local provider not preferred, skipped", log_ctx)

    if settings.openai_configured:
        try:
            adapter = OpenAIClient(settings, directive)
            result = (adapter, CLOUD_LABEL)
            _log_choice(result, log_ctx, start_time)
            return result
        except BusinessError as e:
            log_event(logging.WARNING, "Cloud provider unavailable", log_ctx, code=e.code, error=e.message)
    else:
        log_event(logging.INFO, "Cloud provider not configured, skipped", log_ctx)

    result = (MockClient(settings, directive), MOCK_LABEL)
    _log_choice(result, log_ctx, start_time)
    return result


async def list_local_models(settings) -> List[str]:
    """本地后端可用时返回模型名列表，否则返回空列表。"""

    endpoint = settings.local_endpoint
    if not await _probe(ollama_client.is_ollama_available(endpoint, settings.probe_timeout), settings.probe_timeout):
        return []
    names = await _guarded(
        ollama_client.list_local_models(endpoint, settings.catalog_timeout),
        settings.catalog_timeout,
        default=[],
    )
    return names


async def _try_local(settings, directive: str, log_ctx: Dict[str, Any]) -> Optional[Tuple[ProviderAdapter, str]]:
    provider = settings.local_provider
    if provider in UNSUPPORTED_LOCAL_PROVIDERS:
        log_event(logging.WARNING, "Local provider not implemented", log_ctx, local_provider=provider)
        return None
    try:
        config = get_provider_config(provider)
    except KeyError:
        config = None
    if config is None or config.kind is not ProviderKind.LOCAL:
        log_event(logging.WARNING, "Unknown local provider", log_ctx, local_provider=provider)
        return None

    endpoint = settings.local_endpoint
    model = settings.local_model
    log_event(logging.INFO, "Probing local provider", log_ctx, endpoint=endpoint, model=model)

    reachable = await _probe(
        ollama_client.is_ollama_available(endpoint, settings.probe_timeout),
        settings.probe_timeout,
    )
    if not reachable:
        log_event(logging.INFO, "Local provider unreachable", log_ctx, endpoint=endpoint)
        return None

    # 模型不在本地目录时回落到云端/stand-in，而不是提示用户下载
    present = await _probe(
        ollama_client.is_model_available(endpoint, model, settings.catalog_timeout),
        settings.catalog_timeout,
    )
    if not present:
        log_event(logging.INFO, "Local model not downloaded", log_ctx, model=model)
        return None

    try:
        adapter = OllamaClient(settings, directive)
    except (BusinessError, ValueError) as e:
        log_event(logging.WARNING, "Local provider construction failed", log_ctx, error=str(e))
        return None
    return adapter, f"Ollama ({model})"


async def _probe(coro, timeout: float) -> bool:
    return bool(await _guarded(coro, timeout, default=False))


async def _guarded(coro, timeout: float, default):
    # httpx 的超时按阶段计算，这里再给整个探测一个总时限
    try:
        return await asyncio.wait_for(coro, timeout=timeout + 1.0)
    except asyncio.TimeoutError:
        log_event(logging.WARNING, "Probe timed out", {}, timeout=timeout)
        return default
    except Exception as e:
        # 端点写错（例如端口越界）同样按不可用处理
        log_event(logging.WARNING, "Probe failed", {}, error=repr(e))
        return default


def _log_choice(result: Tuple[ProviderAdapter, str], log_ctx: Dict[str, Any], start_time: float) -> None:
    adapter, label = result
    log_event(
        logging.INFO,
        "Provider selected",
        log_ctx,
        provider=adapter.name,
        label=label,
        elapsed_seconds=round(time.time() - start_time, 2),
    )
