from typing import Callable

from palaver.config import DEFAULT_BASE_URL, ChatConfig, ConfigError
from palaver.providers.base import ChatProvider
from palaver.providers.litellm_provider import LiteLLMProvider
from palaver.providers.openai_compat import OpenAICompatibleProvider


def _openai(config: ChatConfig) -> ChatProvider:
    return OpenAICompatibleProvider(config)


def _litellm(config: ChatConfig) -> ChatProvider:
    api_base = config.base_url if config.base_url != DEFAULT_BASE_URL else None
    return LiteLLMProvider(config, api_base=api_base)


PROVIDERS: dict[str, Callable[[ChatConfig], ChatProvider]] = {
    "openai": _openai,
    "litellm": _litellm,
}


def list_providers() -> list[str]:
    return sorted(PROVIDERS.keys())


def get_provider(config: ChatConfig) -> ChatProvider:
    factory = PROVIDERS.get(config.provider)
    if factory is None:
        available = ", ".join(list_providers())
        raise ConfigError(f"Unknown provider: {config.provider}. Available: {available}")
    return factory(config)
