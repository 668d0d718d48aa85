from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from common import llm
from palaver.config import ChatConfig
from palaver.providers.base import ProviderError, clean_title, title_messages

logger = logging.getLogger(__name__)


class LiteLLMProvider:
    name = "litellm"

    def __init__(
        self,
        config: ChatConfig,
        completion_fn: Callable[..., Any] = llm.completion,
        api_base: str | None = None,
    ):
        self.config = config
        self.completion_fn = completion_fn
        self.api_base = api_base

    @property
    def supports_images(self) -> bool:
        return llm.supports_vision(self.config.model)

    def _kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "timeout": self.config.timeout_s,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    def stream(self, messages: list[dict], model: str) -> Iterator[str]:
        try:
            response = self.completion_fn(model=model, messages=messages, stream=True, **self._kwargs())
            for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                content = getattr(delta, "content", None)
                if content:
                    yield content
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(str(e)) from e

    def complete(self, messages: list[dict], model: str) -> str:
        try:
            response = self.completion_fn(model=model, messages=messages, stream=False, **self._kwargs())
        except Exception as e:
            raise ProviderError(str(e)) from e
        return response.choices[0].message.content or ""

    def generate_title(self, text: str, model: str) -> str:
        try:
            return clean_title(self.complete(title_messages(text), model))
        except ProviderError as e:
            logger.warning(f"Title generation failed: {e}")
            return ""

    def generate_image(self, prompt: str, model: str | None = None) -> str:
        try:
            response = llm.image_generation(model or "dall-e-3", prompt, **self._kwargs())
        except Exception as e:
            raise ProviderError(f"Failed to generate image: {e}") from e
        data = getattr(response, "data", None) or []
        return str(getattr(data[0], "url", "") or "") if data else ""
