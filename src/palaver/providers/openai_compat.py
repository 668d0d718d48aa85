from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator

import httpx

from common.jsonio import parse_json
from palaver.config import ChatConfig
from palaver.providers.base import ProviderError, clean_title, title_messages

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
PREFERRED_IMAGE_MODEL = "grok-2-image-1212"


def iter_sse_deltas(lines: Iterable[str]) -> Iterator[str]:
    """Turn ``data: {...}`` lines of a chat-completion stream into text deltas.

    Blank lines, comments and fragments that are not valid JSON or do not
    have the chat-completion chunk shape are skipped.
    A fragment carrying an ``error`` object aborts the stream.
    """
    for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if data == DONE_SENTINEL:
            return
        payload = parse_json(data)
        if not isinstance(payload, dict):
            logger.warning(f"Skipping malformed stream fragment: {data[:80]!r}")
            continue
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"Stream error: {message}")
        choices = payload.get("choices")
        if not choices:
            continue
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            logger.warning(f"Skipping malformed stream fragment: {data[:80]!r}")
            continue
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        if not isinstance(delta, dict) or (content is not None and not isinstance(content, str)):
            logger.warning(f"Skipping malformed stream fragment: {data[:80]!r}")
            continue
        if content:
            yield content


def _image_model(model: str | None) -> str:
    if not model or "image" not in model.lower() or model.lower() == "grok-2-image":
        return PREFERRED_IMAGE_MODEL
    return model


class OpenAICompatibleProvider:
    name = "openai"
    supports_images = True

    def __init__(self, config: ChatConfig, client: httpx.Client | None = None):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=config.timeout_s)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.require_api_key()}",
            **self.config.extra_headers,
        }

    def _payload(self, messages: list[dict], model: str, stream: bool) -> dict[str, Any]:
        return {
            "model": model,
            "messages": messages,
            "stream": stream,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def stream(self, messages: list[dict], model: str) -> Iterator[str]:
        url = f"{self.base_url}/chat/completions"
        try:
            with self._client.stream(
                "POST", url, headers=self._headers(), json=self._payload(messages, model, True)
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    raise ProviderError(f"API request failed: {response.status_code} - {response.text}")
                yield from iter_sse_deltas(response.iter_lines())
        except httpx.RequestError as e:
            raise ProviderError(f"Network error: {e}") from e

    def complete(self, messages: list[dict], model: str) -> str:
        data = self._post_json("chat/completions", self._payload(messages, model, False))
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected completion response: {str(data)[:200]}") from e

    def generate_title(self, text: str, model: str) -> str:
        try:
            return clean_title(self.complete(title_messages(text), model))
        except ProviderError as e:
            logger.warning(f"Title generation failed: {e}")
            return ""

    def generate_image(self, prompt: str, model: str | None = None) -> str:
        body: dict[str, Any] = {"prompt": prompt, "n": 1, "response_format": "url"}
        try:
            data = self._post_json("images/generations", {**body, "model": _image_model(model)})
        except ProviderError as e:
            logger.info(f"Image request with explicit model failed, retrying without it: {e}")
            try:
                data = self._post_json("images/generations", body)
            except ProviderError as retry_error:
                raise ProviderError(f"Failed to generate image: {retry_error}") from retry_error
        items = data.get("data") if isinstance(data, dict) else None
        if isinstance(items, list) and items and isinstance(items[0], dict):
            return str(items[0].get("url") or "")
        return ""

    def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = self._client.post(f"{self.base_url}/{path}", headers=self._headers(), json=payload)
        except httpx.RequestError as e:
            raise ProviderError(f"Network error: {e}") from e
        if response.status_code >= 400:
            raise ProviderError(f"API request failed: {response.status_code} - {response.text}")
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON response: {response.text[:200]}") from e
