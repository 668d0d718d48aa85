from __future__ import annotations

from dataclasses import dataclass

from palaver.config import DEFAULT_MODEL, ChatConfig, resolve_model_alias
from palaver.storage.keys import (
    AI_NAME_KEY,
    API_KEY_KEY,
    MODEL_KEY,
    SITE_NAME_KEY,
    SYSTEM_PHRASE_KEY,
)
from palaver.storage.kv import JsonStorage

DEFAULT_AI_NAME = "Palaver"
DEFAULT_SITE_NAME = "Palaver"
DEFAULT_SYSTEM_PHRASE = (
    "You are Palaver, a friendly and helpful AI assistant. Give clear, concise and "
    "accurate answers in a warm, approachable tone. Ask for clarification when a "
    "request is ambiguous, explain complex topics step by step, and suggest next "
    "steps when they help."
)


@dataclass
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    system_phrase: str = DEFAULT_SYSTEM_PHRASE
    ai_name: str = DEFAULT_AI_NAME
    site_name: str = DEFAULT_SITE_NAME


class SettingsStore:
    """Settings persisted one key per value. Last write wins."""

    def __init__(self, storage: JsonStorage):
        self.storage = storage
        self.settings = Settings()

    @classmethod
    def load(cls, storage: JsonStorage) -> "SettingsStore":
        store = cls(storage)
        s = store.settings
        s.api_key = storage.get_text(API_KEY_KEY) or ""
        s.model = storage.get_text(MODEL_KEY) or DEFAULT_MODEL
        s.system_phrase = storage.get_text(SYSTEM_PHRASE_KEY) or DEFAULT_SYSTEM_PHRASE
        s.ai_name = storage.get_text(AI_NAME_KEY) or DEFAULT_AI_NAME
        s.site_name = storage.get_text(SITE_NAME_KEY) or DEFAULT_SITE_NAME
        return store

    def set_api_key(self, api_key: str) -> None:
        self.settings.api_key = api_key.strip()
        self.storage.set_text(API_KEY_KEY, self.settings.api_key)

    def set_model(self, model: str) -> str:
        self.settings.model = resolve_model_alias(model.strip())
        self.storage.set_text(MODEL_KEY, self.settings.model)
        return self.settings.model

    def set_system_phrase(self, phrase: str) -> None:
        self.settings.system_phrase = phrase
        self.storage.set_text(SYSTEM_PHRASE_KEY, phrase)

    def set_ai_name(self, name: str) -> None:
        old = self.settings.ai_name
        name = name.strip()
        if old and name and old in self.settings.system_phrase:
            self.set_system_phrase(self.settings.system_phrase.replace(old, name))
        self.settings.ai_name = name
        self.storage.set_text(AI_NAME_KEY, name)

    def set_site_name(self, name: str) -> None:
        self.settings.site_name = name.strip()
        self.storage.set_text(SITE_NAME_KEY, self.settings.site_name)

    def apply_to(self, config: ChatConfig) -> ChatConfig:
        """Persisted values win over environment defaults once they are set."""
        if self.settings.api_key:
            config.api_key = self.settings.api_key
        if self.storage.get_text(MODEL_KEY):
            config.model = self.settings.model
        return config
