import os
from dataclasses import dataclass, field


class ConfigError(Exception):
    pass


DEFAULT_BASE_URL = "https://api.x.ai/v1"
DEFAULT_MODEL = "grok-3-mini"
DEFAULT_DATA_DIR = "~/.palaver"

# A failed generation keeps the text streamed so far and appends the error marker.
KEEP_PARTIAL_ON_ERROR = True

MODEL_ALIASES = {
    "grok": "grok-4",
    "grok-fast": "grok-4-1-fast",
    "grok-mini": "grok-3-mini",
    "vision": "grok-2-vision-latest",
    "4o": "gpt-4o",
    "mini": "gpt-4o-mini",
    "sonnet": "claude-sonnet-4-20250514",
    "haiku": "claude-3-5-haiku-20241022",
    "flash": "gemini/gemini-2.5-flash",
}


def resolve_model_alias(name: str) -> str:
    return MODEL_ALIASES.get(name.lower(), name)


def get_optional_env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    return value if value else default


@dataclass
class ChatConfig:
    provider: str = "openai"
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    data_dir: str = DEFAULT_DATA_DIR
    stream: bool = True
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout_s: float = 120.0
    generate_titles: bool = True
    title_model: str | None = None
    storage_quota_bytes: int = 5 * 1024 * 1024
    extra_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "ChatConfig":
        return cls(
            provider=get_optional_env("PALAVER_PROVIDER", "openai"),
            model=resolve_model_alias(get_optional_env("PALAVER_MODEL", DEFAULT_MODEL)),
            base_url=get_optional_env("PALAVER_BASE_URL", DEFAULT_BASE_URL),
            api_key=get_optional_env("PALAVER_API_KEY") or get_optional_env("XAI_API_KEY"),
            data_dir=get_optional_env("PALAVER_DATA_DIR", DEFAULT_DATA_DIR),
            title_model=get_optional_env("PALAVER_TITLE_MODEL"),
        )

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("No API key configured. Set one with /key <api-key> or PALAVER_API_KEY")
        return self.api_key
