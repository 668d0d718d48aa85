from typing import Iterator, Protocol, Sequence, runtime_checkable

from palaver.sessions.schema import Message


class ProviderError(Exception):
    pass


TITLE_SYSTEM_PROMPT = "You are a helpful assistant that generates short titles."

TITLE_PROMPT = (
    "Generate a very short, concise title (max 4-5 words, under 28 chars) for the "
    "following user message. Do not use quotes or punctuation. Ensure words are "
    "separated by spaces. Return ONLY the title. EX: Closest Gas Station, Best "
    'Online Marketplace, Easy Dinner Recipes\n\nUser message: "{message}"'
)


@runtime_checkable
class ChatProvider(Protocol):
    name: str
    supports_images: bool

    def stream(self, messages: list[dict], model: str) -> Iterator[str]:
        """Yield text deltas of one completion."""
        ...

    def complete(self, messages: list[dict], model: str) -> str: ...

    def generate_title(self, text: str, model: str) -> str: ...

    def generate_image(self, prompt: str, model: str | None = None) -> str: ...


def format_message(message: Message, supports_images: bool = True) -> dict:
    if message.images and supports_images:
        parts: list[dict] = [{"type": "text", "text": message.content}]
        for url in message.images:
            parts.append({"type": "image_url", "image_url": {"url": url}})
        return {"role": message.role, "content": parts}
    return {"role": message.role, "content": message.content}


def format_messages(
    messages: Sequence[Message],
    system_prompt: str | None = None,
    supports_images: bool = True,
) -> list[dict]:
    formatted: list[dict] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})
    for message in messages:
        if message.error:
            continue
        formatted.append(format_message(message, supports_images))
    return formatted


def title_messages(text: str) -> list[dict]:
    return [
        {"role": "system", "content": TITLE_SYSTEM_PROMPT},
        {"role": "user", "content": TITLE_PROMPT.format(message=text)},
    ]


def clean_title(raw: str) -> str:
    return (raw or "").strip().replace('"', "").replace("'", "")
