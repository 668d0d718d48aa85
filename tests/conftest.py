import pytest

from palaver.config import ChatConfig
from palaver.providers.base import ProviderError
from palaver.sessions.store import SessionStore
from palaver.storage.kv import JsonStorage, MemoryKeyValueStore


class FakeProvider:
    """Scripted provider. Each reply is a list of deltas, a string, or an exception."""

    name = "fake"
    supports_images = True

    def __init__(self, replies=None, title: str = "", image_url: str = "https://img.test/1.png"):
        self.replies = list(replies or [])
        self.title = title
        self.image_url = image_url
        self.calls: list[list[dict]] = []
        self.title_calls: list[str] = []

    def _next(self):
        reply = self.replies.pop(0) if self.replies else ["ok"]
        if isinstance(reply, str):
            reply = [reply]
        return reply

    def stream(self, messages, model):
        self.calls.append(messages)
        reply = self._next()
        if isinstance(reply, Exception):
            raise reply
        for item in reply:
            if isinstance(item, Exception):
                raise item
            yield item

    def complete(self, messages, model):
        self.calls.append(messages)
        reply = self._next()
        if isinstance(reply, Exception):
            raise reply
        return "".join(reply)

    def generate_title(self, text, model):
        self.title_calls.append(text)
        return self.title

    def generate_image(self, prompt, model=None):
        if not self.image_url:
            raise ProviderError("image backend down")
        return self.image_url


@pytest.fixture(autouse=True)
def _stub_token_counter(monkeypatch):
    monkeypatch.setattr("palaver.tokens.count_tokens", lambda text, model="gpt-4o": len(text.split()))


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def storage(kv):
    return JsonStorage(kv)


@pytest.fixture
def store(storage):
    return SessionStore.load(storage)


@pytest.fixture
def config():
    return ChatConfig(api_key="test-key", generate_titles=False)
