from __future__ import annotations

import logging
from typing import Iterator

from palaver.chat.accumulator import ERROR_PREFIX, StreamAccumulator, StreamState
from palaver.config import ChatConfig
from palaver.providers.base import ChatProvider, ProviderError, format_messages
from palaver.sessions.schema import DEFAULT_TITLE, Message
from palaver.sessions.store import SessionStore, derive_title
from palaver.settings import SettingsStore
from palaver.tokens import usage_for

logger = logging.getLogger(__name__)


class ChatBusyError(Exception):
    pass


class ChatService:
    """Sends messages and rewrites history for edit and regenerate.

    One generation at a time per service: ``is_loading`` covers every
    session, so a second session cannot stream while the first one is busy.

    Edit and regenerate are destructive. They truncate the log at the
    rewritten point and stream a fresh reply; nothing after that point is kept.
    """

    def __init__(
        self,
        store: SessionStore,
        provider: ChatProvider,
        config: ChatConfig,
        settings: SettingsStore | None = None,
    ):
        self.store = store
        self.provider = provider
        self.config = config
        self.settings = settings
        self.is_loading = False
        self._active: StreamAccumulator | None = None

    @property
    def system_prompt(self) -> str | None:
        if self.settings is None:
            return None
        return self.settings.settings.system_phrase or None

    def ensure_ready(self) -> None:
        if self.provider.name == "openai":
            self.config.require_api_key()

    def _check_idle(self) -> None:
        if self.is_loading:
            raise ChatBusyError("A response is still being generated")

    def cancel(self) -> bool:
        if self._active is None:
            return False
        self._active.cancel()
        return True

    def send_message(
        self,
        content: str,
        images: list[str] | None = None,
        session_id: str | None = None,
    ) -> Message:
        self._check_idle()
        self.ensure_ready()
        content = content.strip()
        if not content and not images:
            raise ValueError("Cannot send an empty message")

        session_id = session_id or self.store.current_session_id or self.store.create_session()
        self.store.append_message(session_id, Message(role="user", content=content, images=images or None))
        self._maybe_title(session_id, content)
        return self._generate(session_id)

    def regenerate(self, session_id: str, index: int) -> Message:
        self._check_idle()
        self.ensure_ready()
        messages = self.store.messages(session_id)
        if not 0 <= index < len(messages):
            raise IndexError(f"No message at index {index}")
        if messages[index].role != "assistant":
            raise ValueError(f"Message {index} is not an assistant message")
        self.store.truncate(session_id, index)
        return self._generate(session_id)

    def regenerate_last(self, session_id: str) -> Message:
        messages = self.store.messages(session_id)
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == "assistant":
                return self.regenerate(session_id, index)
        if messages and messages[-1].role == "user":
            self._check_idle()
            self.ensure_ready()
            return self._generate(session_id)
        raise ValueError("Nothing to regenerate")

    def edit(self, session_id: str, index: int, new_content: str) -> Message:
        self._check_idle()
        self.ensure_ready()
        messages = self.store.messages(session_id)
        if not 0 <= index < len(messages):
            raise IndexError(f"No message at index {index}")
        if messages[index].role != "user":
            raise ValueError(f"Message {index} is not a user message")
        new_content = new_content.strip()
        if not new_content and not messages[index].images:
            raise ValueError("Cannot send an empty message")
        edited = messages[index].model_copy(update={"content": new_content})
        self.store.rewrite_message(session_id, index, edited)
        return self._generate(session_id)

    def delete_message(self, session_id: str, index: int) -> Message:
        self._check_idle()
        return self.store.delete_message(session_id, index)

    def generate_image(self, prompt: str, session_id: str | None = None) -> Message:
        self._check_idle()
        self.ensure_ready()
        session_id = session_id or self.store.current_session_id or self.store.create_session()
        self.store.append_message(session_id, Message(role="user", content=prompt))
        self._maybe_title(session_id, prompt)
        self.is_loading = True
        try:
            url = self.provider.generate_image(prompt)
        except ProviderError as e:
            logger.warning(f"Image generation failed: {e}")
            reply = Message(role="assistant", content=f"{ERROR_PREFIX}{e}", error=True)
        except KeyboardInterrupt:
            logger.info(f"Image generation cancelled in session {session_id}")
            reply = Message(role="assistant", content=f"{ERROR_PREFIX}Image generation cancelled", error=True)
        else:
            if url:
                reply = Message(role="assistant", content=f"![{prompt}]({url})")
            else:
                reply = Message(role="assistant", content=f"{ERROR_PREFIX}No image returned", error=True)
        finally:
            self.is_loading = False
        return self.store.append_message(session_id, reply)

    def _maybe_title(self, session_id: str, content: str) -> None:
        session = self.store.require(session_id)
        if session.title != DEFAULT_TITLE:
            return
        if sum(1 for m in session.messages if m.role == "user") != 1:
            return
        title = ""
        if self.config.generate_titles and content:
            try:
                title = self.provider.generate_title(content, self.config.title_model or self.config.model)
            except KeyboardInterrupt:
                logger.info(f"Title generation cancelled in session {session_id}")
        title = title or derive_title(content)
        if title:
            self.store.rename_session(session_id, title)

    def _complete_once(self, wire: list[dict], model: str) -> Iterator[str]:
        yield self.provider.complete(wire, model)

    def _generate(self, session_id: str) -> Message:
        model = self.config.model
        wire = format_messages(
            self.store.messages(session_id),
            system_prompt=self.system_prompt,
            supports_images=self.provider.supports_images,
        )
        accumulator = StreamAccumulator(self.store, session_id)
        self.is_loading = True
        self._active = accumulator
        try:
            accumulator.begin()
            if self.config.stream:
                deltas = self.provider.stream(wire, model)
            else:
                deltas = self._complete_once(wire, model)
            message = accumulator.consume(deltas)
        finally:
            self.is_loading = False
            self._active = None

        if accumulator.state is StreamState.DONE and message.content:
            message = self.store.update_message(
                session_id, message.id, persist=True, **usage_for(message, model)
            )
        return message
