from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import ValidationError

from common.events import EventEmitter, MessagesChangedEvent, SessionsChangedEvent
from palaver.sessions.schema import DEFAULT_TITLE, ChatSession, Message, utc_now
from palaver.storage.keys import CURRENT_SESSION_KEY, SESSIONS_KEY
from palaver.storage.kv import JsonStorage

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 40
DERIVED_TITLE_LENGTH = 28


class SessionNotFoundError(Exception):
    pass


def normalize_title(text: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    title = " ".join((text or "").split())
    if len(title) > max_length:
        title = title[: max_length - 1].rstrip() + "…"
    return title


def derive_title(content: str) -> str:
    return normalize_title(content, max_length=DERIVED_TITLE_LENGTH)


class SessionStore:
    """In-memory source of truth for all chat sessions.

    Every mutation writes the whole session map (and the current-session
    pointer) through to storage before returning. That is O(total log size)
    per write, which is fine for a single local user but is the first thing to
    batch if the store ever has to hold much more.

    Display order is computed on read: pinned sessions first, then the rest,
    each group keeping the flat insertion order of ``_sessions``.
    """

    def __init__(self, storage: JsonStorage, emitter: EventEmitter | None = None):
        self.storage = storage
        self.emitter = emitter or EventEmitter()
        self._sessions: dict[str, ChatSession] = {}
        self.current_session_id: str | None = None

    @classmethod
    def load(cls, storage: JsonStorage, emitter: EventEmitter | None = None) -> "SessionStore":
        store = cls(storage, emitter)
        store.reload()
        return store

    def reload(self) -> None:
        data = self.storage.get_json(SESSIONS_KEY, validate=lambda d: isinstance(d, dict))
        sessions: dict[str, ChatSession] = {}
        for key, raw in (data or {}).items():
            try:
                session = ChatSession.from_storage(raw)
            except ValidationError as e:
                logger.warning(f"Dropping unreadable session {key}: {e.error_count()} errors")
                continue
            sessions[session.id] = session
        self._sessions = sessions

        current = self.storage.get_text(CURRENT_SESSION_KEY)
        self.current_session_id = current if current in sessions else None
        logger.debug(f"Loaded {len(sessions)} sessions (current={self.current_session_id})")

    def persist(self) -> bool:
        payload: dict[str, Any] = {sid: s.to_storage() for sid, s in self._sessions.items()}
        ok = self.storage.set_json(SESSIONS_KEY, payload)
        if self.current_session_id:
            ok = self.storage.set_text(CURRENT_SESSION_KEY, self.current_session_id) and ok
        else:
            ok = self.storage.remove(CURRENT_SESSION_KEY) and ok
        return ok

    def _sessions_changed(self) -> None:
        self.persist()
        self.emitter.emit(SessionsChangedEvent(current_session_id=self.current_session_id))

    def _messages_changed(self, session: ChatSession, persist: bool = True) -> None:
        if persist:
            self.persist()
        self.emitter.emit(MessagesChangedEvent(session_id=session.id, count=len(session.messages)))

    # Sessions

    def get(self, session_id: str | None) -> ChatSession | None:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    @property
    def current(self) -> ChatSession | None:
        return self.get(self.current_session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def flat_order(self) -> list[str]:
        return list(self._sessions.keys())

    def ordered_sessions(self) -> list[ChatSession]:
        pinned = [s for s in self._sessions.values() if s.pinned]
        unpinned = [s for s in self._sessions.values() if not s.pinned]
        return pinned + unpinned

    def search_sessions(self, query: str) -> list[ChatSession]:
        needle = (query or "").strip().lower()
        if not needle:
            return self.ordered_sessions()
        matches = [
            s
            for s in self._sessions.values()
            if needle in s.title.lower() or any(needle in m.content.lower() for m in s.messages)
        ]
        matches.sort(key=lambda s: s.updated_at, reverse=True)
        return [s for s in matches if s.pinned] + [s for s in matches if not s.pinned]

    def create_session(self, title: str | None = None) -> str:
        now = utc_now()
        session = ChatSession(
            title=normalize_title(title) if title else DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        self.register_session(session)
        return session.id

    def register_session(self, session: ChatSession, make_current: bool = True) -> None:
        self._sessions = {session.id: session, **self._sessions}
        if make_current:
            self.current_session_id = session.id
        self._sessions_changed()

    def select_session(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        self.current_session_id = session_id
        self._sessions_changed()
        return True

    def delete_session(self, session_id: str) -> bool:
        if session_id not in self._sessions:
            return False
        del self._sessions[session_id]
        if self.current_session_id == session_id:
            remaining = self.ordered_sessions()
            self.current_session_id = remaining[0].id if remaining else None
        self._sessions_changed()
        return True

    def toggle_pin(self, session_id: str) -> bool:
        session = self.require(session_id)
        session.pinned = not session.pinned
        self._sessions_changed()
        return session.pinned

    def rename_session(self, session_id: str, new_title: str) -> bool:
        session = self.require(session_id)
        title = normalize_title(new_title)
        if not title:
            return False
        session.title = title
        session.updated_at = utc_now()
        self._sessions_changed()
        return True

    def reorder_session(
        self,
        dragged_id: str,
        target_id: str,
        position: Literal["before", "after"] = "before",
    ) -> bool:
        if dragged_id == target_id:
            return False
        if dragged_id not in self._sessions or target_id not in self._sessions:
            return False
        order = self.flat_order()
        order.remove(dragged_id)
        index = order.index(target_id)
        if position == "after":
            index += 1
        order.insert(index, dragged_id)
        self._sessions = {sid: self._sessions[sid] for sid in order}
        self._sessions_changed()
        return True

    # Messages

    def messages(self, session_id: str) -> list[Message]:
        return list(self.require(session_id).messages)

    def append_message(self, session_id: str, message: Message) -> Message:
        session = self.require(session_id)
        session.messages.append(message)
        session.updated_at = utc_now()
        self._messages_changed(session)
        return message

    def update_message(
        self,
        session_id: str,
        message_id: str,
        persist: bool = False,
        **changes: Any,
    ) -> Message:
        session = self.require(session_id)
        for index, message in enumerate(session.messages):
            if message.id == message_id:
                updated = message.model_copy(update=changes)
                session.messages[index] = updated
                if persist:
                    session.updated_at = utc_now()
                self._messages_changed(session, persist=persist)
                return updated
        raise KeyError(f"Message {message_id} not in session {session_id}")

    def delete_message(self, session_id: str, index: int) -> Message:
        session = self.require(session_id)
        if not 0 <= index < len(session.messages):
            raise IndexError(f"No message at index {index}")
        removed = session.messages.pop(index)
        session.updated_at = utc_now()
        self._messages_changed(session)
        return removed

    def truncate(self, session_id: str, length: int) -> None:
        session = self.require(session_id)
        del session.messages[max(0, length) :]
        session.updated_at = utc_now()
        self._messages_changed(session)

    def rewrite_message(self, session_id: str, index: int, message: Message) -> Message:
        """Put ``message`` at ``index`` and drop everything after it in one write."""
        session = self.require(session_id)
        if not 0 <= index < len(session.messages):
            raise IndexError(f"No message at index {index}")
        session.messages[index:] = [message]
        session.updated_at = utc_now()
        self._messages_changed(session)
        return message

    def clear_messages(self, session_id: str) -> None:
        self.truncate(session_id, 0)
