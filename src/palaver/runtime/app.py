from __future__ import annotations

import logging
import shutil
from pathlib import Path

from common.events import Event, EventEmitter, MessagesChangedEvent, SessionsChangedEvent
from palaver.chat.service import ChatService
from palaver.config import ChatConfig
from palaver.providers.base import ChatProvider
from palaver.providers.registry import get_provider
from palaver.sessions.migrate import migrate_legacy_messages
from palaver.sessions.schema import Message
from palaver.sessions.store import SessionStore
from palaver.sessions.window import MessageWindows, Viewport, content_height
from palaver.settings import SettingsStore
from palaver.storage.kv import FileKeyValueStore, JsonStorage, KeyValueStore

logger = logging.getLogger(__name__)


class ChatApp:
    """Application state for one process.

    Owns the storage adapter, settings, session store, per-session windows
    and viewports, and the chat service. Front ends subscribe to ``events``
    and re-render from ``visible_messages`` instead of holding state
    themselves.
    """

    def __init__(
        self,
        config: ChatConfig,
        kv_store: KeyValueStore | None = None,
        provider: ChatProvider | None = None,
        viewport_height: int | None = None,
    ):
        self.config = config
        if kv_store is None:
            kv_store = FileKeyValueStore(
                Path(config.data_dir).expanduser() / "store",
                quota_bytes=config.storage_quota_bytes,
            )
        self.storage = JsonStorage(kv_store)
        self.events = EventEmitter()

        self.settings = SettingsStore.load(self.storage)
        self.settings.apply_to(config)

        self.sessions = SessionStore.load(self.storage, self.events)
        migrate_legacy_messages(self.storage, self.sessions)

        self.windows = MessageWindows()
        self.viewport_height = viewport_height or shutil.get_terminal_size().lines
        self.viewports: dict[str, Viewport] = {}
        self._active_session_id: str | None = None

        self.provider = provider or get_provider(config)
        self.chat = ChatService(self.sessions, self.provider, config, self.settings)

        self.events.subscribe(self._on_event)
        self._ensure_current()

    def _ensure_current(self) -> None:
        if self.sessions.current_session_id is not None:
            self._activate(self.sessions.current_session_id)
            return
        ordered = self.sessions.ordered_sessions()
        if ordered:
            self.sessions.select_session(ordered[0].id)
        else:
            session_id = self.sessions.create_session()
            logger.debug(f"Created first session {session_id}")

    @property
    def current_session_id(self) -> str | None:
        return self.sessions.current_session_id

    def viewport(self, session_id: str) -> Viewport:
        if session_id not in self.viewports:
            self.viewports[session_id] = Viewport(height=self.viewport_height)
        return self.viewports[session_id]

    def visible_messages(self, session_id: str | None = None) -> list[Message]:
        session_id = session_id or self.current_session_id
        if session_id is None or session_id not in self.sessions:
            return []
        return self.windows.visible(session_id, self.sessions.messages(session_id))

    def has_older(self, session_id: str | None = None) -> bool:
        session_id = session_id or self.current_session_id
        if session_id is None or session_id not in self.sessions:
            return False
        return self.windows.has_older(session_id, self.sessions.messages(session_id))

    def grow_window(self, session_id: str | None = None) -> list[Message]:
        """Reveal the next page of older messages and return only those."""
        session_id = session_id or self.current_session_id
        if session_id is None:
            return []
        before = self.visible_messages(session_id)
        self.windows.grow_window(session_id)
        after = self.visible_messages(session_id)
        self.viewport(session_id).preserve_bottom_distance(content_height(after))
        return after[: len(after) - len(before)]

    def _activate(self, session_id: str) -> None:
        self._active_session_id = session_id
        self.windows.activate(session_id)
        height = content_height(self.visible_messages(session_id))
        self.viewport(session_id).after_append(height, was_near_bottom=False, just_activated=True)

    def _on_event(self, event: Event) -> None:
        if isinstance(event, SessionsChangedEvent):
            for session_id in list(self.viewports):
                if session_id not in self.sessions:
                    self.viewports.pop(session_id, None)
                    self.windows.forget(session_id)
            if event.current_session_id not in (None, self._active_session_id):
                self._activate(event.current_session_id)
            return
        if isinstance(event, MessagesChangedEvent):
            if event.session_id not in self.sessions:
                return
            viewport = self.viewport(event.session_id)
            was_near_bottom = viewport.is_near_bottom()
            height = content_height(self.visible_messages(event.session_id))
            viewport.after_append(height, was_near_bottom=was_near_bottom)
