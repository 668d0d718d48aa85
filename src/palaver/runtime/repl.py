from __future__ import annotations

import logging
from typing import Callable

from common.events import (
    AssistantDeltaEvent,
    AssistantMessageEvent,
    AssistantResponseStartEvent,
    ErrorEvent,
    Event,
)
from palaver.chat.attachments import AttachmentError
from palaver.chat.service import ChatBusyError
from palaver.config import ConfigError
from palaver.providers.base import ProviderError
from palaver.runtime.app import ChatApp
from palaver.runtime.builtins import BuiltinCommands
from palaver.runtime.render import render_message
from palaver.runtime.router import InputRouter
from palaver.sessions.schema import Message

logger = logging.getLogger(__name__)

USER_ERRORS = (ConfigError, ChatBusyError, ProviderError, AttachmentError, IndexError, ValueError)


class ChatREPL:
    def __init__(self, app: ChatApp):
        self.app = app
        self.pending_images: list[str] = []
        self.builtins = BuiltinCommands(self)
        self.router = InputRouter(self.builtins)
        self._unsubscribe = app.events.subscribe(self._on_event)

    @property
    def ai_name(self) -> str:
        return self.app.settings.settings.ai_name

    def _on_event(self, event: Event) -> None:
        if isinstance(event, AssistantResponseStartEvent):
            print(f"\n🤖 {self.ai_name}: ", end="", flush=True)
        elif isinstance(event, AssistantDeltaEvent):
            print(event.text, end="", flush=True)
        elif isinstance(event, AssistantMessageEvent):
            print()
        elif isinstance(event, ErrorEvent):
            print(f"\n❌ {event.message}")

    def print_window(self) -> None:
        session = self.app.sessions.current
        if session is None:
            print("No current chat")
            return
        visible = self.app.visible_messages(session.id)
        start = len(session.messages) - len(visible)
        print(f"💬 {session.title}")
        if start:
            print(f"⬆️  {start} older messages (/more to load)")
        print()
        for offset, message in enumerate(visible):
            print(render_message(message, start + offset, self.ai_name))
            print()

    def run_chat(self, action: Callable[[], Message], streamed: bool = True) -> Message | None:
        try:
            message = action()
        except USER_ERRORS as e:
            print(f"❌ {e}")
            return None
        if not streamed:
            index = len(self.app.sessions.messages(self.app.current_session_id)) - 1
            print(render_message(message, index, self.ai_name))
        return message

    def process_user_message(self, text: str) -> Message | None:
        images = list(self.pending_images)
        message = self.run_chat(lambda: self.app.chat.send_message(text, images or None))
        if message is not None:
            self.pending_images.clear()
        return message

    def run(self, initial_message: str | None = None) -> None:
        print(f"💬 {self.app.settings.settings.site_name} started (model: {self.app.config.model})")
        print("Commands: /help for all commands")
        print()
        self.print_window()

        if initial_message:
            self.process_user_message(initial_message)

        try:
            while True:
                try:
                    user_input = input("\n> ").strip()

                    if not user_input:
                        continue

                    route = self.router.route(user_input)
                    if route.kind == "builtin":
                        if not self.builtins.handle(route.name, route.args):
                            break
                        continue
                    if route.kind == "unknown":
                        print(f"Unknown command: /{route.name}. Type /help for available commands.")
                        continue

                    self.process_user_message(route.args)

                except KeyboardInterrupt:
                    print("\n\n⚠️  Interrupted")
                    break
                except EOFError:
                    break
                except Exception as e:
                    logger.exception("Unhandled error in REPL")
                    print(f"\n❌ Error: {e}")
        finally:
            self._unsubscribe()
