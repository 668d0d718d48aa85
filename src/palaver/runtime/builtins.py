from palaver.chat.attachments import AttachmentError, image_to_data_url
from palaver.export import EXTENSIONS, write_export
from palaver.runtime.render import render_message, render_session_line
from palaver.sessions.schema import ChatSession
from palaver.tokens import session_totals

HELP_TEXT = """\
Sessions:
  /new                       Start a new chat
  /sessions                  List chats (pinned first)
  /switch <n|id>             Switch to a chat
  /delete [n|id]             Delete a chat (default: current)
  /pin [n|id]                Pin or unpin a chat
  /rename <title>            Rename the current chat
  /move <n> <before|after> <m>
                             Move chat n next to chat m
  /search <query>            Find chats by title or content
Messages:
  /history                   Show the visible window of the current chat
  /more                      Load older messages
  /edit <i> <text>           Rewrite user message i and regenerate from there
  /regen [i]                 Regenerate assistant message i (default: last)
  /rm <i>                    Delete message i
  /clear                     Delete every message of the current chat
  /attach <path>             Attach an image to the next message
  /image <prompt>            Generate an image
  /export <markdown|text|json> [dir]
Settings:
  /model [name]  /key <api-key>  /system [text]  /name <ai-name>  /tokens
Other:
  /help  /quit
Start a line with // to send a message that begins with a slash."""


class BuiltinCommands:
    def __init__(self, runtime):
        self.runtime = runtime
        self._handlers = {
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
            "help": self.cmd_help,
            "new": self.cmd_new,
            "sessions": self.cmd_sessions,
            "switch": self.cmd_switch,
            "delete": self.cmd_delete,
            "pin": self.cmd_pin,
            "rename": self.cmd_rename,
            "move": self.cmd_move,
            "search": self.cmd_search,
            "history": self.cmd_history,
            "more": self.cmd_more,
            "edit": self.cmd_edit,
            "regen": self.cmd_regen,
            "rm": self.cmd_rm,
            "clear": self.cmd_clear,
            "attach": self.cmd_attach,
            "image": self.cmd_image,
            "export": self.cmd_export,
            "model": self.cmd_model,
            "key": self.cmd_key,
            "system": self.cmd_system,
            "name": self.cmd_name,
            "tokens": self.cmd_tokens,
        }

    @property
    def app(self):
        return self.runtime.app

    def has_command(self, name: str) -> bool:
        return name in self._handlers

    def handle(self, name: str, args: str) -> bool:
        handler = self._handlers.get(name)
        if not handler:
            return True
        return handler(args.strip())

    def resolve_session(self, ref: str) -> ChatSession | None:
        ref = ref.strip()
        if not ref:
            return self.app.sessions.current
        ordered = self.app.sessions.ordered_sessions()
        if ref.isdigit():
            position = int(ref)
            if 1 <= position <= len(ordered):
                return ordered[position - 1]
            return None
        matches = [s for s in ordered if s.id.startswith(ref)]
        return matches[0] if len(matches) == 1 else None

    def _current_id(self) -> str | None:
        session_id = self.app.current_session_id
        if session_id is None:
            print("No current chat. Use /new to start one.")
        return session_id

    def _parse_index(self, raw: str) -> int | None:
        try:
            return int(raw)
        except ValueError:
            print(f"❌ Not a message index: {raw}")
            return None

    def cmd_quit(self, args: str) -> bool:
        print("👋 Goodbye!")
        return False

    def cmd_help(self, args: str) -> bool:
        print(HELP_TEXT)
        return True

    def cmd_new(self, args: str) -> bool:
        self.app.sessions.create_session(args or None)
        print("✅ Started a new chat")
        return True

    def cmd_sessions(self, args: str) -> bool:
        self._print_sessions(self.app.sessions.ordered_sessions())
        return True

    def _print_sessions(self, sessions: list[ChatSession]) -> None:
        if not sessions:
            print("No chats yet")
            return
        ordered_ids = [s.id for s in self.app.sessions.ordered_sessions()]
        current = self.app.current_session_id
        for session in sessions:
            position = ordered_ids.index(session.id) + 1
            print(render_session_line(position, session, session.id == current))

    def cmd_switch(self, args: str) -> bool:
        if not args:
            print("Usage: /switch <n|id>")
            return True
        session = self.resolve_session(args)
        if session is None:
            print(f"❌ No chat matches {args}")
            return True
        self.app.sessions.select_session(session.id)
        print(f"✅ Switched to: {session.title}")
        self.runtime.print_window()
        return True

    def cmd_delete(self, args: str) -> bool:
        session = self.resolve_session(args)
        if session is None:
            print(f"❌ No chat matches {args or 'the current chat'}")
            return True
        self.app.sessions.delete_session(session.id)
        print(f"🗑️  Deleted: {session.title}")
        return True

    def cmd_pin(self, args: str) -> bool:
        session = self.resolve_session(args)
        if session is None:
            print(f"❌ No chat matches {args or 'the current chat'}")
            return True
        pinned = self.app.sessions.toggle_pin(session.id)
        print(f"📌 {'Pinned' if pinned else 'Unpinned'}: {session.title}")
        return True

    def cmd_rename(self, args: str) -> bool:
        session_id = self._current_id()
        if session_id is None:
            return True
        if not args or not self.app.sessions.rename_session(session_id, args):
            print("Usage: /rename <title>")
            return True
        print(f"✅ Renamed to: {self.app.sessions.require(session_id).title}")
        return True

    def cmd_move(self, args: str) -> bool:
        parts = args.split()
        if len(parts) != 3 or parts[1] not in ("before", "after"):
            print("Usage: /move <n> <before|after> <m>")
            return True
        dragged = self.resolve_session(parts[0])
        target = self.resolve_session(parts[2])
        if dragged is None or target is None:
            print("❌ Unknown chat")
            return True
        if not self.app.sessions.reorder_session(dragged.id, target.id, parts[1]):
            print("❌ Nothing to move")
            return True
        self._print_sessions(self.app.sessions.ordered_sessions())
        return True

    def cmd_search(self, args: str) -> bool:
        results = self.app.sessions.search_sessions(args)
        if not results:
            print(f'No chats found for "{args}"')
            return True
        self._print_sessions(results)
        return True

    def cmd_history(self, args: str) -> bool:
        self.runtime.print_window()
        return True

    def cmd_more(self, args: str) -> bool:
        session_id = self._current_id()
        if session_id is None:
            return True
        if not self.app.has_older(session_id):
            print("No older messages")
            return True
        revealed = self.app.grow_window(session_id)
        total = len(self.app.sessions.messages(session_id))
        start = total - len(self.app.visible_messages(session_id))
        print(f"⬆️  {len(revealed)} older messages")
        ai_name = self.runtime.ai_name
        for offset, message in enumerate(revealed):
            print(render_message(message, start + offset, ai_name))
            print()
        return True

    def cmd_edit(self, args: str) -> bool:
        session_id = self._current_id()
        parts = args.split(maxsplit=1)
        if session_id is None or len(parts) != 2:
            print("Usage: /edit <i> <text>")
            return True
        index = self._parse_index(parts[0])
        if index is not None:
            self.runtime.run_chat(lambda: self.app.chat.edit(session_id, index, parts[1]))
        return True

    def cmd_regen(self, args: str) -> bool:
        session_id = self._current_id()
        if session_id is None:
            return True
        if not args:
            self.runtime.run_chat(lambda: self.app.chat.regenerate_last(session_id))
            return True
        index = self._parse_index(args)
        if index is not None:
            self.runtime.run_chat(lambda: self.app.chat.regenerate(session_id, index))
        return True

    def cmd_rm(self, args: str) -> bool:
        session_id = self._current_id()
        if session_id is None or not args:
            print("Usage: /rm <i>")
            return True
        index = self._parse_index(args)
        if index is None:
            return True
        try:
            self.app.chat.delete_message(session_id, index)
        except IndexError as e:
            print(f"❌ {e}")
            return True
        print(f"🗑️  Deleted message {index}")
        return True

    def cmd_clear(self, args: str) -> bool:
        session_id = self._current_id()
        if session_id is None:
            return True
        self.app.sessions.clear_messages(session_id)
        print("✅ Cleared chat history")
        return True

    def cmd_attach(self, args: str) -> bool:
        if not args:
            print("Usage: /attach <path>")
            return True
        try:
            self.runtime.pending_images.append(image_to_data_url(args))
        except AttachmentError as e:
            print(f"❌ {e}")
            return True
        print(f"📎 Attached {args} ({len(self.runtime.pending_images)} pending)")
        return True

    def cmd_image(self, args: str) -> bool:
        if not args:
            print("Usage: /image <prompt>")
            return True
        self.runtime.run_chat(lambda: self.app.chat.generate_image(args), streamed=False)
        return True

    def cmd_export(self, args: str) -> bool:
        parts = args.split(maxsplit=1)
        if not parts or parts[0] not in EXTENSIONS:
            print("Usage: /export <markdown|text|json> [dir]")
            return True
        session = self.app.sessions.current
        if session is None:
            print("No current chat")
            return True
        directory = parts[1] if len(parts) > 1 else "."
        path = write_export(session, parts[0], directory, ai_name=self.runtime.ai_name)
        print(f"✅ Exported to {path}")
        return True

    def cmd_model(self, args: str) -> bool:
        if not args:
            print(f"Current model: {self.app.config.model}")
            return True
        self.app.config.model = self.app.settings.set_model(args)
        print(f"✅ Switched to model: {self.app.config.model}")
        return True

    def cmd_key(self, args: str) -> bool:
        if not args:
            print("Usage: /key <api-key>")
            return True
        self.app.settings.set_api_key(args)
        self.app.config.api_key = self.app.settings.settings.api_key
        print("✅ API key saved")
        return True

    def cmd_system(self, args: str) -> bool:
        if not args:
            print(self.app.settings.settings.system_phrase)
            return True
        self.app.settings.set_system_phrase(args)
        print("✅ System instruction updated")
        return True

    def cmd_name(self, args: str) -> bool:
        if not args:
            print(f"Assistant name: {self.runtime.ai_name}")
            return True
        self.app.settings.set_ai_name(args)
        print(f"✅ Assistant is now called {self.runtime.ai_name}")
        return True

    def cmd_tokens(self, args: str) -> bool:
        session = self.app.sessions.current
        if session is None:
            print("No current chat")
            return True
        totals = session_totals(session.messages)
        print(
            f"📊 {totals['messages']} messages, ~{totals['tokens']:,} tokens, "
            f"${totals['cost_usd']:.4f} estimated"
        )
        return True
