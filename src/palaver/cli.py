from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from palaver.config import ChatConfig, ConfigError, resolve_model_alias
from palaver.export import EXTENSIONS, write_export
from palaver.providers.registry import list_providers
from palaver.sessions.store import SessionStore
from palaver.storage.kv import FileKeyValueStore, JsonStorage, MemoryKeyValueStore


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=None, help="Where chats and settings are stored")
    parser.add_argument("-v", "--verbose", action="store_true")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="palaver", description="Palaver - terminal chat client")
    subparsers = parser.add_subparsers(dest="command", required=False)

    repl = subparsers.add_parser("repl", help="Start interactive chat (default)")
    repl.add_argument(
        "--model",
        default=None,
        help="Model to use (supports aliases: grok, grok-mini, vision, 4o, sonnet, flash)",
    )
    repl.add_argument("--provider", default=None, choices=list_providers())
    repl.add_argument("--base-url", default=None, help="OpenAI-compatible API base URL")
    repl.add_argument("--no-stream", action="store_true", help="Disable streaming")
    repl.add_argument("--no-titles", action="store_true", help="Derive titles locally instead of asking the model")
    repl.add_argument("--message", "-m", help="Send one message and exit")
    repl.add_argument("--ephemeral", action="store_true", help="Keep chats in memory only")
    _add_common_args(repl)

    sessions = subparsers.add_parser("sessions", help="List stored chats")
    sessions.add_argument("--search", default=None, help="Only chats whose title or content matches")
    _add_common_args(sessions)

    export = subparsers.add_parser("export", help="Export a chat to a file")
    export.add_argument("session_id", help="Chat id or unique id prefix")
    export.add_argument("--format", default="markdown", choices=sorted(EXTENSIONS))
    export.add_argument("--output-dir", default=".")
    _add_common_args(export)

    return parser


def _main(argv: list[str]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv or ["repl"])

    cmd = args.command or "repl"
    setup_logging(bool(getattr(args, "verbose", False)))
    if cmd == "repl":
        return _cmd_repl(args)
    if cmd == "sessions":
        return _cmd_sessions(args)
    if cmd == "export":
        return _cmd_export(args)

    parser.print_help(sys.stderr)
    return 2


def _config_from_args(args) -> ChatConfig:
    config = ChatConfig.from_env()
    if args.data_dir:
        config.data_dir = args.data_dir
    return config


def _open_sessions(config: ChatConfig) -> SessionStore:
    kv = FileKeyValueStore(
        Path(config.data_dir).expanduser() / "store",
        quota_bytes=config.storage_quota_bytes,
    )
    return SessionStore.load(JsonStorage(kv))


def _cmd_repl(args) -> int:
    from palaver.runtime.app import ChatApp
    from palaver.runtime.repl import ChatREPL

    config = _config_from_args(args)
    if args.provider:
        config.provider = args.provider
    if args.base_url:
        config.base_url = args.base_url
    config.stream = not bool(args.no_stream)
    config.generate_titles = not bool(args.no_titles)

    try:
        app = ChatApp(config, kv_store=MemoryKeyValueStore() if args.ephemeral else None)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if args.model:
        config.model = resolve_model_alias(args.model)

    repl = ChatREPL(app)
    if args.message:
        message = repl.process_user_message(args.message)
        return 0 if message is not None and not message.error else 1

    repl.run()
    return 0


def _cmd_sessions(args) -> int:
    store = _open_sessions(_config_from_args(args))
    rows = store.search_sessions(args.search) if args.search else store.ordered_sessions()
    if not rows:
        print("No chats found.")
        return 0
    print(f"{'ID':<10} {'Pinned':<7} {'Msgs':<5} {'Updated':<20} {'Title'}")
    for session in rows:
        pinned = "yes" if session.pinned else ""
        updated = session.updated_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{session.id[:10]:<10} {pinned:<7} {len(session.messages):<5} {updated:<20} {session.title}")
    return 0


def _cmd_export(args) -> int:
    from palaver.settings import SettingsStore

    config = _config_from_args(args)
    store = _open_sessions(config)
    matches = [sid for sid in store.flat_order() if sid.startswith(args.session_id)]
    if len(matches) != 1:
        reason = "No chat" if not matches else "More than one chat"
        print(f"Error: {reason} matches {args.session_id}", file=sys.stderr)
        return 1
    ai_name = SettingsStore.load(store.storage).settings.ai_name
    path = write_export(store.require(matches[0]), args.format, args.output_dir, ai_name=ai_name)
    print(path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
