from pathlib import Path

import pytest

from conftest import FakeProvider
from palaver import cli
from palaver.config import ChatConfig
from palaver.runtime.app import ChatApp
from palaver.runtime.repl import ChatREPL
from palaver.sessions.schema import Message
from palaver.sessions.store import SessionStore
from palaver.storage.kv import FileKeyValueStore, JsonStorage, MemoryKeyValueStore


@pytest.fixture
def repl():
    config = ChatConfig(api_key="k", generate_titles=False)
    app = ChatApp(config, kv_store=MemoryKeyValueStore(), provider=FakeProvider(), viewport_height=10)
    return ChatREPL(app)


def test_router_kinds(repl):
    assert repl.router.route("hello").kind == "prompt"
    assert repl.router.route("/sessions").kind == "builtin"
    route = repl.router.route("/rename  Big plans")
    assert (route.name, route.args) == ("rename", "Big plans")
    assert repl.router.route("/frobnicate").kind == "unknown"

    escaped = repl.router.route("//etc/hosts is a file")
    assert escaped.kind == "prompt"
    assert escaped.args == "/etc/hosts is a file"


def test_quit_stops_loop(repl, capsys):
    assert repl.builtins.handle("quit", "") is False
    assert "Goodbye" in capsys.readouterr().out


def test_prompt_streams_to_stdout(repl, capsys):
    repl.process_user_message("hello")

    out = capsys.readouterr().out
    assert "🤖 Palaver: ok" in out
    assert [m.content for m in repl.app.visible_messages()] == ["hello", "ok"]


def test_user_errors_are_printed_not_raised(repl, capsys):
    repl.app.chat.is_loading = True
    assert repl.process_user_message("hello") is None
    assert "still being generated" in capsys.readouterr().out


def test_session_commands(repl, capsys):
    first = repl.app.current_session_id
    repl.builtins.handle("new", "Second chat")
    second = repl.app.current_session_id
    assert second != first

    repl.builtins.handle("pin", "2")
    assert repl.app.sessions.require(first).pinned

    repl.builtins.handle("switch", "2")
    assert repl.app.current_session_id == second

    repl.builtins.handle("rename", "Renamed")
    assert repl.app.sessions.require(second).title == "Renamed"

    repl.builtins.handle("sessions", "")
    out = capsys.readouterr().out
    assert "📌 New Chat" in out
    assert "*  2. Renamed" in out

    repl.builtins.handle("delete", "")
    assert second not in repl.app.sessions
    assert repl.app.current_session_id == first


def test_switch_by_id_prefix(repl):
    target = repl.app.current_session_id
    repl.builtins.handle("new", "")
    repl.builtins.handle("switch", target[:8])
    assert repl.app.current_session_id == target


def test_message_commands(repl, capsys):
    sid = repl.app.current_session_id
    repl.app.chat.provider.replies = ["first", "second", "edited"]
    repl.process_user_message("one")
    repl.builtins.handle("regen", "")
    assert [m.content for m in repl.app.sessions.messages(sid)] == ["one", "second"]

    repl.builtins.handle("edit", "0 uno")
    assert [m.content for m in repl.app.sessions.messages(sid)] == ["uno", "edited"]

    repl.builtins.handle("rm", "7")
    assert "No message at index 7" in capsys.readouterr().out

    repl.builtins.handle("rm", "1")
    assert [m.content for m in repl.app.sessions.messages(sid)] == ["uno"]

    repl.builtins.handle("clear", "")
    assert repl.app.sessions.messages(sid) == []


def test_more_reveals_older_messages(repl, capsys):
    sid = repl.app.current_session_id
    for i in range(25):
        repl.app.sessions.append_message(sid, Message(role="user", content=f"m{i}"))

    repl.builtins.handle("more", "")

    out = capsys.readouterr().out
    assert "5 older messages" in out
    assert "[0] 👤 You:\nm0" in out


def test_attach_sends_image_with_next_message(repl, tmp_path: Path, capsys):
    image = tmp_path / "pic.png"
    image.write_bytes(b"\x89PNG\r\n\x1a\n")

    repl.builtins.handle("attach", str(image))
    assert len(repl.pending_images) == 1

    repl.process_user_message("what is this")

    sent = repl.app.visible_messages()[0]
    assert sent.images and sent.images[0].startswith("data:image/png;base64,")
    assert repl.pending_images == []


def test_attach_rejects_non_image(repl, tmp_path: Path, capsys):
    notes = tmp_path / "notes.txt"
    notes.write_text("hi")
    repl.builtins.handle("attach", str(notes))
    assert repl.pending_images == []
    assert "Not an image" in capsys.readouterr().out


def test_settings_commands(repl, capsys):
    repl.builtins.handle("model", "grok")
    assert repl.app.config.model == "grok-4"

    repl.builtins.handle("key", "sk-new")
    assert repl.app.config.api_key == "sk-new"

    repl.builtins.handle("name", "Jarvis")
    assert repl.ai_name == "Jarvis"
    assert "Jarvis" in repl.app.settings.settings.system_phrase


def test_export_and_tokens(repl, tmp_path: Path, capsys):
    repl.process_user_message("count these words")
    capsys.readouterr()

    repl.builtins.handle("export", f"markdown {tmp_path}")
    assert len(list(tmp_path.glob("*.md"))) == 1

    repl.builtins.handle("tokens", "")
    assert "2 messages, ~1 tokens" in capsys.readouterr().out


def test_image_command_prints_result(repl, capsys):
    repl.builtins.handle("image", "a fox")
    assert "![a fox](https://img.test/1.png)" in capsys.readouterr().out


def _seed_data_dir(data_dir: Path) -> str:
    store = SessionStore.load(JsonStorage(FileKeyValueStore(data_dir / "store")))
    sid = store.create_session("Exported chat")
    store.append_message(sid, Message(role="user", content="hello"))
    return sid


def test_cli_sessions_lists_chats(tmp_path: Path, capsys):
    _seed_data_dir(tmp_path)
    assert cli._main(["sessions", "--data-dir", str(tmp_path)]) == 0
    assert "Exported chat" in capsys.readouterr().out


def test_cli_sessions_empty(tmp_path: Path, capsys):
    assert cli._main(["sessions", "--data-dir", str(tmp_path)]) == 0
    assert "No chats found." in capsys.readouterr().out


def test_cli_export(tmp_path: Path, capsys):
    sid = _seed_data_dir(tmp_path / "data")
    out_dir = tmp_path / "out"

    code = cli._main(
        ["export", sid[:6], "--format", "json", "--output-dir", str(out_dir), "--data-dir", str(tmp_path / "data")]
    )

    assert code == 0
    exported = list(out_dir.glob("*.json"))
    assert len(exported) == 1
    assert "hello" in exported[0].read_text(encoding="utf-8")


def test_cli_export_unknown_session(tmp_path: Path):
    assert cli._main(["export", "zzz", "--data-dir", str(tmp_path)]) == 1


def test_cli_single_message(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setattr("palaver.runtime.app.get_provider", lambda config: FakeProvider(["pong"]))

    code = cli._main(["repl", "-m", "ping", "--data-dir", str(tmp_path)])

    assert code == 0
    assert "pong" in capsys.readouterr().out


def test_system_and_search_commands(repl, capsys):
    repl.builtins.handle("system", "Reply in French.")
    assert repl.app.chat.system_prompt == "Reply in French."

    repl.process_user_message("bonjour tout le monde")
    capsys.readouterr()

    repl.builtins.handle("search", "BONJOUR")
    assert "bonjour tout le monde" in capsys.readouterr().out

    repl.builtins.handle("search", "absent")
    assert 'No chats found for "absent"' in capsys.readouterr().out
