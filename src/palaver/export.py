from __future__ import annotations

import json
import re
from datetime import date
from pathlib import Path
from typing import Literal

from common.jsonio import atomic_write_text
from palaver.sessions.schema import ChatSession, Message
from palaver.settings import DEFAULT_AI_NAME

ExportFormat = Literal["markdown", "text", "json"]

EXTENSIONS: dict[str, str] = {"markdown": "md", "text": "txt", "json": "json"}


def role_label(message: Message, ai_name: str) -> str:
    if message.role == "user":
        return "You"
    if message.role == "system":
        return "System"
    return ai_name


def _created(session: ChatSession) -> str:
    return session.created_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def export_markdown(session: ChatSession, ai_name: str = DEFAULT_AI_NAME) -> str:
    parts = [f"# {session.title}\n\n", f"*Created: {_created(session)}*\n\n", "---\n\n"]
    for message in session.messages:
        parts.append(f"### {role_label(message, ai_name)}\n\n")
        parts.append(f"{message.content}\n\n")
        if message.images:
            parts.append(f"*[{len(message.images)} image(s) attached]*\n\n")
        parts.append("---\n\n")
    return "".join(parts)


def export_text(session: ChatSession, ai_name: str = DEFAULT_AI_NAME) -> str:
    parts = [f"{session.title}\n", f"Created: {_created(session)}\n", "=" * 50 + "\n\n"]
    for message in session.messages:
        parts.append(f"{role_label(message, ai_name)}:\n{message.content}\n\n")
        if message.images:
            parts.append(f"[{len(message.images)} image(s) attached]\n\n")
        parts.append("-" * 50 + "\n\n")
    return "".join(parts)


def export_json(session: ChatSession) -> str:
    return json.dumps(session.to_storage(), indent=2, ensure_ascii=False)


def render_export(session: ChatSession, fmt: ExportFormat, ai_name: str = DEFAULT_AI_NAME) -> str:
    if fmt == "markdown":
        return export_markdown(session, ai_name)
    if fmt == "text":
        return export_text(session, ai_name)
    if fmt == "json":
        return export_json(session)
    raise ValueError(f"Unknown export format: {fmt}")


def export_filename(session: ChatSession, fmt: ExportFormat, today: date | None = None) -> str:
    if fmt not in EXTENSIONS:
        raise ValueError(f"Unknown export format: {fmt}")
    safe_name = re.sub(r"[^a-z0-9]", "_", session.title, flags=re.IGNORECASE).lower()
    stamp = (today or date.today()).isoformat()
    return f"{safe_name}_{stamp}.{EXTENSIONS[fmt]}"


def write_export(
    session: ChatSession,
    fmt: ExportFormat,
    directory: str | Path = ".",
    ai_name: str = DEFAULT_AI_NAME,
) -> Path:
    path = Path(directory).expanduser() / export_filename(session, fmt)
    atomic_write_text(path, render_export(session, fmt, ai_name))
    return path
