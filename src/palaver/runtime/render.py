from palaver.export import role_label
from palaver.sessions.schema import ChatSession, Message


def render_message(message: Message, index: int, ai_name: str) -> str:
    icon = "❌" if message.error else ("👤" if message.role == "user" else "🤖")
    lines = [f"[{index}] {icon} {role_label(message, ai_name)}:"]
    lines.append(message.content or "…")
    if message.images:
        lines.append(f"📎 {len(message.images)} image(s) attached")
    return "\n".join(lines)


def render_session_line(position: int, session: ChatSession, is_current: bool) -> str:
    marker = "*" if is_current else " "
    pin = "📌 " if session.pinned else ""
    count = len(session.messages)
    return f"{marker} {position:>2}. {pin}{session.title}  ({count} msgs, {session.id[:8]})"
