from __future__ import annotations

import textwrap
from dataclasses import dataclass
from typing import Sequence

from palaver.sessions.schema import Message

PAGE_SIZE = 20
NEAR_BOTTOM_ROWS = 3


def visible_window(messages: Sequence[Message], window_size: int) -> list[Message]:
    if window_size <= 0:
        return []
    return list(messages[-window_size:])


def message_rows(message: Message, width: int = 80) -> int:
    rows = 2  # header and trailing blank line
    for line in (message.content or "").splitlines() or [""]:
        rows += max(1, len(textwrap.wrap(line, width=width)))
    if message.images:
        rows += 1
    return rows


def content_height(messages: Sequence[Message], width: int = 80) -> int:
    return sum(message_rows(m, width) for m in messages)


class MessageWindows:
    """Per-session window sizes. Sizes only ever grow until forgotten."""

    def __init__(self, page_size: int = PAGE_SIZE):
        self.page_size = page_size
        self._sizes: dict[str, int] = {}

    def activate(self, session_id: str) -> bool:
        if session_id in self._sizes:
            return False
        self._sizes[session_id] = self.page_size
        return True

    def window_size(self, session_id: str) -> int:
        return self._sizes.get(session_id, self.page_size)

    def grow_window(self, session_id: str) -> int:
        size = self.window_size(session_id) + self.page_size
        self._sizes[session_id] = size
        return size

    def forget(self, session_id: str) -> None:
        self._sizes.pop(session_id, None)

    def visible(self, session_id: str, messages: Sequence[Message]) -> list[Message]:
        return visible_window(messages, self.window_size(session_id))

    def has_older(self, session_id: str, messages: Sequence[Message]) -> bool:
        return len(messages) > self.window_size(session_id)


@dataclass
class Viewport:
    """Scroll position over the rendered window, measured in rows from the top."""

    height: int = 24
    scroll_top: int = 0
    content_height: int = 0

    def max_scroll(self) -> int:
        return max(0, self.content_height - self.height)

    def distance_from_bottom(self) -> int:
        return self.max_scroll() - self.scroll_top

    def is_near_bottom(self, threshold: int = NEAR_BOTTOM_ROWS) -> bool:
        return self.distance_from_bottom() <= threshold

    def scroll_to(self, position: int) -> None:
        self.scroll_top = min(max(0, position), self.max_scroll())

    def scroll_to_bottom(self) -> None:
        self.scroll_top = self.max_scroll()

    def preserve_bottom_distance(self, new_content_height: int) -> None:
        distance = self.distance_from_bottom()
        self.content_height = new_content_height
        self.scroll_to(self.max_scroll() - distance)

    def after_append(
        self,
        new_content_height: int,
        was_near_bottom: bool,
        just_activated: bool = False,
    ) -> None:
        self.content_height = new_content_height
        if was_near_bottom or just_activated:
            self.scroll_to_bottom()
        else:
            self.scroll_to(self.scroll_top)
