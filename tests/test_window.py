import pytest

from palaver.sessions.schema import Message
from palaver.sessions.window import (
    MessageWindows,
    Viewport,
    content_height,
    message_rows,
    visible_window,
)


def _log(n):
    return [Message(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(n)]


@pytest.mark.parametrize("length", [0, 1, 5, 20, 21, 57])
@pytest.mark.parametrize("window_size", [1, 20, 40])
def test_visible_window_is_suffix(length, window_size):
    log = _log(length)
    visible = visible_window(log, window_size)

    assert len(visible) == min(window_size, length)
    assert visible == log[len(log) - len(visible) :]


def test_zero_window_shows_nothing():
    assert visible_window(_log(3), 0) == []


def test_grow_window_is_monotonic_and_keeps_suffix():
    windows = MessageWindows(page_size=20)
    log = _log(65)
    windows.activate("s")

    previous = windows.visible("s", log)
    sizes = [windows.window_size("s")]
    for _ in range(4):
        windows.grow_window("s")
        current = windows.visible("s", log)
        assert current[len(current) - len(previous) :] == previous
        sizes.append(windows.window_size("s"))
        previous = current

    assert sizes == [20, 40, 60, 80, 100]
    assert previous == log
    assert not windows.has_older("s", log)


def test_windows_are_tracked_per_session():
    windows = MessageWindows(page_size=20)
    assert windows.activate("a")
    windows.grow_window("a")
    assert not windows.activate("a")

    assert windows.window_size("a") == 40
    assert windows.window_size("b") == 20

    windows.forget("a")
    assert windows.window_size("a") == 20


def test_has_older():
    windows = MessageWindows(page_size=2)
    assert windows.has_older("s", _log(3))
    assert not windows.has_older("s", _log(2))


def test_message_rows_counts_wrapped_lines():
    short = Message(role="user", content="hi")
    long = Message(role="user", content="word " * 40, images=["x"])
    assert message_rows(short) == 3
    assert message_rows(long, width=80) == 2 + 3 + 1
    assert content_height([short, short]) == 6


def test_viewport_follows_bottom_when_near_it():
    viewport = Viewport(height=10)
    viewport.after_append(30, was_near_bottom=False, just_activated=True)
    assert viewport.scroll_top == 20

    viewport.after_append(35, was_near_bottom=viewport.is_near_bottom())
    assert viewport.scroll_top == 25


def test_viewport_stays_put_when_scrolled_up():
    viewport = Viewport(height=10, content_height=50)
    viewport.scroll_to(5)
    assert not viewport.is_near_bottom()

    viewport.after_append(60, was_near_bottom=viewport.is_near_bottom())
    assert viewport.scroll_top == 5


def test_preserve_bottom_distance_when_older_messages_load():
    viewport = Viewport(height=10, content_height=30)
    viewport.scroll_to(12)
    distance = viewport.distance_from_bottom()

    viewport.preserve_bottom_distance(70)

    assert viewport.distance_from_bottom() == distance
    assert viewport.scroll_top == 52


def test_scroll_is_clamped():
    viewport = Viewport(height=10, content_height=15)
    viewport.scroll_to(100)
    assert viewport.scroll_top == 5
    viewport.scroll_to(-3)
    assert viewport.scroll_top == 0
