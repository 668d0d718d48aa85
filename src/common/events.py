from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TypeAlias


@dataclass(frozen=True, slots=True)
class SessionsChangedEvent:
    current_session_id: str | None


@dataclass(frozen=True, slots=True)
class MessagesChangedEvent:
    session_id: str
    count: int


@dataclass(frozen=True, slots=True)
class AssistantResponseStartEvent:
    session_id: str
    message_id: str


@dataclass(frozen=True, slots=True)
class AssistantDeltaEvent:
    session_id: str
    message_id: str
    text: str
    content: str


@dataclass(frozen=True, slots=True)
class AssistantMessageEvent:
    session_id: str
    message_id: str
    content: str
    status: str


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    source: str | None = None


Event: TypeAlias = (
    SessionsChangedEvent
    | MessagesChangedEvent
    | AssistantResponseStartEvent
    | AssistantDeltaEvent
    | AssistantMessageEvent
    | ErrorEvent
)
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callbacks: list[Callable[[Event], None]] = []
        if callback is not None:
            self._callbacks.append(callback)

    def subscribe(self, callback: Callable[[Event], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: Event) -> None:
        for callback in list(self._callbacks):
            callback(event)
