from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Iterable

from common.events import (
    AssistantDeltaEvent,
    AssistantMessageEvent,
    AssistantResponseStartEvent,
    ErrorEvent,
)
from palaver.config import KEEP_PARTIAL_ON_ERROR
from palaver.providers.base import ProviderError
from palaver.sessions.schema import Message
from palaver.sessions.store import SessionStore

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


class StreamState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


def error_content(partial: str, error: str, keep_partial: bool = KEEP_PARTIAL_ON_ERROR) -> str:
    marker = f"{ERROR_PREFIX}{error}"
    if keep_partial and partial:
        return f"{partial}\n\n{marker}"
    return marker


class StreamAccumulator:
    """Folds one streamed response into an assistant placeholder message.

    The placeholder is appended (and persisted) by ``begin``. Each delta
    replaces the placeholder's whole content with the accumulated text, so
    any observer can re-render from the latest message alone. The log is
    persisted again once the response is done, failed or cancelled.
    """

    def __init__(
        self,
        store: SessionStore,
        session_id: str,
        keep_partial_on_error: bool = KEEP_PARTIAL_ON_ERROR,
    ):
        self.store = store
        self.session_id = session_id
        self.keep_partial_on_error = keep_partial_on_error
        self.state = StreamState.IDLE
        self.content = ""
        self.message_id: str | None = None
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def begin(self) -> Message:
        if self.state is not StreamState.IDLE:
            raise RuntimeError(f"Accumulator already {self.state.value}")
        placeholder = Message(role="assistant", content="")
        self.store.append_message(self.session_id, placeholder)
        self.message_id = placeholder.id
        self.state = StreamState.SENDING
        self.store.emitter.emit(
            AssistantResponseStartEvent(session_id=self.session_id, message_id=placeholder.id)
        )
        return placeholder

    def feed(self, delta: str) -> None:
        if self.state not in (StreamState.SENDING, StreamState.STREAMING):
            raise RuntimeError(f"Cannot feed a {self.state.value} accumulator")
        self.state = StreamState.STREAMING
        self.content += delta
        self.store.update_message(self.session_id, self.message_id, content=self.content)
        self.store.emitter.emit(
            AssistantDeltaEvent(
                session_id=self.session_id,
                message_id=self.message_id,
                text=delta,
                content=self.content,
            )
        )

    def finish(self) -> Message:
        message = self.store.update_message(
            self.session_id, self.message_id, persist=True, content=self.content
        )
        self.state = StreamState.DONE
        self.store.emitter.emit(
            AssistantMessageEvent(
                session_id=self.session_id,
                message_id=self.message_id,
                content=self.content,
                status=self.state.value,
            )
        )
        return message

    def fail(self, error: Exception | str) -> Message:
        content = error_content(self.content, str(error), self.keep_partial_on_error)
        message = self.store.update_message(
            self.session_id, self.message_id, persist=True, content=content, error=True
        )
        self.state = StreamState.FAILED
        self.store.emitter.emit(ErrorEvent(message=str(error), source="stream"))
        self.store.emitter.emit(
            AssistantMessageEvent(
                session_id=self.session_id,
                message_id=self.message_id,
                content=content,
                status=self.state.value,
            )
        )
        return message

    def consume(self, deltas: Iterable[str]) -> Message:
        if self.state is StreamState.IDLE:
            self.begin()
        iterator = iter(deltas)
        try:
            for delta in iterator:
                if self.cancelled:
                    break
                if delta:
                    self.feed(delta)
        except KeyboardInterrupt:
            self.cancel()
        except ProviderError as e:
            logger.warning(f"Generation failed in session {self.session_id}: {e}")
            return self.fail(e)
        except Exception as e:
            logger.exception("Unexpected error while streaming")
            return self.fail(e)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
        if self.cancelled:
            logger.info(f"Generation cancelled in session {self.session_id}")
        return self.finish()
