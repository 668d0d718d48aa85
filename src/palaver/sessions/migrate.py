"""Upgrade the single flat message list of early versions to the session map.

Early releases stored one conversation under ``LEGACY_MESSAGES_KEY``. On the
first start of a multi-session build that list becomes one session titled
``MIGRATED_TITLE`` and the legacy key is deleted, so the upgrade happens at
most once per data directory. An unreadable legacy value is deleted as well:
it would fail the same way on every start.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from common.jsonio import parse_json
from palaver.sessions.schema import MIGRATED_TITLE, ChatSession, Message, utc_now
from palaver.sessions.store import SessionStore
from palaver.storage.keys import LEGACY_MESSAGES_KEY
from palaver.storage.kv import JsonStorage

logger = logging.getLogger(__name__)


def _coerce_legacy_message(raw: Any) -> Message:
    if not isinstance(raw, dict):
        raise ValueError(f"legacy message is not an object: {type(raw).__name__}")
    data = dict(raw)
    content = data.get("content")
    if isinstance(content, list):
        texts: list[str] = []
        urls: list[str] = []
        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get("type") == "text" and part.get("text"):
                texts.append(part["text"])
            elif part.get("type") == "image_url":
                url = (part.get("image_url") or {}).get("url")
                if url:
                    urls.append(url)
        data["content"] = "\n".join(texts)
        data["images"] = list(data.get("images") or []) + urls or None
    elif content is None:
        data["content"] = ""
    return Message.model_validate(data)


def migrate_legacy_messages(storage: JsonStorage, store: SessionStore) -> str | None:
    raw = storage.get_text(LEGACY_MESSAGES_KEY)
    if raw is None:
        return None

    data = parse_json(raw)
    if not isinstance(data, list):
        logger.warning("Legacy message list is unreadable; discarding it")
        storage.remove(LEGACY_MESSAGES_KEY)
        return None

    if not data:
        storage.remove(LEGACY_MESSAGES_KEY)
        return None

    try:
        messages = [_coerce_legacy_message(item) for item in data]
    except (ValidationError, ValueError) as e:
        logger.warning(f"Legacy message list could not be migrated; discarding it: {e}")
        storage.remove(LEGACY_MESSAGES_KEY)
        return None

    created = messages[0].timestamp if messages else utc_now()
    session = ChatSession(
        title=MIGRATED_TITLE,
        messages=messages,
        created_at=created,
        updated_at=utc_now(),
    )
    store.register_session(session)
    storage.remove(LEGACY_MESSAGES_KEY)
    logger.info(f"Migrated {len(messages)} legacy messages into session {session.id}")
    return session.id
