import json

from palaver.sessions.migrate import migrate_legacy_messages
from palaver.sessions.schema import MIGRATED_TITLE, ChatSession
from palaver.sessions.store import SessionStore
from palaver.storage.keys import LEGACY_MESSAGES_KEY, SESSIONS_KEY

LEGACY = [
    {"id": "m1", "role": "user", "content": "hello", "timestamp": "2024-01-02T03:04:05Z"},
    {"id": "m2", "role": "assistant", "content": "hi there", "timestamp": "2024-01-02T03:04:09Z"},
]


def test_legacy_list_becomes_migrated_session(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, json.dumps(LEGACY))

    sid = migrate_legacy_messages(storage, store)

    session = store.require(sid)
    assert session.title == MIGRATED_TITLE
    assert [m.id for m in session.messages] == ["m1", "m2"]
    assert session.created_at == session.messages[0].timestamp
    assert store.current_session_id == sid
    assert kv.get(LEGACY_MESSAGES_KEY) is None
    assert sid in json.loads(kv.get(SESSIONS_KEY))


def test_migration_is_idempotent(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, json.dumps(LEGACY))
    migrate_legacy_messages(storage, store)
    snapshot = kv.get(SESSIONS_KEY)

    assert migrate_legacy_messages(storage, store) is None
    assert kv.get(SESSIONS_KEY) == snapshot
    assert len(store) == 1


def test_migrated_session_is_prepended_to_existing_sessions(kv, storage, store):
    store.register_session(ChatSession(id="existing"))
    kv.set(LEGACY_MESSAGES_KEY, json.dumps(LEGACY))

    sid = migrate_legacy_messages(storage, store)

    assert store.flat_order() == [sid, "existing"]


def test_empty_legacy_list_is_removed_without_session(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, "[]")
    assert migrate_legacy_messages(storage, store) is None
    assert kv.get(LEGACY_MESSAGES_KEY) is None
    assert len(store) == 0


def test_unreadable_legacy_value_is_discarded(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, "not json at all")
    assert migrate_legacy_messages(storage, store) is None
    assert kv.get(LEGACY_MESSAGES_KEY) is None


def test_invalid_legacy_message_discards_list(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, json.dumps([{"role": "robot", "content": "?"}]))
    assert migrate_legacy_messages(storage, store) is None
    assert kv.get(LEGACY_MESSAGES_KEY) is None
    assert len(store) == 0


def test_multipart_content_is_flattened(kv, storage, store):
    kv.set(
        LEGACY_MESSAGES_KEY,
        json.dumps(
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "what is this?"},
                        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AA"}},
                    ],
                }
            ]
        ),
    )

    sid = migrate_legacy_messages(storage, store)

    message = store.messages(sid)[0]
    assert message.content == "what is this?"
    assert message.images == ["data:image/png;base64,AA"]


def test_migration_survives_reload(kv, storage, store):
    kv.set(LEGACY_MESSAGES_KEY, json.dumps(LEGACY))
    sid = migrate_legacy_messages(storage, store)

    reloaded = SessionStore.load(storage)
    assert reloaded.current_session_id == sid
    assert [m.content for m in reloaded.messages(sid)] == ["hello", "hi there"]
