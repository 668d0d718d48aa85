from pathlib import Path

import pytest

from palaver.storage.kv import (
    FileKeyValueStore,
    JsonStorage,
    MemoryKeyValueStore,
    StorageQuotaError,
)


def test_missing_key_reads_as_none(storage):
    assert storage.get_text("nope") is None
    assert storage.get_json("nope") is None


def test_json_round_trip_keeps_unicode(storage, kv):
    assert storage.set_json("k", {"title": "Café ☕", "n": [1, 2]})
    assert "☕" in kv.get("k")
    assert storage.get_json("k") == {"title": "Café ☕", "n": [1, 2]}


def test_corrupt_json_reads_as_absent(storage, kv):
    kv.set("k", "{not json")
    assert storage.get_json("k") is None


def test_validator_rejects_wrong_shape(storage):
    storage.set_json("k", [1, 2, 3])
    assert storage.get_json("k", validate=lambda d: isinstance(d, dict)) is None


def test_memory_quota_reports_failure_without_raising():
    kv = MemoryKeyValueStore(quota_bytes=10)
    storage = JsonStorage(kv)

    assert storage.set_text("a", "12345")
    assert not storage.set_text("b", "1234567")
    assert kv.get("b") is None
    # overwriting a key only counts the new value
    assert storage.set_text("a", "1234567890")


def test_memory_store_raises_quota_error_directly():
    kv = MemoryKeyValueStore(quota_bytes=3)
    with pytest.raises(StorageQuotaError):
        kv.set("k", "abcd")


def test_file_store_persists_across_instances(tmp_path: Path):
    first = FileKeyValueStore(tmp_path / "store")
    first.set("palaver-sessions", '{"a": 1}')

    second = FileKeyValueStore(tmp_path / "store")
    assert second.get("palaver-sessions") == '{"a": 1}'
    assert (tmp_path / "store" / "palaver-sessions.val").exists()


def test_file_store_remove_is_idempotent(tmp_path: Path):
    kv = FileKeyValueStore(tmp_path)
    kv.set("k", "v")
    kv.remove("k")
    kv.remove("k")
    assert kv.get("k") is None


def test_file_store_quota(tmp_path: Path):
    kv = FileKeyValueStore(tmp_path, quota_bytes=8)
    kv.set("a", "1234")
    with pytest.raises(StorageQuotaError):
        kv.set("b", "12345")
    kv.set("a", "12345678")
    assert kv.get("a") == "12345678"


def test_file_store_sanitizes_key(tmp_path: Path):
    kv = FileKeyValueStore(tmp_path)
    kv.set("chat/1:draft", "v")
    assert kv.get("chat/1:draft") == "v"
    assert list(tmp_path.glob("*.val")) == [tmp_path / "chat_1_draft.val"]
