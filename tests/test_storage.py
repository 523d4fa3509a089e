from __future__ import annotations

import pytest

from pdfformkit.storage import EncryptedFileStore, MemoryStore, StorageError, read_json, write_json


def test_memory_store_round_trip():
    store = MemoryStore()

    store.set("k", b"v")
    assert store.get("k") == b"v"
    assert store.keys() == ["k"]

    store.remove("k")
    store.remove("k")
    assert store.get("k") is None


def test_json_helpers_tolerate_garbage():
    store = MemoryStore({"bad": b"\xff\xfe not json"})

    assert read_json(store, "bad", {"fallback": True}) == {"fallback": True}
    assert read_json(store, "missing", []) == []

    write_json(store, "good", {"naïve": [1, 2]})
    assert read_json(store, "good") == {"naïve": [1, 2]}


def test_encrypted_store_persists_across_instances(tmp_path):
    first = EncryptedFileStore("hunter2", tmp_path)
    first.set("pdf-session", b"secret bytes")

    assert b"secret bytes" not in b"".join(p.read_bytes() for p in tmp_path.glob("*.enc"))

    second = EncryptedFileStore("hunter2", tmp_path)
    assert second.get("pdf-session") == b"secret bytes"
    assert second.get("other") is None


def test_encrypted_store_wrong_password(tmp_path):
    EncryptedFileStore("right", tmp_path).set("key", b"value")

    with pytest.raises(StorageError):
        EncryptedFileStore("wrong", tmp_path).get("key")


def test_encrypted_store_remove_and_wipe(tmp_path):
    store = EncryptedFileStore("pw", tmp_path)
    store.set("a", b"1")
    store.set("b", b"2")

    store.remove("a")
    assert store.get("a") is None
    assert store.get("b") == b"2"

    store.delete_all_data()
    assert list(tmp_path.iterdir()) == []
