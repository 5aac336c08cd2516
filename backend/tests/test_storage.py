import os

import pytest

from vaultshare.core.exceptions import BlobNotFound
from vaultshare.services.storage import LocalBlobStore, new_blob_key


def test_blob_key_extension():
    assert new_blob_key("application/pdf").endswith(".pdf")
    assert "." not in new_blob_key(None)


def test_local_store_round_trip(tmp_path):
    store = LocalBlobStore([str(tmp_path / "a"), str(tmp_path / "b")])
    key = store.put(b"bytes", "text/plain")
    assert store.get(key) == b"bytes"
    located = [p for p in ("a", "b") if os.path.isfile(tmp_path / p / key)]
    assert len(located) == 1
    assert not any(name.endswith(".part") for name in os.listdir(tmp_path / located[0]))

    store.delete(key)
    with pytest.raises(BlobNotFound):
        store.get(key)
    with pytest.raises(BlobNotFound):
        store.delete(key)


def test_local_store_finds_blobs_in_any_root(tmp_path):
    (tmp_path / "old").mkdir()
    (tmp_path / "old" / "legacy.bin").write_bytes(b"legacy")
    store = LocalBlobStore([str(tmp_path / "new"), str(tmp_path / "old")])
    assert store.get("legacy.bin") == b"legacy"


@pytest.mark.parametrize("key", ["../secret", "sub/dir.txt", "", ".."])
def test_local_store_rejects_paths(tmp_path, key):
    store = LocalBlobStore([str(tmp_path)])
    with pytest.raises(BlobNotFound):
        store.get(key)


def test_local_store_needs_a_path():
    with pytest.raises(ValueError):
        LocalBlobStore([])
