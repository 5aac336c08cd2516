"""
Blob storage collaborators.

A blob store keeps file bytes under opaque keys. The access-control code
only needs put/get/delete; where the bytes live is the store's business.
"""
import logging
import mimetypes
import os
import shutil
import threading
import uuid
from typing import Dict, List, Optional

from vaultshare.core.exceptions import BlobNotFound, UpstreamFailure

logger = logging.getLogger(__name__)


def new_blob_key(content_type: Optional[str]) -> str:
    extension = mimetypes.guess_extension(content_type or "") or ""
    return f"{uuid.uuid4().hex}{extension}"


class BlobStore:
    name = "blob"

    def put(self, data: bytes, content_type: Optional[str]) -> str:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Blobs as plain files spread over one or more storage directories."""

    name = "local"

    def __init__(self, storage_paths: List[str]):
        if not storage_paths:
            raise ValueError("No storage paths configured.")
        self.storage_paths = list(storage_paths)
        for path in self.storage_paths:
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                logger.warning("Could not create storage path %s: %s", path, e)

    def _best_storage_path(self) -> str:
        """Selects the storage path with the most available space."""
        best_path = None
        max_free_space = -1

        for path in self.storage_paths:
            try:
                usage = shutil.disk_usage(path)
            except OSError as e:
                logger.warning("Could not check disk usage for path %s: %s", path, e)
                continue
            if usage.free > max_free_space:
                max_free_space = usage.free
                best_path = path

        if best_path is None:
            raise UpstreamFailure("No usable storage paths found.")
        return best_path

    def _locate(self, key: str) -> str:
        if os.path.basename(key) != key or key in ("", ".", ".."):
            raise BlobNotFound(key)
        for path in self.storage_paths:
            candidate = os.path.join(path, key)
            if os.path.isfile(candidate):
                return candidate
        raise BlobNotFound(key)

    def put(self, data: bytes, content_type: Optional[str]) -> str:
        key = new_blob_key(content_type)
        final_path = os.path.join(self._best_storage_path(), key)
        temp_path = f"{final_path}.part"
        try:
            with open(temp_path, "wb") as buffer:
                buffer.write(data)
            os.replace(temp_path, final_path)
        except OSError as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise UpstreamFailure(f"Failed to store blob: {e}") from e
        return key

    def get(self, key: str) -> bytes:
        path = self._locate(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise BlobNotFound(key)
        except OSError as e:
            raise UpstreamFailure(f"Failed to read blob {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._locate(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            raise BlobNotFound(key)
        except OSError as e:
            raise UpstreamFailure(f"Failed to delete blob {key}: {e}") from e


class MemoryBlobStore(BlobStore):
    name = "memory"

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, content_type: Optional[str]) -> str:
        key = new_blob_key(content_type)
        with self._lock:
            self._blobs[key] = bytes(data)
        return key

    def get(self, key: str) -> bytes:
        with self._lock:
            if key not in self._blobs:
                raise BlobNotFound(key)
            return self._blobs[key]

    def delete(self, key: str) -> None:
        with self._lock:
            if self._blobs.pop(key, None) is None:
                raise BlobNotFound(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs
