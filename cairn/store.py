"""Bucket-scoped object storage: put, get, list and delete of opaque blobs."""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass
from typing import BinaryIO, Protocol

_DEFAULT_STORAGE_CLASS = "STANDARD"


class StoreError(Exception):
    """An object storage operation failed."""


@dataclass(frozen=True)
class ListedObject:
    """One row of a prefix listing."""

    key: str
    size: int = 0
    storage_class: str = ""


class ObjectStore(Protocol):
    """The object-level operations cairn needs from a bucket."""

    def put_object(self, key: str, body, storage_class: str = "") -> None:
        """Store ``body`` (bytes or a binary stream) under ``key``."""

    def get_object(self, key: str) -> BinaryIO:
        """Return a readable binary stream with the object's content."""

    def delete_object(self, key: str) -> None:
        """Remove ``key``."""

    def list_prefix(self, prefix: str) -> list[ListedObject]:
        """List every object whose key starts with ``prefix``."""


def _read_body(body) -> bytes:
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        raise TypeError("object body must be bytes or a binary stream, not str")
    data = body.read()
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("object body stream must yield bytes")
    return bytes(data)


class MemoryStore:
    """An in-memory bucket with the same semantics as the remote store.

    Listings come back in lexicographic key order; deleting a missing key
    is not an error; objects stored without a storage class report STANDARD.
    """

    def __init__(self, bucket: str):
        if not bucket:
            raise StoreError("store: empty bucket")
        self.bucket = bucket
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put_object(self, key: str, body, storage_class: str = "") -> None:
        """Store ``body`` under ``key``, replacing any previous object."""
        try:
            data = _read_body(body)
        except OSError as exc:
            raise StoreError(f"store put_object: {exc}") from exc
        with self._lock:
            self._objects[key] = (data, storage_class or _DEFAULT_STORAGE_CLASS)

    def get_object(self, key: str) -> BinaryIO:
        """Return a stream over the object's bytes."""
        with self._lock:
            entry = self._objects.get(key)
        if entry is None:
            raise StoreError(f"store get_object: no such key {key!r}")
        return io.BytesIO(entry[0])

    def delete_object(self, key: str) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._objects.pop(key, None)

    def list_prefix(self, prefix: str) -> list[ListedObject]:
        """List objects under ``prefix`` in key order."""
        with self._lock:
            items = sorted(self._objects.items())
        return [
            ListedObject(key=key, size=len(data), storage_class=storage_class)
            for key, (data, storage_class) in items
            if key.startswith(prefix)
        ]