"""In-memory object store with S3-like conditional writes.

LocalObjectStore mirrors the S3ObjectStore contract without any network I/O.
It is useful for tests, dry runs, and for sharing one store between threads
that race on the same object.
"""
from __future__ import annotations

import threading
from typing import Optional

from parameterizable import ParameterizableClass

from .status_flags import ETagValue, WriteConflictFlag, WRITE_CONFLICT


class _RAMBucket:
    """One bucket: object key -> (payload, etag, metadata)."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, ETagValue, dict[str, str]]] = {}


class _RAMBackend:
    """All state of an in-memory store: buckets, ETag counter and lock.

    Stores rebuilt from another store's get_params() receive the same
    backend instance, so they see the same objects, draw ETags from the
    same counter and serialize conditional writes on the same lock. An
    ETag is therefore never issued twice within one backend.

    Attributes:
        buckets: Bucket name -> _RAMBucket. Buckets are created on
            first write.
        lock: Guards buckets and etag_counter.
        etag_counter: Number of ETags issued so far.
    """

    def __init__(self):
        self.buckets: dict[str, _RAMBucket] = {}
        self.lock = threading.Lock()
        self.etag_counter = 0

    def next_etag(self) -> ETagValue:
        """Issue a new ETag. Must be called with lock held."""
        self.etag_counter += 1
        return ETagValue(f'"{self.etag_counter:08x}"')


class LocalObjectStore(ParameterizableClass):
    """ObjectStoreClient that keeps objects in process memory.

    Every write gets a new ETag from a backend-wide counter, so writing the
    same bytes twice still produces two distinct revisions. Conditional
    writes are checked and applied under the backend's lock, which makes the
    store safe to share across threads and across twins built from
    get_params().

    Notes:
        - Buckets are created on first write.
        - Memory-only: all data is lost when the backend is discarded.
    """

    def __init__(self, backend: Optional[_RAMBackend] = None):
        """Initialize the store.

        Args:
            backend: Optional existing backend to share. If None, the
                store starts empty.
        """
        self._backend = backend if backend is not None else _RAMBackend()
        ParameterizableClass.__init__(self)

    def get_params(self):
        """Return constructor parameters needed to recreate this instance.

        The backend is included as a reference; a store rebuilt from these
        parameters shares the same objects, lock and ETag counter.
        """
        return dict(backend=self._backend)

    @staticmethod
    def base_url(bucket: str) -> str:
        return f"memory://{bucket}/"

    def get_object(self, bucket: str, key: str
                   ) -> tuple[bytes, ETagValue | None]:
        """Return the payload and ETag of an object.

        Raises:
            KeyError: If the bucket or object does not exist.
        """
        with self._backend.lock:
            ram_bucket = self._backend.buckets.get(bucket)
            if ram_bucket is None or key not in ram_bucket.objects:
                raise KeyError(key)
            payload, etag, _ = ram_bucket.objects[key]
            return payload, etag

    def metadata(self, bucket: str, key: str) -> dict[str, str]:
        """Return the transport metadata stored with an object.

        Raises:
            KeyError: If the bucket or object does not exist.
        """
        with self._backend.lock:
            ram_bucket = self._backend.buckets.get(bucket)
            if ram_bucket is None or key not in ram_bucket.objects:
                raise KeyError(key)
            return dict(ram_bucket.objects[key][2])

    def keys(self, bucket: str) -> list[str]:
        """Return all object keys of a bucket, sorted."""
        with self._backend.lock:
            ram_bucket = self._backend.buckets.get(bucket)
            if ram_bucket is None:
                return []
            return sorted(ram_bucket.objects)

    def put_object(self, bucket: str, key: str, payload: bytes, *,
                   content_type: str | None = None,
                   cache_control: str | None = None,
                   if_match: ETagValue | None = None,
                   if_none_match: str | None = None,
                   ) -> ETagValue | None | WriteConflictFlag:
        """Store an object, optionally only if its ETag equals ``if_match``.

        A write conditioned on an ETag fails with WRITE_CONFLICT both when
        the ETag is stale and when the object no longer exists, as S3 does.
        A write with ``if_none_match="*"`` fails with WRITE_CONFLICT when the
        object already exists.

        Returns:
            ETagValue | WriteConflictFlag: The new ETag, or WRITE_CONFLICT.
        """
        metadata = {}
        if content_type is not None:
            metadata['ContentType'] = content_type
        if cache_control is not None:
            metadata['CacheControl'] = cache_control

        with self._backend.lock:
            ram_bucket = self._backend.buckets.get(bucket)
            if ram_bucket is None:
                ram_bucket = _RAMBucket()
                self._backend.buckets[bucket] = ram_bucket
            current = ram_bucket.objects.get(key)
            if if_match is not None and (
                    current is None or current[1] != if_match):
                return WRITE_CONFLICT
            if if_none_match == "*" and current is not None:
                return WRITE_CONFLICT
            etag = self._backend.next_etag()
            ram_bucket.objects[key] = (bytes(payload), etag, metadata)
            return etag
