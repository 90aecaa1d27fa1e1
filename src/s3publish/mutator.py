"""Read-modify-write of a shared remote object with optimistic concurrency.

Object stores have no native read-modify-write primitive. ``mutate_object``
fetches an object into a local staging file, lets the caller rewrite that
file, and publishes the result with a write conditioned on the ETag seen at
fetch time. If another publisher changed the object in between, the write is
rejected and the whole cycle starts over from the new remote state, up to a
fixed number of attempts.

Example:
    >>> def add_release():
    ...     with open(os.path.join(staging, "index.yaml"), "a") as f:
    ...         f.write("- 1.2.3\\n")
    >>> mutate_object(staging, S3ObjectStore(), "releases", "charts",
    ...               "index.yaml", add_release)
"""
from __future__ import annotations

import logging
import mimetypes
import os
import random
import tempfile
import time

from .exceptions import BackendError, ConcurrencyConflictError, MutationError
from .object_keys import build_object_key, build_staging_path
from .object_store import ObjectStoreClient
from .status_flags import (ETagIfExists, ETagValue, MutatingFunction,
                           MutationResult, WriteConflictFlag,
                           OBJECT_NOT_FOUND, WRITE_CONFLICT)

logger = logging.getLogger(__name__)

MAX_MUTATION_ATTEMPTS = 10

DEFAULT_CACHE_CONTROL = "no-cache, max-age=0, no-transform"

# Jittered exponential pause between conflicting attempts, in seconds.
CONFLICT_BACKOFF_MIN = 0.01
CONFLICT_BACKOFF_MAX = 0.2
CONFLICT_BACKOFF_GROWTH = 1.75

_CONTENT_TYPES_BY_EXTENSION = {
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".json": "application/json",
}


def content_type_for(filename: str) -> str:
    """Guess the Content-Type to publish a file with.

    YAML and JSON get fixed types (``mimetypes`` does not know YAML on every
    platform); other names go through ``mimetypes``, falling back to
    ``application/octet-stream``.
    """
    extension = os.path.splitext(filename)[1].lower()
    if extension in _CONTENT_TYPES_BY_EXTENSION:
        return _CONTENT_TYPES_BY_EXTENSION[extension]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def _write_staging_file(staging_path: str, payload: bytes) -> None:
    """Replace the staging file's contents atomically.

    Uses a temporary file and atomic rename, so the mutation never sees a
    partially written file.
    """
    dir_name = os.path.dirname(staging_path)
    fd, temp_path = tempfile.mkstemp(dir=dir_name, prefix=".__tmp__")
    try:
        with open(fd, 'wb') as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, staging_path)
    except BaseException:
        try:
            os.remove(temp_path)
        finally:
            raise


def _mutate_object_once(staging_path: str,
                        client: ObjectStoreClient,
                        bucket: str,
                        object_key: str,
                        mutation: MutatingFunction,
                        attempt: int,
                        content_type: str,
                        cache_control: str,
                        create_exclusively: bool,
                        ) -> ETagValue | None | WriteConflictFlag:
    """Run one fetch-mutate-write cycle.

    Returns:
        ETagValue | None | WriteConflictFlag: The ETag of the published
        revision, or WRITE_CONFLICT if the object changed since the fetch.

    Raises:
        MutationError: If the mutation raised.
        BackendError: If fetching, staging or writing failed.
    """
    etag: ETagIfExists | None
    try:
        payload, fetched_etag = client.get_object(bucket, object_key)
    except KeyError:
        logger.warning("Object %s does not exist yet in bucket %s",
                       object_key, bucket)
        etag = OBJECT_NOT_FOUND
    except BackendError as e:
        e.attempt = attempt
        raise
    else:
        etag = fetched_etag
        logger.info("Object %s currently has etag %s", object_key, fetched_etag)
        try:
            _write_staging_file(staging_path, payload)
        except OSError as e:
            raise BackendError(
                f"failed to write staging file {staging_path}: {e}",
                backend="filesystem", operation="write_staging_file",
                key=object_key, attempt=attempt) from e
        logger.info("Wrote %s", staging_path)

    try:
        mutation()
    except Exception as e:
        raise MutationError(object_key, attempt) from e

    try:
        with open(staging_path, 'rb') as f:
            new_payload = f.read()
    except OSError as e:
        raise BackendError(
            f"failed to open {staging_path}: {e}",
            backend="filesystem", operation="read_staging_file",
            key=object_key, attempt=attempt) from e

    if etag is OBJECT_NOT_FOUND:
        if_match = None
        if_none_match = "*" if create_exclusively else None
    else:
        # None when the store reports no ETag; the write is then unguarded.
        if_match = etag
        if_none_match = None
    try:
        return client.put_object(
            bucket, object_key, new_payload,
            content_type=content_type,
            cache_control=cache_control,
            if_match=if_match,
            if_none_match=if_none_match)
    except BackendError as e:
        e.attempt = attempt
        raise


def mutate_object(staging_dir: str,
                  client: ObjectStoreClient,
                  bucket: str,
                  object_prefix: str,
                  filename: str,
                  mutation: MutatingFunction,
                  *,
                  max_attempts: int = MAX_MUTATION_ATTEMPTS,
                  content_type: str | None = None,
                  cache_control: str = DEFAULT_CACHE_CONTROL,
                  create_exclusively: bool = True,
                  ) -> MutationResult:
    """Pull an object into a staging file, mutate it, and push it back.

    Each attempt fetches ``object_prefix/filename`` from ``bucket`` into
    ``staging_dir/filename``, runs ``mutation`` and writes the staging file
    back conditioned on the ETag observed by the fetch. When the object
    does not exist yet, whatever is already in the staging file is kept,
    and the write carries no ETag; it only requires the object to still be
    absent (``IfNoneMatch: *``) unless create_exclusively is False. When
    the conditional write loses to another publisher, the cycle is
    repeated from a fresh fetch.

    ``mutation`` may therefore run several times, each time against a
    different base state. Effects beyond the staging file (counters,
    notifications, ...) must tolerate that; this is not checked here.

    The staging file is left on disk whatever the outcome.

    Args:
        staging_dir: Writable local directory for the staging file. Created
            if it does not exist.
        client: Object store client.
        bucket: Bucket name.
        object_prefix: Key prefix of the object, may be empty.
        filename: Object key relative to the prefix; also the staging file
            name relative to staging_dir.
        mutation: Zero-argument callable that rewrites the staging file.
        max_attempts: Total number of fetch-mutate-write cycles allowed.
        content_type: Content-Type of the published object. Derived from
            filename if None.
        cache_control: Cache-Control of the published object. The default
            keeps intermediaries from serving stale copies.
        create_exclusively: If True, creating a missing object fails as a
            write conflict when another publisher created it first. If
            False, the first write to a missing object is unconditional.

    Returns:
        MutationResult: Object key, new ETag, and attempts used.

    Raises:
        ValueError: If max_attempts < 1 or filename is not a safe relative
            path.
        MutationError: If the mutation raised. Not retried.
        BackendError: If the store or the filesystem failed for any reason
            other than a missing object or a write conflict. Not retried.
        ConcurrencyConflictError: If every attempt ended in a write conflict.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    object_key = build_object_key(object_prefix, filename)
    staging_path = build_staging_path(staging_dir, filename,
                                      create_subdirs=True)
    if content_type is None:
        content_type = content_type_for(filename)

    for attempt in range(1, max_attempts + 1):
        outcome = _mutate_object_once(
            staging_path, client, bucket, object_key, mutation,
            attempt, content_type, cache_control, create_exclusively)
        if outcome is not WRITE_CONFLICT:
            logger.info("Published %s to bucket %s after %d attempt(s)",
                        object_key, bucket, attempt)
            return MutationResult(key=object_key,
                                  resulting_etag=outcome,
                                  attempts=attempt)
        logger.warning("Write conflict on %s (attempt %d of %d)",
                       object_key, attempt, max_attempts)
        if attempt < max_attempts:
            time.sleep(random.uniform(CONFLICT_BACKOFF_MIN, CONFLICT_BACKOFF_MAX)
                       * (CONFLICT_BACKOFF_GROWTH ** (attempt - 1)))

    raise ConcurrencyConflictError(object_key, max_attempts)
