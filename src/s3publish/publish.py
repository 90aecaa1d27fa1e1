"""Publishing of release archives to an object store.

A release is a local output directory plus a version string. Every file of
the directory is uploaded under ``<prefix>/<version>/``, then alias objects
(``latest``, ``1.2-dev``, ...) whose body is the version string are written
next to the version folders, acting as symlinks to the newest release.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Optional

from .exceptions import BackendError
from .mutator import content_type_for
from .object_keys import build_object_key
from .object_store import ObjectStoreClient, S3ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseManifest:
    """The part of a release manifest the publisher needs.

    Attributes:
        version: Release version, used as the object folder name and as the
            body of alias objects.
        directory: Local directory holding the built release artifacts.
    """
    version: str
    directory: str


def split_bucket_ref(bucket_ref: str) -> tuple[str, str]:
    """Split ``bucket/folder/subfolder`` into bucket name and key prefix.

    Args:
        bucket_ref: Bucket name, optionally followed by ``/`` and a prefix.
            A leading ``s3://`` is accepted and ignored.

    Returns:
        tuple[str, str]: Bucket name and prefix (empty if none was given).

    Raises:
        ValueError: If the bucket name is empty.
    """
    if bucket_ref.startswith("s3://"):
        bucket_ref = bucket_ref[len("s3://"):]
    bucket_name, _, object_prefix = bucket_ref.partition("/")
    if not bucket_name:
        raise ValueError(f"No bucket name in {bucket_ref!r}")
    return bucket_name, object_prefix.strip("/")


def _iter_release_files(directory: str) -> Iterable[tuple[str, str]]:
    """Yield (absolute path, ``/``-separated relative path) pairs, sorted."""
    for dir_path, dir_names, file_names in os.walk(directory):
        dir_names.sort()
        for file_name in sorted(file_names):
            full_path = os.path.join(dir_path, file_name)
            relative_path = os.path.relpath(full_path, directory)
            yield full_path, relative_path.replace(os.sep, "/")


def publish_archive(manifest: ReleaseManifest,
                    bucket_ref: str,
                    aliases: Iterable[str] = (),
                    client: Optional[ObjectStoreClient] = None) -> list[str]:
    """Publish the release directory and its aliases to a bucket.

    Uploads are unconditional: a release folder belongs to one version and
    re-publishing it overwrites the same content.

    Args:
        manifest: Version and local directory of the release.
        bucket_ref: ``bucket`` or ``bucket/prefix`` to publish into.
        aliases: Names of alias objects to point at this version.
        client: Object store client. A default S3ObjectStore is created
            if None.

    Returns:
        list[str]: Object keys written, release files first, then aliases.

    Raises:
        BackendError: If the release directory is missing, a file cannot be
            read, or the store rejects a write.
    """
    if client is None:
        client = S3ObjectStore()
    bucket_name, object_prefix = split_bucket_ref(bucket_ref)

    if not os.path.isdir(manifest.directory):
        raise BackendError(
            f"failed to walk directory {manifest.directory}: not a directory",
            backend="filesystem", operation="walk")

    written = []
    for full_path, relative_path in _iter_release_files(manifest.directory):
        object_key = build_object_key(
            object_prefix, manifest.version, relative_path)
        try:
            with open(full_path, 'rb') as f:
                payload = f.read()
        except OSError as e:
            raise BackendError(
                f"failed to open {full_path}: {e}",
                backend="filesystem", operation="read_release_file",
                key=object_key) from e
        client.put_object(bucket_name, object_key, payload,
                          content_type=content_type_for(relative_path))
        logger.info("Wrote %s to s3://%s/%s", full_path, bucket_name, object_key)
        written.append(object_key)

    for alias in aliases:
        object_key = build_object_key(object_prefix, alias)
        client.put_object(bucket_name, object_key,
                          manifest.version.encode('utf-8'),
                          content_type="text/plain")
        logger.info("Wrote %s to s3://%s/%s", alias, bucket_name, object_key)
        written.append(object_key)

    return written


def fetch_object(client: ObjectStoreClient, bucket: str,
                 object_prefix: str, filename: str) -> bytes:
    """Return the payload of ``object_prefix/filename`` in ``bucket``.

    Raises:
        KeyError: If the object does not exist.
        BackendError: On any other store failure.
    """
    payload, _ = client.get_object(
        bucket, build_object_key(object_prefix, filename))
    return payload
