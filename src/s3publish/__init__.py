"""Publish release artifacts to S3-compatible object stores.

This package uploads release directories to a bucket and safely mutates
shared objects (such as a Helm repository ``index.yaml``) that several
publishers may update at the same time.

Functions:
    mutate_object(): Fetch an object into a local staging file, let a
        callback rewrite it, and publish it with an ETag-conditioned write,
        retrying from a fresh fetch when another publisher got there first.
    publish_archive(): Upload a release directory under a version prefix
        and write alias objects pointing at the version.
    fetch_object(): Download the payload of one object.
    split_bucket_ref(): Split ``bucket/prefix`` into its two parts.

Classes:
    S3ObjectStore: Object store client backed by boto3.
    LocalObjectStore: In-memory object store with the same contract,
        useful for tests and dry runs.
    ReleaseManifest: Version and local directory of a release.
    MutationResult: Outcome of a successful mutate_object call.

Constants:
    OBJECT_NOT_FOUND, WRITE_CONFLICT: Status flags used by store clients.
    MAX_MUTATION_ATTEMPTS: Default bound on fetch-mutate-write cycles.

Note:
    Authentication is left to boto3's standard credential chain.
"""
from ._version_info import __version__
from .exceptions import ConcurrencyConflictError, MutationError, BackendError
from .status_flags import (StatusFlag, ObjectNotFoundFlag, WriteConflictFlag,
                           OBJECT_NOT_FOUND, WRITE_CONFLICT, ETagValue,
                           MutatingFunction, MutationResult)
from .object_store import (ObjectStoreClient, S3ObjectStore,
                           not_found_error, precondition_failed_error)
from .local_object_store import LocalObjectStore
from .mutator import (mutate_object, content_type_for,
                      MAX_MUTATION_ATTEMPTS, DEFAULT_CACHE_CONTROL)
from .publish import (ReleaseManifest, split_bucket_ref, publish_archive,
                      fetch_object)

__all__ = [
    "__version__",
    "ConcurrencyConflictError",
    "MutationError",
    "BackendError",
    "StatusFlag",
    "ObjectNotFoundFlag",
    "WriteConflictFlag",
    "OBJECT_NOT_FOUND",
    "WRITE_CONFLICT",
    "ETagValue",
    "MutatingFunction",
    "MutationResult",
    "ObjectStoreClient",
    "S3ObjectStore",
    "LocalObjectStore",
    "not_found_error",
    "precondition_failed_error",
    "mutate_object",
    "content_type_for",
    "MAX_MUTATION_ATTEMPTS",
    "DEFAULT_CACHE_CONTROL",
    "ReleaseManifest",
    "split_bucket_ref",
    "publish_archive",
    "fetch_object",
]
