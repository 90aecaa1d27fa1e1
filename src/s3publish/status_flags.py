"""Singleton status flags and result types for object mutation.

Status flags:
    - OBJECT_NOT_FOUND: the remote object does not exist (yet).
    - WRITE_CONFLICT: a conditional write was rejected because the
      object's ETag no longer matches the expected one.

Protocols:
    - MutatingFunction: zero-argument callback that rewrites a staging file.

Result dataclasses:
    - MutationResult: result of mutate_object.
"""
from dataclasses import dataclass
from typing import Final, NewType, Protocol, TypeAlias, runtime_checkable

from mixinforge import SingletonMixin


class StatusFlag(SingletonMixin):
    """Base class for process status flags.

    Subclasses represent status flags that can be used to control
    processing flow in various contexts.
    """
    pass


class ObjectNotFoundFlag(StatusFlag):
    """Sentinel indicating that the remote object is not present.

    Used as the ETag of an object that has never been written: a write
    based on this flag carries no IfMatch, only (optionally) IfNoneMatch.

    Note:
        This is a singleton class; constructing it repeatedly returns the same
        instance.
    """
    pass


class WriteConflictFlag(StatusFlag):
    """Flag indicating that a conditional write lost a race.

    Returned by object store clients instead of raising, because conflicts
    are an expected outcome under contention and trigger a retry.

    Note:
        This is a singleton class; constructing it repeatedly returns the same
        instance.
    """
    pass


ETagValue = NewType("ETagValue", str)
"""Type for ETag string values."""

ETagIfExists: TypeAlias = ETagValue | ObjectNotFoundFlag
"""ETag value or OBJECT_NOT_FOUND if the object is absent."""


@runtime_checkable
class MutatingFunction(Protocol):
    """Protocol for mutate_object callbacks.

    A MutatingFunction takes no arguments; it reads and rewrites the staging
    file in place. It may run several times during one mutate_object call,
    each time against a freshly fetched base state, so any effect beyond the
    staging file must tolerate repetition.
    """

    def __call__(self) -> object: ...


@dataclass(frozen=True)
class MutationResult:
    """Result of a successful mutate_object call.

    Attributes:
        key: Full object key that was written.
        resulting_etag: ETag reported by the store for the new revision,
            or None if the store did not report one.
        attempts: Number of fetch-mutate-write cycles it took.
    """
    key: str
    resulting_etag: ETagValue | None
    attempts: int


# --- Singleton constant instances ---

OBJECT_NOT_FOUND: Final[ObjectNotFoundFlag] = ObjectNotFoundFlag()
"""Sentinel: the remote object is not present."""

WRITE_CONFLICT: Final[WriteConflictFlag] = WriteConflictFlag()
"""Flag: the conditional write was rejected, the object changed meanwhile."""
