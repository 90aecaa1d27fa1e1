"""Custom exception types for the s3publish error-handling taxonomy.

Defines three exception classes:

- ``ConcurrencyConflictError``: conditional writes kept losing to
  concurrent publishers until the attempt budget ran out.
- ``MutationError``: the caller-supplied mutation failed.
- ``BackendError``: object store or filesystem failure (not missing-object).
"""

from __future__ import annotations

from typing import Any


class ConcurrencyConflictError(RuntimeError):
    """A mutation failed after exhausting attempts due to write conflicts.

    Distinct from a single conflict (which is retried internally), so callers
    can alert on sustained contention.

    Args:
        key: The object key on which the conflicts occurred.
        attempts: Total number of attempts made before giving up.

    Attributes:
        key: The object key on which the conflicts occurred.
        attempts: Total number of attempts made before giving up.
    """

    def __init__(self, key: Any, attempts: int) -> None:
        super().__init__(
            f"max conflicts reached: mutation failed after {attempts} "
            f"attempt(s) for object {key!r}")
        self.key = key
        self.attempts = attempts


class MutationError(RuntimeError):
    """The mutation function raised while working on the staging file.

    Always raised with exception chaining, so the original error is
    available as ``__cause__``.

    Args:
        key: The object key being mutated.
        attempt: The attempt (1-based) during which the mutation failed.

    Attributes:
        key: The object key being mutated.
        attempt: The attempt during which the mutation failed.
    """

    def __init__(self, key: Any, attempt: int) -> None:
        super().__init__(
            f"mutation of object {key!r} failed on attempt {attempt}")
        self.key = key
        self.attempt = attempt


class BackendError(RuntimeError):
    """A backend/infrastructure condition prevents completion.

    Not a missing-object condition; those are ``KeyError``. Must be raised
    with exception chaining (``raise BackendError(...) from exc``).

    Args:
        message: Human-readable description of the failure.
        backend: Name of the backend (e.g. ``"s3"``, ``"memory"``,
            ``"filesystem"``).
        operation: Name of the operation that failed (e.g. ``"get_object"``,
            ``"put_object"``, ``"read_staging_file"``).
        key: The object key involved, or ``None`` if not applicable.
        attempt: The mutation attempt during which the failure happened,
            or ``None`` outside of a mutation.

    Attributes:
        backend: Name of the backend.
        operation: Name of the failed operation.
        key: The object key involved, or ``None``.
        attempt: The mutation attempt, or ``None``.
    """

    def __init__(
            self,
            message: str,
            *,
            backend: str,
            operation: str,
            key: Any = None,
            attempt: int | None = None,
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.operation = operation
        self.key = key
        self.attempt = attempt
