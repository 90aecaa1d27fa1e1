"""Non-conflict failures surface immediately, without retry.

Store errors other than a missing object, filesystem errors on the staging
file and exceptions raised by the mutation all end the call on the attempt
where they happen.
"""

import pytest

from s3publish import (BackendError, LocalObjectStore, MutationError,
                       WRITE_CONFLICT, mutate_object)


class _FailingGetStore(LocalObjectStore):
    def get_object(self, bucket, key):
        raise BackendError("access denied", backend="memory",
                           operation="get_object", key=key)


class _FailingPutStore(LocalObjectStore):
    put_count = 0

    def put_object(self, bucket, key, payload, **kwargs):
        self.put_count += 1
        raise BackendError("access denied", backend="memory",
                           operation="put_object", key=key)


def test_get_failure_is_not_retried(tmp_path, no_backoff):
    calls = []

    with pytest.raises(BackendError) as exc_info:
        mutate_object(str(tmp_path), _FailingGetStore(), "releases", "",
                      "index.yaml", lambda: calls.append(1))

    assert calls == []
    assert exc_info.value.operation == "get_object"
    assert exc_info.value.attempt == 1


def test_put_failure_is_not_retried(tmp_path, no_backoff):
    store = _FailingPutStore()
    calls = []

    def mutation():
        calls.append(1)
        (tmp_path / "index.yaml").write_text("x")

    with pytest.raises(BackendError) as exc_info:
        mutate_object(str(tmp_path), store, "releases", "", "index.yaml",
                      mutation)

    assert calls == [1]
    assert store.put_count == 1
    assert exc_info.value.operation == "put_object"
    assert exc_info.value.attempt == 1


def test_put_failure_after_conflict_reports_its_attempt(tmp_path, no_backoff):
    class _ConflictThenFailStore(LocalObjectStore):
        put_count = 0

        def put_object(self, bucket, key, payload, **kwargs):
            self.put_count += 1
            if self.put_count == 1:
                return WRITE_CONFLICT
            raise BackendError("throttled", backend="memory",
                               operation="put_object", key=key)

    (tmp_path / "index.yaml").write_text("x")

    with pytest.raises(BackendError) as exc_info:
        mutate_object(str(tmp_path), _ConflictThenFailStore(), "releases", "",
                      "index.yaml", lambda: None)

    assert exc_info.value.attempt == 2


def test_unexpected_get_exception_propagates_unchanged(tmp_path):
    class _BrokenStore(LocalObjectStore):
        def get_object(self, bucket, key):
            raise ConnectionError("boom")

    with pytest.raises(ConnectionError):
        mutate_object(str(tmp_path), _BrokenStore(), "releases", "",
                      "index.yaml", lambda: None)


def test_mutation_error_is_chained(tmp_path, recording_store):
    def mutation():
        raise ValueError("cannot parse index")

    with pytest.raises(MutationError) as exc_info:
        mutate_object(str(tmp_path), recording_store, "releases", "charts",
                      "index.yaml", mutation)

    err = exc_info.value
    assert isinstance(err.__cause__, ValueError)
    assert err.key == "charts/index.yaml"
    assert err.attempt == 1
    assert recording_store.put_calls == []


def test_mutation_runs_once_when_it_fails(tmp_path, recording_store):
    calls = []

    def mutation():
        calls.append(1)
        raise RuntimeError("nope")

    with pytest.raises(MutationError):
        mutate_object(str(tmp_path), recording_store, "releases", "",
                      "index.yaml", mutation)

    assert calls == [1]
    assert len(recording_store.get_calls) == 1


def test_missing_staging_file_is_backend_error(tmp_path, recording_store):
    """Object absent and the mutation creates no staging file."""
    with pytest.raises(BackendError) as exc_info:
        mutate_object(str(tmp_path), recording_store, "releases", "",
                      "index.yaml", lambda: None)

    err = exc_info.value
    assert err.backend == "filesystem"
    assert err.operation == "read_staging_file"
    assert err.key == "index.yaml"
    assert isinstance(err.__cause__, OSError)
    assert recording_store.put_calls == []


def test_mutation_deleting_staging_file_is_backend_error(tmp_path, recording_store):
    recording_store.put_object("releases", "index.yaml", b"remote")
    staging_file = tmp_path / "index.yaml"

    with pytest.raises(BackendError) as exc_info:
        mutate_object(str(tmp_path), recording_store, "releases", "",
                      "index.yaml", staging_file.unlink)

    assert exc_info.value.operation == "read_staging_file"
    assert len(recording_store.put_calls) == 1


def test_staging_dir_is_a_file(tmp_path, recording_store):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(OSError):
        mutate_object(str(blocker), recording_store, "releases", "",
                      "index.yaml", lambda: None)

    assert recording_store.get_calls == []
