from __future__ import annotations

from pathlib import Path

import pytest

from s3publish import LocalObjectStore

TESTS_DIR = Path(__file__).resolve().parent

INTEGRATION_DIRS = (
    TESTS_DIR / "simple_storage_service",
)

SLOW_FILES = (
    TESTS_DIR / "object_mutation" / "test_concurrent_mutations.py",
)

_FILE_MARKER_CACHE: dict[Path, dict[str, bool]] = {}


def _is_in_dir(path: Path, directory: Path) -> bool:
    try:
        path.relative_to(directory)
    except ValueError:
        return False
    return True


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    for item in items:
        path = Path(str(item.fspath)).resolve()
        file_flags = _FILE_MARKER_CACHE.get(path)
        if file_flags is None:
            try:
                contents = path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                contents = ""
            file_flags = {
                "integration": "mock_aws" in contents,
            }
            _FILE_MARKER_CACHE[path] = file_flags

        if any(_is_in_dir(path, directory) for directory in INTEGRATION_DIRS):
            item.add_marker(pytest.mark.integration)
        elif file_flags.get("integration"):
            item.add_marker(pytest.mark.integration)

        if path in SLOW_FILES:
            item.add_marker(pytest.mark.slow)


class RecordingStore(LocalObjectStore):
    """LocalObjectStore that remembers every get/put call it receives."""

    def __init__(self):
        super().__init__()
        self.get_calls: list[tuple[str, str]] = []
        self.put_calls: list[dict] = []

    def get_object(self, bucket, key):
        self.get_calls.append((bucket, key))
        return super().get_object(bucket, key)

    def put_object(self, bucket, key, payload, *, content_type=None,
                   cache_control=None, if_match=None, if_none_match=None):
        self.put_calls.append(dict(
            bucket=bucket, key=key, payload=bytes(payload),
            content_type=content_type, cache_control=cache_control,
            if_match=if_match, if_none_match=if_none_match))
        return super().put_object(
            bucket, key, payload, content_type=content_type,
            cache_control=cache_control, if_match=if_match,
            if_none_match=if_none_match)


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def no_backoff(monkeypatch):
    """Skip the pause between conflicting mutation attempts."""
    import s3publish.mutator as mutator
    monkeypatch.setattr(mutator.time, "sleep", lambda _: None)
