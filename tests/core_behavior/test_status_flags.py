import dataclasses

import pytest
from mixinforge import dumpjs, loadjs

from s3publish import (MutatingFunction, MutationResult, ObjectNotFoundFlag,
                       OBJECT_NOT_FOUND, StatusFlag, WriteConflictFlag,
                       WRITE_CONFLICT)


def test_flags_are_singletons():
    """Every exported constant is the same object as a fresh construction."""
    for constant, cls in ((OBJECT_NOT_FOUND, ObjectNotFoundFlag),
                          (WRITE_CONFLICT, WriteConflictFlag)):
        assert constant is cls()
        assert isinstance(constant, StatusFlag)
    assert OBJECT_NOT_FOUND is not WRITE_CONFLICT


def test_flags_dumpjs_loadjs_roundtrip():
    for instance in (OBJECT_NOT_FOUND, WRITE_CONFLICT):
        assert loadjs(dumpjs(instance)) is instance


def test_mutation_result_is_frozen():
    result = MutationResult(key="index.yaml", resulting_etag=None, attempts=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.attempts = 2


def test_any_zero_argument_callable_is_a_mutating_function():
    assert isinstance(lambda: None, MutatingFunction)
    assert not isinstance("index.yaml", MutatingFunction)
