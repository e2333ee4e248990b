"""Unit tests for the Result container used to tally settled requests."""

from __future__ import annotations

import pytest

from saveport.core.errors import RecordAccessError
from saveport.core.result import Err, Ok, Result, err, ok


def test_ok_unwraps_to_key() -> None:
    r: Result[str, RecordAccessError] = ok("/_savedata/file0")
    assert r.is_ok()
    assert r.unwrap() == "/_savedata/file0"
    assert isinstance(r, Ok)


def test_err_carries_the_access_error() -> None:
    failure = RecordAccessError("/_savedata/file9", "put", "QuotaExceededError")
    r: Result[str, RecordAccessError] = err(failure)

    assert not r.is_ok()
    assert isinstance(r, Err) and r.unwrap_err() is failure


def test_unwrap_on_the_wrong_side_raises() -> None:
    with pytest.raises(RuntimeError):
        err("boom").unwrap()
    with pytest.raises(RuntimeError):
        ok(1).unwrap_err()
