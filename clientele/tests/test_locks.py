"""Tests for the advisory lock and contention retries."""

import pytest
from django.core.cache import cache
from django.db import IntegrityError, OperationalError

from clientele.exceptions import ClienteleError
from clientele.locks import LOCK_PREFIX, advisory_lock, retry_on_contention


class TestAdvisoryLock:
    def test_second_holder_refused(self):
        with advisory_lock("rebuild") as first:
            with advisory_lock("rebuild") as second:
                assert first is True
                assert second is False

    def test_released_on_exit(self):
        with advisory_lock("rebuild"):
            pass

        assert cache.get(f"{LOCK_PREFIX}rebuild") is None
        with advisory_lock("rebuild") as acquired:
            assert acquired is True

    def test_released_on_error(self):
        with pytest.raises(RuntimeError):
            with advisory_lock("rebuild"):
                raise RuntimeError("boom")

        with advisory_lock("rebuild") as acquired:
            assert acquired is True

    def test_refused_holder_does_not_release(self):
        with advisory_lock("rebuild"):
            with advisory_lock("rebuild"):
                pass
            assert cache.get(f"{LOCK_PREFIX}rebuild") is not None

    def test_names_are_independent(self):
        with advisory_lock("a") as a, advisory_lock("b") as b:
            assert a is True
            assert b is True


class TestRetryOnContention:
    def test_returns_result(self):
        assert retry_on_contention(lambda: 42) == 42

    def test_retries_until_success(self):
        calls = []

        def func():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("database is locked")
            return "ok"

        assert retry_on_contention(func, attempts=3) == "ok"
        assert len(calls) == 3

    def test_exhausted(self):
        def func():
            raise IntegrityError("duplicate key")

        with pytest.raises(ClienteleError) as exc:
            retry_on_contention(func, attempts=2, label="email:jane@example.com")

        assert exc.value.code == "LOCK_CONTENTION"
        assert exc.value.data == {"key": "email:jane@example.com", "attempts": 2}
        assert isinstance(exc.value.__cause__, IntegrityError)

    def test_other_errors_propagate(self):
        calls = []

        def func():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            retry_on_contention(func)

        assert calls == [1]
