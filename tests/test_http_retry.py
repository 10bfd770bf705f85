from __future__ import annotations

import pytest
import requests.exceptions

from proreceipts.services.http_retry import (
    READ_BACKOFF,
    RETRYABLE_STATUS_CODES,
    ReadBackoff,
    RetryableHTTPError,
    backoff_delay,
    retry_read,
)


def _no_sleep(_: float) -> None:
    return None


class TestRetryRead:
    def test_success_first_attempt(self):
        assert retry_read(lambda: 42, sleep_func=_no_sleep) == 42

    def test_recovers_from_transient_errors(self):
        errors = [
            requests.exceptions.ConnectionError("reset"),
            requests.exceptions.Timeout("slow"),
            RetryableHTTPError("busy", 503),
        ]

        def func():
            if errors:
                raise errors.pop(0)
            return "recovered"

        assert retry_read(func, sleep_func=_no_sleep) == "recovered"

    def test_exhausts_attempts_and_reraises(self):
        calls = []

        def func():
            calls.append(1)
            raise requests.exceptions.ConnectionError("down")

        with pytest.raises(requests.exceptions.ConnectionError, match="down"):
            retry_read(func, sleep_func=_no_sleep)
        assert len(calls) == READ_BACKOFF.attempts

    def test_non_retryable_propagates_immediately(self):
        calls = []

        def func():
            calls.append(1)
            raise RuntimeError("fatal")

        with pytest.raises(RuntimeError, match="fatal"):
            retry_read(func, sleep_func=_no_sleep)
        assert len(calls) == 1

    def test_sleeps_between_attempts_only(self):
        delays: list[float] = []

        def func():
            raise requests.exceptions.Timeout("slow")

        with pytest.raises(requests.exceptions.Timeout):
            retry_read(func, backoff=ReadBackoff(attempts=3), sleep_func=delays.append)
        assert len(delays) == 2

    def test_logs_each_retry(self, caplog):
        attempts = []

        def func():
            attempts.append(1)
            if len(attempts) < 2:
                raise requests.exceptions.ConnectionError("reset")
            return "ok"

        with caplog.at_level("WARNING"):
            retry_read(func, action="list receipts", sleep_func=_no_sleep)
        assert "list receipts failed with ConnectionError, attempt 1/4" in caplog.text


class TestBackoffDelay:
    def test_doubles_and_caps(self):
        backoff = ReadBackoff(base_delay=1.0, max_delay=5.0, jitter=0.0)
        assert [backoff_delay(i, backoff) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_bounds(self):
        for attempt in range(3):
            base = min(2.0**attempt, READ_BACKOFF.max_delay)
            assert base * 0.75 <= backoff_delay(attempt) <= base * 1.25


def test_retryable_statuses():
    assert RETRYABLE_STATUS_CODES == {429, 502, 503, 504}
    err = RetryableHTTPError("busy", 503, "try later")
    assert (err.status_code, err.body) == (503, "try later")
