import asyncio

import pytest

from zeno.client.api_client import ChatRequestError, is_retryable
from zeno.utils.retry import TIMEOUT_MESSAGE, RetryController, RetryExhaustedError, with_retry


class Recorder:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


def make_controller(recorder, **kwargs):
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("delay", 2.0)
    return RetryController(sleep=recorder.sleep, **kwargs)


def test_success_on_first_attempt_does_not_wait():
    recorder = Recorder()

    async def operation():
        return "done"

    assert asyncio.run(make_controller(recorder).run(operation)) == "done"
    assert recorder.sleeps == []


def test_success_on_second_attempt():
    recorder = Recorder()
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) == 1:
            raise ConnectionError("flaky")
        return "ok"

    assert asyncio.run(make_controller(recorder).run(operation)) == "ok"
    assert len(calls) == 2
    assert recorder.sleeps == [2.0]


def test_always_failing_operation_gets_three_attempts_and_one_error():
    recorder = Recorder()
    calls = []

    async def operation():
        calls.append(1)
        raise ChatRequestError(502, f"upstream failure {len(calls)}")

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(make_controller(recorder).run(operation))

    assert len(calls) == 3
    assert recorder.sleeps == [2.0, 2.0]
    assert excinfo.value.attempts == 3
    assert excinfo.value.timed_out is False
    assert excinfo.value.message == "upstream failure 3"
    assert isinstance(excinfo.value.last_error, ChatRequestError)


def test_deadline_cancels_attempt_and_reports_timeout():
    recorder = Recorder()
    cancelled = []

    async def operation():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(1)
            raise

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(make_controller(recorder, timeout=0.01, max_attempts=2).run(operation))

    assert cancelled == [1, 1]
    assert excinfo.value.timed_out is True
    assert excinfo.value.message == TIMEOUT_MESSAGE
    assert recorder.sleeps == [2.0]


def test_non_retryable_error_is_raised_at_once():
    recorder = Recorder()
    calls = []

    async def operation():
        calls.append(1)
        raise ChatRequestError(400, "Invalid request body")

    with pytest.raises(ChatRequestError):
        asyncio.run(make_controller(recorder, is_retryable=is_retryable).run(operation))

    assert len(calls) == 1
    assert recorder.sleeps == []


def test_with_retry_uses_fixed_delay(monkeypatch):
    sleeps = []
    monkeypatch.setattr("zeno.utils.retry.time.sleep", sleeps.append)
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("rate limited")
        return "result"

    assert with_retry(flaky, max_retries=3, delay=0.5) == "result"
    assert sleeps == [0.5, 0.5]


def test_with_retry_reraises_last_error(monkeypatch):
    monkeypatch.setattr("zeno.utils.retry.time.sleep", lambda seconds: None)

    def broken():
        raise RuntimeError("still down")

    with pytest.raises(RuntimeError, match="still down"):
        with_retry(broken, max_retries=2, delay=0)


def test_give_up_stops_after_failed_attempt():
    recorder = Recorder()
    calls = []

    async def operation():
        calls.append(1)
        await asyncio.sleep(10)

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(make_controller(recorder, timeout=0.01).run(operation, give_up=lambda: len(calls) >= 1))

    assert len(calls) == 1
    assert recorder.sleeps == []
    assert excinfo.value.attempts == 1
    assert excinfo.value.timed_out is True
