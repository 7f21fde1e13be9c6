import asyncio

import pytest

from newsdesk.services.retry import RetryPolicy, is_retryable_error, retry_async
from newsdesk.utils.error_monitoring import MalformedPayloadError, SourceFetchError


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, error_factory, result="ok"):
    state = {"calls": 0}

    async def operation():
        state["calls"] += 1
        if state["calls"] <= failures:
            raise error_factory()
        return result

    return operation, state


def test_backoff_is_exponential_and_capped():
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
    assert [policy.backoff(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.parametrize("error,expected", [
    (SourceFetchError("server", status=503), True),
    (SourceFetchError("rate limited", status=429), True),
    (SourceFetchError("timeout", status=408), True),
    (SourceFetchError("not found", status=404), False),
    (SourceFetchError("forbidden", status=403), False),
    (SourceFetchError("no status"), True),
    (MalformedPayloadError("bad json"), False),
    (asyncio.TimeoutError(), True),
    (ConnectionResetError(), True),
    (ValueError("bug"), False),
])
def test_retryable_classification(error, expected):
    assert is_retryable_error(error) is expected


@pytest.mark.asyncio
async def test_retries_server_errors_with_backoff():
    sleep = Recorder()
    operation, state = flaky(2, lambda: SourceFetchError("HTTP 503", status=503))

    result = await retry_async(operation, RetryPolicy(retries=3, base_delay=1.0), sleep=sleep)

    assert result == "ok"
    assert state["calls"] == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_errors_fail_immediately():
    sleep = Recorder()
    operation, state = flaky(5, lambda: SourceFetchError("HTTP 404", status=404))

    with pytest.raises(SourceFetchError):
        await retry_async(operation, RetryPolicy(retries=3), sleep=sleep)
    assert state["calls"] == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_exhausted_retries_reraise_last_error():
    sleep = Recorder()
    operation, state = flaky(10, lambda: SourceFetchError("HTTP 500", status=500))

    with pytest.raises(SourceFetchError) as excinfo:
        await retry_async(operation, RetryPolicy(retries=2, base_delay=0.5), sleep=sleep)
    assert excinfo.value.status == 500
    assert state["calls"] == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after():
    sleep = Recorder()
    operation, _ = flaky(1, lambda: SourceFetchError("HTTP 429", status=429, retry_after=7))

    assert await retry_async(operation, RetryPolicy(retries=1, max_delay=30), sleep=sleep) == "ok"
    assert sleep.delays == [7.0]


@pytest.mark.asyncio
async def test_each_attempt_is_bounded_by_timeout():
    sleep = Recorder()
    calls = []

    async def slow():
        calls.append(1)
        await asyncio.sleep(1)

    with pytest.raises(asyncio.TimeoutError):
        await retry_async(slow, RetryPolicy(retries=1, base_delay=0.1, timeout=0.01), sleep=sleep)
    assert len(calls) == 2
    assert sleep.delays == [0.1]
