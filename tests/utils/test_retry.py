import pytest

from clusterup.utils.retry import retry


def test_retries_until_success():
    calls = []

    @retry(retries=3, delay=0, retry_on=(ConnectionError,))
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 3


def test_reraises_last_exception_after_exhaustion():
    seen = []

    @retry(retries=2, delay=0, retry_on=(ConnectionError,), on_retry=lambda n, e: seen.append(n))
    def down():
        raise ConnectionError("no route")

    with pytest.raises(ConnectionError, match="no route"):
        down()
    assert seen == [1]


def test_other_exceptions_propagate_immediately():
    calls = []

    @retry(retries=5, delay=0, retry_on=(ConnectionError,))
    def broken():
        calls.append(1)
        raise ValueError("bad")

    with pytest.raises(ValueError):
        broken()
    assert calls == [1]
