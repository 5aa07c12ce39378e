"""Tests for the connection retry policy."""
import pytest
from sqlalchemy.exc import OperationalError

from schemakeeper.utils.retry import call_with_retry


@pytest.mark.asyncio
class TestCallWithRetry:
    """Test connection retries."""

    async def test_retries_transient_errors(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("connect", None, Exception("server starting up"))
            return "connected"

        result = await call_with_retry(flaky, max_attempts=3, wait_multiplier=0, wait_max=0)

        assert result == "connected"
        assert len(calls) == 3

    async def test_gives_up_after_max_attempts(self):
        calls = []

        async def down():
            calls.append(1)
            raise OperationalError("connect", None, Exception("connection refused"))

        with pytest.raises(OperationalError):
            await call_with_retry(down, max_attempts=2, wait_multiplier=0, wait_max=0)

        assert len(calls) == 2

    async def test_other_errors_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await call_with_retry(broken, max_attempts=3)

        assert len(calls) == 1
