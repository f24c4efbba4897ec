import time

import pytest

from vegindex.services.exceptions import RemoteTimeout
from vegindex.utils.async_helpers import run_in_executor, run_with_timeout


async def test_run_with_timeout_raises_at_deadline():
    started = time.monotonic()
    with pytest.raises(RemoteTimeout) as exc_info:
        await run_with_timeout(time.sleep, 1, timeout=0.2, operation="statistics")

    # The caller is released at the deadline, not when the thread finishes
    assert time.monotonic() - started < 0.9
    assert exc_info.value.kind == "remote_timeout"
    assert exc_info.value.stage == "statistics"
    assert exc_info.value.timeout == 0.2


async def test_run_with_timeout_returns_result():
    assert await run_with_timeout(sum, [1, 2, 3], timeout=5, operation="scene_count") == 6


async def test_run_with_timeout_passes_keyword_arguments():
    result = await run_with_timeout(
        sorted, [3, 1, 2], timeout=5, operation="tiles", reverse=True
    )
    assert result == [3, 2, 1]


async def test_run_with_timeout_propagates_errors():
    def fail():
        raise ValueError("bad band")

    with pytest.raises(ValueError, match="bad band"):
        await run_with_timeout(fail, timeout=5, operation="thumbnail")


async def test_run_in_executor_with_kwargs():
    assert await run_in_executor(int, "ff", base=16) == 255
