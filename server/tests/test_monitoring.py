import pytest

from cryptoledger.core import monitoring
from cryptoledger.core.monitoring import monitor_performance


@pytest.fixture
def metrics(monkeypatch):
    recorded = []

    def record(operation, duration, success=True, **kwargs):
        recorded.append((operation, duration, success))

    monkeypatch.setattr(monitoring.logger, "log_performance_metric", record)
    return recorded


@pytest.mark.asyncio
async def test_coroutine_timing_is_logged(metrics):
    @monitor_performance("claims.submit")
    async def submit():
        return "ok"

    assert await submit() == "ok"
    assert len(metrics) == 1
    operation, duration, success = metrics[0]
    assert operation == "claims.submit"
    assert duration >= 0
    assert success is True


@pytest.mark.asyncio
async def test_failed_coroutine_is_logged_as_failure(metrics):
    @monitor_performance("trades.close")
    async def close():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await close()

    assert metrics == [("trades.close", metrics[0][1], False)]


def test_plain_function_is_timed(metrics):
    @monitor_performance("tax.compute")
    def compute():
        return 3

    assert compute() == 3
    assert [(op, ok) for op, _, ok in metrics] == [("tax.compute", True)]
