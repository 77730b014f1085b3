from __future__ import annotations

import threading
import time

import pytest

from engine.poller import QuotePoller
from engine.session import WatchSession
from helpers import bars, minutes, quote
from shared.config.schema import MainConfig
from shared.state.snapshot_store import MemorySnapshotStore


class _StubClient:
    """第一次报价请求故意慢返回，模拟与下一轮请求重叠。"""

    def __init__(self, slow_first: float = 0.0):
        self.slow_first = slow_first
        self.quote_calls = 0
        self.series_calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_quotes(self, symbols):
        with self._lock:
            self.quote_calls += 1
            call = self.quote_calls
        if call == 1 and self.slow_first:
            time.sleep(self.slow_first)
        return {sym: quote(sym, price=float(call)) for sym in symbols}

    def fetch_daily(self, symbol):
        self.series_calls.append(symbol)
        return bars([10.0, 11.0, 12.0])

    def fetch_minutes(self, symbol):
        return minutes([10.0, 10.5])


def _session() -> WatchSession:
    return WatchSession(MainConfig(symbols=["sh600519", "hk00700"]), store=MemorySnapshotStore())


@pytest.mark.asyncio
async def test_run_polls_fixed_number_of_ticks_and_loads_series():
    session = _session()
    client = _StubClient()
    seen: list[int] = []
    poller = QuotePoller(session, client, interval=0.0, on_tick=lambda s: seen.append(len(s.quotes)))
    ticks = await poller.run(max_ticks=3)
    assert ticks == 3
    assert client.quote_calls == 3
    assert len(seen) == 3
    # 最后一轮一定是最新请求，必然写入
    assert set(session.quotes) == {"sh600519", "hk00700"}
    assert client.series_calls == ["sh600519"]
    assert len(session.daily["sh600519"]) == 3
    assert len(session.intraday["sh600519"]) == 2


@pytest.mark.asyncio
async def test_late_response_from_older_tick_is_dropped():
    session = _session()
    client = _StubClient(slow_first=0.2)
    poller = QuotePoller(session, client, interval=0.01)
    await poller.run(max_ticks=2)
    assert client.quote_calls == 2
    assert session.quotes["sh600519"].price == 2.0


@pytest.mark.asyncio
async def test_selection_change_triggers_series_reload():
    session = _session()
    client = _StubClient()
    poller = QuotePoller(session, client, interval=0.0)
    await poller.run(max_ticks=1)
    session.select("hk00700")
    await poller.run(max_ticks=1)
    assert client.series_calls == ["sh600519", "hk00700"]
    assert len(session.daily["hk00700"]) == 3


@pytest.mark.asyncio
async def test_reselecting_a_symbol_between_ticks_reloads_its_series():
    session = _session()
    client = _StubClient()
    poller = QuotePoller(session, client, interval=0.0)
    await poller.run(max_ticks=1)
    assert len(session.daily["sh600519"]) == 3

    session.select("hk00700")
    session.select("sh600519")
    await poller.run(max_ticks=2)
    assert client.series_calls == ["sh600519", "sh600519"]
    assert len(session.daily["sh600519"]) == 3
    assert session.indicators("sh600519") is not None

    session.select("sh600519")
    assert session.daily["sh600519"] == []
    await poller.run(max_ticks=1)
    assert len(session.daily["sh600519"]) == 3


@pytest.mark.asyncio
async def test_failed_ticks_are_logged_and_loop_keeps_going():
    from shared.utils.logging import LogBuffer, capture_logs

    session = _session()
    client = _StubClient()
    calls: list[int] = []

    def render(_session):
        calls.append(1)
        raise RuntimeError("render failed")

    poller = QuotePoller(session, client, interval=0.0, on_tick=render)
    buffer = LogBuffer(maxlen=20)
    with capture_logs(buffer):
        ticks = await poller.run(max_ticks=3)

    assert ticks == 3
    assert len(calls) == 3
    assert poller.failed_ticks == 3
    errors = [line for line in buffer.lines if "Tick failed" in line]
    assert len(errors) == 3
    assert "render failed" in errors[0]
