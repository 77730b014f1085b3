from __future__ import annotations

import io

from rich.console import Console

from dashboard import generate_header, generate_indicator_panel, make_layout
from engine.session import WatchSession
from helpers import bars, minutes, quote
from shared.config.schema import MainConfig
from shared.state.snapshot_store import MemorySnapshotStore


def _render(renderable) -> str:
    console = Console(file=io.StringIO(), width=160, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


def _loaded_session() -> WatchSession:
    session = WatchSession(MainConfig(symbols=["sh600519", "hk00700"]), store=MemorySnapshotStore())
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote("sh600519", price=12.0)}, seq)
    session.apply_daily("sh600519", bars([10 + (i % 7) * 0.5 for i in range(40)]))
    session.apply_intraday("sh600519", minutes([12.0, 12.1, 12.2]))
    return session


def test_indicator_panel_shows_latest_values_and_session_progress():
    session = _loaded_session()
    ind = session.indicators()
    text = _render(
        generate_indicator_panel("sh600519", ind, session.indicator_table(), minutes_seen=3)
    )
    assert "Indicators sh600519" in text
    assert f"MA {ind.last_ma:.2f}" in text
    assert f"bar {ind.macd.bar[-1]:+.3f}" in text
    assert "intraday 3/241 min" in text
    assert "ma_5" in text and "stop_22" in text
    assert "D039" in text


def test_indicator_panel_waits_without_daily_bars():
    assert "Waiting for daily bars" in _render(generate_indicator_panel("sh600519", None))


def test_header_uses_ledger_pnl():
    session = _loaded_session()
    session.ledger.set_initial_capital(1_000_000)
    session.ledger.submit_order("sh600519", "BUY", 12.0, 100)
    session.ledger.match_tick("sh600519", 12.0)
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote("sh600519", price=13.0)}, seq)

    assert session.ledger.total_pnl(session.marks()) == 100.0
    assert "PnL: +100.00" in _render(generate_header(session))


def test_full_layout_renders():
    text = _render(make_layout(_loaded_session(), ["line one"]))
    assert "Watch List" in text
    assert "Paper Ledger" in text
    assert "line one" in text
