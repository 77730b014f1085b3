from __future__ import annotations

import logging

from engine.session import WatchSession, normalize_symbol, should_apply
from helpers import bars, minutes, quote
from shared.config.schema import AnomalyConfig, MainConfig
from shared.models.models import Holding
from shared.state.snapshot_store import MemorySnapshotStore


def _session(**kwargs) -> WatchSession:
    cfg = kwargs.pop("cfg", None) or MainConfig(symbols=["sh600519", "hk00700", "usNVDA"])
    return WatchSession(cfg, store=kwargs.pop("store", None) or MemorySnapshotStore(), **kwargs)


class _FailingStore(MemorySnapshotStore):
    def save(self, key, payload):
        raise OSError("read-only")


def test_defaults_come_from_config_and_first_symbol_is_selected():
    session = _session()
    assert session.symbols == ["sh600519", "hk00700", "usNVDA"]
    assert session.selected == "sh600519"
    assert session.ledger.cash == 1_000_000.0


def test_state_is_restored_from_store():
    store = MemorySnapshotStore(
        {
            "codes": ["SZ000001", "sz000001", "hk00700"],
            "portfolio": {"sz000001": {"cost": 10, "shares": 100}, "bad": {"cost": "x", "shares": 1}},
            "ledger": {"cash": 5_000, "initialCapital": 10_000, "positions": {}},
        }
    )
    session = _session(store=store)
    assert session.symbols == ["sz000001", "hk00700"]
    assert session.holdings == {"sz000001": Holding(cost=10.0, shares=100.0)}
    assert session.ledger.cash == 5_000
    assert session.ledger.initial_capital == 10_000


def test_watch_list_operations_persist():
    store = MemorySnapshotStore()
    session = _session(store=store)
    assert normalize_symbol(" SH600000 ") == "sh600000"
    assert session.add_symbol("SH600000") is True
    assert session.add_symbol("sh600000") is False
    assert store.load("codes")[-1] == "sh600000"

    assert session.move_up("sh600000") is True
    assert session.symbols == ["sh600519", "hk00700", "sh600000", "usNVDA"]
    assert session.move_down("usNVDA") is False
    assert session.move_symbol("usNVDA", 0) is True
    assert session.symbols[0] == "usNVDA"

    assert session.remove_symbol("sh600519") is True
    assert session.remove_symbol("sh600519") is False
    assert store.load("codes") == session.symbols


def test_removing_selected_symbol_selects_first():
    session = _session()
    session.remove_symbol("sh600519")
    assert session.selected == "hk00700"


def test_generation_guard_drops_stale_quote_responses():
    assert should_apply(3, 3) is True
    assert should_apply(2, 3) is False

    session = _session()
    old_seq = session.begin_quote_request()
    new_seq = session.begin_quote_request()
    assert session.apply_quotes({"sh600519": quote(price=2.0)}, new_seq) is True
    assert session.apply_quotes({"sh600519": quote(price=1.0)}, old_seq) is False
    assert session.quotes["sh600519"].price == 2.0


def test_failed_quote_response_keeps_previous_state():
    session = _session()
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote(price=2.0)}, seq)
    seq = session.begin_quote_request()
    assert session.apply_quotes(None, seq) is False
    assert session.quotes["sh600519"].price == 2.0


def test_selection_guard_uses_symbol_selected_on_arrival():
    session = _session()
    session.select("hk00700")
    session.select("usNVDA")
    assert session.apply_daily("hk00700", bars([1.0, 2.0])) is False
    assert session.apply_intraday("hk00700", minutes([1.0])) is False
    assert session.apply_daily("usNVDA", bars([1.0, 2.0])) is True
    assert session.apply_intraday("usNVDA", None) is False
    assert len(session.daily["usNVDA"]) == 2
    assert session.daily["hk00700"] == []


def test_quote_tick_matches_resting_orders_and_persists_ledger():
    store = MemorySnapshotStore()
    session = _session(store=store)
    session.ledger.submit_order("hk00700", "BUY", 300.0, 100)
    seq = session.begin_quote_request()
    session.apply_quotes({"hk00700": quote("hk00700", price=299.0)}, seq)
    pos = session.ledger.get_position("hk00700")
    assert pos.quantity_held == 100
    assert pos.resting_orders == []
    assert store.load("ledger")["positions"]["hk00700"]["holding"] == 100


def test_persistence_failure_is_logged_not_raised(caplog):
    session = _session(store=_FailingStore())
    logger = logging.getLogger("watch-session")
    logger.propagate = True
    try:
        with caplog.at_level(logging.WARNING, logger="watch-session"):
            res = session.ledger.submit_order("hk00700", "BUY", 300.0, 1)
            session.add_symbol("sz000001")
    finally:
        logger.propagate = False
    assert res["status"] == "accepted"
    assert "sz000001" in session.symbols
    assert any("Failed to save" in r.getMessage() for r in caplog.records)


def test_manual_holdings_and_report():
    session = _session()
    assert session.report() is None
    assert session.set_holding("sh600519", "1600", "10") == Holding(cost=1600.0, shares=10.0)
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote(price=1700.0, prev_close=1690.0, open=1690.0, high=1710.0, low=1680.0)}, seq)
    report = session.report()
    assert report.model == "t0"
    assert report.holding is not None
    assert report.holding.pnl == 1000.0

    assert session.set_holding("sh600519", "nan", "10") is None
    assert "sh600519" not in session.holdings
    assert session.remove_holding("sh600519") is False


def test_anomaly_respects_config_switch():
    cfg = MainConfig(symbols=["sh600519"], anomaly=AnomalyConfig(enabled=False))
    session = _session(cfg=cfg)
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote(change_percent=-5.0, turnover_rate=9.0)}, seq)
    assert session.anomaly() is None

    enabled = _session()
    seq = enabled.begin_quote_request()
    enabled.apply_quotes({"sh600519": quote(change_percent=-5.0, turnover_rate=9.0)}, seq)
    assert enabled.anomaly().kind == "PANIC"


def test_every_selection_bumps_selection_seq():
    session = _session()
    start = session.selection_seq
    assert session.select("sh600519")
    assert session.select("sh600519")
    assert session.selection_seq == start + 2
    assert not session.select("sz999999")
    assert session.selection_seq == start + 2

    session.remove_symbol("sh600519")
    assert session.selected == "hk00700"
    assert session.selection_seq == start + 3


def test_daily_update_recomputes_indicator_set():
    from algo.factors.indicator_set import compute_indicator_set

    session = _session()
    points = bars([10 + (i % 7) * 0.5 for i in range(40)])
    assert session.indicators() is None
    assert session.apply_daily("sh600519", points)

    ind = session.indicators()
    assert ind == compute_indicator_set(points, session.cfg.indicators)
    assert not ind.macd.empty
    table = session.indicator_table()
    assert len(table) == 40
    assert {"ma_5", "ma_20", "macd_bar", "stop_22"} <= set(table.columns)

    # 日线变化后整体重算
    session.apply_daily("sh600519", points[:10])
    assert session.indicators().macd.empty
    assert len(session.indicator_table()) == 10

    session.select("sh600519")
    assert session.indicators() is None
    assert session.indicator_table() is None
