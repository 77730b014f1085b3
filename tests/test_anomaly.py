from __future__ import annotations

import pytest

from algo.anomaly.detector import detect_anomaly, turnover_limit
from helpers import quote
from shared.models.models import MinutePoint


def _series(last: float, n: int = 10, base: float = 10.0) -> list[MinutePoint]:
    pts = [MinutePoint(f"09:{30 + i:02d}", 10.0, base) for i in range(n - 1)]
    pts.append(MinutePoint(f"09:{30 + n - 1:02d}", 10.0, last))
    return pts


def test_turnover_limit_depends_on_market():
    assert turnover_limit("usNVDA") == 0.5
    assert turnover_limit("sh600519") == 2.0


@pytest.mark.parametrize(
    "symbol,change,turnover,kind",
    [
        ("sh600519", -4.0, 3.5, "PANIC"),
        ("usNVDA", 3.0, 0.6, "RISING"),
        ("sz000001", 1.0, 6.0, "HOT"),
        ("sz000001", 0.1, 4.5, "STAGNANT"),
    ],
)
def test_threshold_rules(symbol, change, turnover, kind):
    got = detect_anomaly(quote(symbol=symbol, change_percent=change, turnover_rate=turnover))
    assert got is not None
    assert got.kind == kind
    assert got.win_rate


def test_first_matching_rule_wins():
    # 同时满足 RISING 与 HOT，按顺序取 RISING
    got = detect_anomaly(quote(symbol="sh600519", change_percent=3.0, turnover_rate=6.0))
    assert got.kind == "RISING"


def test_volume_spike_requires_enough_points():
    q = quote(change_percent=0.0, turnover_rate=0.0)
    assert detect_anomaly(q, _series(100.0)).kind == "SPIKE"
    assert detect_anomaly(q, _series(100.0, n=9)) is None


def test_quiet_market_has_no_anomaly():
    assert detect_anomaly(quote(change_percent=0.3, turnover_rate=0.5), _series(10.0)) is None


def test_win_rate_text_can_be_overridden_per_kind():
    q = quote(symbol="sh600519", change_percent=-4.0, turnover_rate=3.5)
    default = detect_anomaly(q)
    assert detect_anomaly(q, win_rates={"PANIC": "n/a"}).win_rate == "n/a"
    assert detect_anomaly(q, win_rates={"HOT": "n/a"}).win_rate == default.win_rate


def test_session_passes_configured_win_rates():
    from engine.session import WatchSession
    from shared.config.schema import MainConfig

    cfg = MainConfig.model_validate(
        {"symbols": ["sh600519"], "anomaly": {"win_rates": {"PANIC": "backtest pending"}}}
    )
    session = WatchSession(cfg)
    seq = session.begin_quote_request()
    session.apply_quotes({"sh600519": quote("sh600519", change_percent=-4.0, turnover_rate=3.5)}, seq)
    assert session.anomaly().win_rate == "backtest pending"
