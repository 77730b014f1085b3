"""盘中异动识别。

独立于信号模型：只看涨跌幅、换手率与最后一分钟量能，按固定顺序匹配，
首条命中即返回；美股换手基准远低于 A/H 股，因此阈值按市场区分。

每条规则附带一个展示用的“历史胜率”标签。`DEFAULT_RULES` 里的数值只是占位文案，
没有回测数据支撑；需要时用配置 `anomaly.win_rates`（kind -> 文案）覆盖。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from shared.models.models import MinutePoint, QuoteSnapshot
from shared.utils.numeric import safe_number

US_TURNOVER_LIMIT = 0.5
DEFAULT_TURNOVER_LIMIT = 2.0
SPIKE_MULTIPLE = 5.0
SPIKE_MIN_POINTS = 10


@dataclass(frozen=True)
class AnomalyInputs:
    change: float
    turnover: float
    limit: float
    last_volume: float
    avg_volume: float
    points: int


@dataclass(frozen=True)
class AnomalyRule:
    kind: str
    label: str
    win_rate: str
    matches: Callable[[AnomalyInputs], bool]


@dataclass(frozen=True)
class Anomaly:
    kind: str
    label: str
    win_rate: str


def is_us_symbol(symbol: str) -> bool:
    return symbol.lower().startswith("us")


def turnover_limit(symbol: str) -> float:
    return US_TURNOVER_LIMIT if is_us_symbol(symbol) else DEFAULT_TURNOVER_LIMIT


def _volume_spike(x: AnomalyInputs) -> bool:
    return x.points >= SPIKE_MIN_POINTS and x.avg_volume > 0 and x.last_volume >= x.avg_volume * SPIKE_MULTIPLE


DEFAULT_RULES: tuple[AnomalyRule, ...] = (
    AnomalyRule("PANIC", "panic sell-off", "hist. win-rate ~35%", lambda x: x.change < -3 and x.turnover > x.limit * 1.5),
    AnomalyRule("RISING", "rally", "hist. win-rate ~58%", lambda x: x.change > 2 and x.turnover > x.limit),
    AnomalyRule("HOT", "hot accumulation", "hist. win-rate ~55%", lambda x: x.change > 0 and x.turnover > x.limit * 2.5),
    AnomalyRule(
        "STAGNANT",
        "stagnant rally",
        "hist. win-rate ~42%",
        lambda x: abs(x.change) < 0.5 and x.turnover > x.limit * 2,
    ),
    AnomalyRule("SPIKE", "volume spike", "hist. win-rate ~50%", _volume_spike),
)


def _inputs(quote: QuoteSnapshot, intraday: Sequence[MinutePoint]) -> AnomalyInputs:
    volumes = [max(0.0, safe_number(p.volume)) for p in intraday]
    avg = sum(volumes) / len(volumes) if volumes else 0.0
    return AnomalyInputs(
        change=safe_number(quote.change_percent),
        turnover=safe_number(quote.turnover_rate),
        limit=turnover_limit(quote.symbol),
        last_volume=volumes[-1] if volumes else 0.0,
        avg_volume=avg,
        points=len(volumes),
    )


def detect_anomaly(
    quote: QuoteSnapshot,
    intraday: Sequence[MinutePoint] = (),
    rules: Sequence[AnomalyRule] = DEFAULT_RULES,
    win_rates: Mapping[str, str] | None = None,
) -> Anomaly | None:
    """返回首个命中的异动标签；无异动返回 None。`win_rates` 按 kind 覆盖胜率文案。"""
    x = _inputs(quote, intraday)
    for rule in rules:
        if rule.matches(x):
            win_rate = (win_rates or {}).get(rule.kind, rule.win_rate)
            return Anomaly(kind=rule.kind, label=rule.label, win_rate=win_rate)
    return None
