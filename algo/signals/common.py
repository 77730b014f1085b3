"""两套信号模型共用的子报告：VWAP、多日趋势、持仓盈亏、止损位。"""

from __future__ import annotations

from typing import Sequence

from algo.factors.ma import moving_average
from algo.factors.range_position import range_position
from algo.factors.rsi import rsi
from algo.factors.trailing_stop import last_stop
from algo.signals.base import HoldingReport, TrendDirection, TrendPosition, TrendReport
from shared.config.schema import IndicatorConfig
from shared.models.models import Holding, MinutePoint, PricePoint, QuoteSnapshot
from shared.utils.numeric import safe_number, strength_level

ADVICE_LOW_POSITION = (
    "Price sits in the low zone of the last 20 sessions; downside looks limited. "
    "Do not cut losses blindly, wait for a base to form."
)
ADVICE_HIGH_BEARISH = "Breakdown from a high zone; topping risk is rising, exit to avoid the drawdown."
ADVICE_BULLISH = "Trend intact; hold along the 5/20-day averages and ride the trend."
ADVICE_RANGE = "Mid-range chop with no clear direction; wait for a breakout from the box."
ADVICE_NO_DIRECTION = "No clear direction yet."

HOLDING_PROTECT_GAINS = "Position is comfortably in profit; set a take-profit guard."
HOLDING_LOWER_COST = "Deep drawdown but price is at a low zone; consider intraday T0 trades to lower the cost basis."
HOLDING_DERISK = "Loss is widening; control position size and trim on a rebound to the average."
HOLDING_HOLD = "Trading near cost; hold patiently."


def sanitize_intraday(points: Sequence[MinutePoint], prev_close: float) -> list[MinutePoint]:
    """非正/非有限价格替换为基准价，非法成交量置 0。"""
    if not points:
        return []
    first = safe_number(points[0].price)
    base = prev_close if prev_close > 0 else (first if first > 0 else 1.0)
    out: list[MinutePoint] = []
    for p in points:
        price = safe_number(p.price, base)
        volume = safe_number(p.volume)
        out.append(
            MinutePoint(
                time=p.time,
                price=price if price > 0 else base,
                volume=volume if volume > 0 else 0.0,
            )
        )
    return out


def session_vwap(points: Sequence[MinutePoint], prev_close: float) -> float:
    """分时成交量加权均价；尚无成交量时回退到昨收。"""
    total_pv = 0.0
    total_v = 0.0
    for p in sanitize_intraday(points, prev_close):
        total_pv += p.price * p.volume
        total_v += p.volume
    if total_v <= 0:
        return prev_close
    return safe_number(total_pv / total_v, prev_close)


def trend_report(price: float, daily: Sequence[PricePoint], cfg: IndicatorConfig) -> TrendReport:
    """多日趋势：区间位置 + 价格相对 MA 的多空判定。"""
    rsi_value = rsi(daily, cfg.rsi_period)
    needed = max(cfg.ma_period, cfg.range_period)
    if len(daily) < needed:
        return TrendReport(
            position="mid",
            direction="range",
            rsi=rsi_value,
            strength=0.0,
            strength_level=strength_level(0.0),
            advice=ADVICE_NO_DIRECTION,
        )

    pos = range_position(daily, cfg.range_period)
    ma_values = moving_average(daily, cfg.ma_period)
    ma = safe_number(ma_values[-1] if ma_values else None)

    position: TrendPosition = "mid"
    if pos < 20:
        position = "low"
    elif pos > 80:
        position = "high"
    direction: TrendDirection = "bullish" if price > ma else "bearish"

    deviation = abs(price - ma) / ma * 100 if ma > 0 else 0.0
    extreme = position != "mid"
    strength = min(100.0, safe_number(deviation * 10 + (30 if extreme else 0)))

    if position == "low":
        advice = ADVICE_LOW_POSITION
    elif position == "high" and direction == "bearish":
        advice = ADVICE_HIGH_BEARISH
    elif direction == "bullish":
        advice = ADVICE_BULLISH
    else:
        advice = ADVICE_RANGE

    return TrendReport(
        position=position,
        direction=direction,
        rsi=rsi_value,
        strength=strength,
        strength_level=strength_level(strength),
        advice=advice,
    )


def holding_report(price: float, holding: Holding | None, trend_position: TrendPosition) -> HoldingReport | None:
    if holding is None:
        return None
    cost = safe_number(holding.cost)
    shares = safe_number(holding.shares)
    cost_value = cost * shares
    pnl = safe_number((price - cost) * shares)
    pnl_percent = safe_number(pnl / cost_value * 100) if cost_value > 0 else 0.0

    if pnl_percent > 5:
        advice = HOLDING_PROTECT_GAINS
    elif pnl_percent < -5:
        advice = HOLDING_LOWER_COST if trend_position == "low" else HOLDING_DERISK
    else:
        advice = HOLDING_HOLD
    return HoldingReport(pnl=pnl, pnl_percent=pnl_percent, advice=advice)


def stop_status(price: float, daily: Sequence[PricePoint], cfg: IndicatorConfig) -> tuple[float | None, bool]:
    """(止损价, 是否在止损线上方)；止损无定义时视为在上方。"""
    stop = last_stop(daily, cfg.trailing_stop.period, cfg.trailing_stop.multiplier)
    if stop is None:
        return None, True
    return stop, price >= stop


def quote_price(quote: QuoteSnapshot) -> float:
    return safe_number(quote.price)
