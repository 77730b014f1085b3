"""日内乖离带模型（T0）。

以分时 VWAP 为中枢、按当日振幅动态放大的带宽划出上下轨：
跌破下轨视为“机会”，突破上轨视为“风险”，其余为区间震荡，
挂单参考位取上下轨。
"""

from __future__ import annotations

from dataclasses import dataclass, field

from algo.factors.range_position import range_position
from algo.signals.base import AxisScores, BandSignal, SignalContext, SignalReport
from algo.signals.common import holding_report, quote_price, session_vwap, stop_status, trend_report
from shared.config.schema import IndicatorConfig
from shared.models.models import QuoteSnapshot
from shared.utils.numeric import clamp, safe_number, strength_level

DESC_OVERSOLD = (
    "Intraday oversold: price has stretched far below the average line and a rebound "
    "toward it is likely; aggressive traders can buy at market."
)
DESC_OVERBOUGHT = (
    "Intraday overbought: price has run far above the average line; beware of a pullback "
    "and take profit in batches."
)
DESC_ABOVE_VWAP = "Price holds above the average line; strong range, keep holding."
DESC_BELOW_VWAP = "Price is capped by the average line; weak range, watch more and act less."


def liquidity_score(quote: QuoteSnapshot) -> float:
    """换手率 + 成交额的流动性评分，下限 20，上限 100。"""
    turnover = safe_number(quote.turnover_rate)
    amount = safe_number(quote.amount)
    score = min(100.0, turnover / 3 * 60 + amount / 1e8 * 10)
    return max(20.0, score)


def day_band(quote: QuoteSnapshot, min_band: float = 0.015, band_factor: float = 0.6) -> float:
    """带宽 = max(min_band, 振幅 * band_factor)；开盘价非正时振幅取 2%。"""
    day_open = safe_number(quote.open)
    if day_open > 0:
        amplitude = safe_number((safe_number(quote.high) - safe_number(quote.low)) / day_open, 0.02)
    else:
        amplitude = 0.02
    return max(min_band, amplitude * band_factor)


@dataclass
class DeviationBandModel:
    """T0 乖离带信号模型。"""

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    min_band: float = 0.015
    band_factor: float = 0.6
    name: str = "t0"

    def evaluate(self, ctx: SignalContext) -> SignalReport:
        q = ctx.quote
        price = quote_price(q)
        prev_close = safe_number(q.prev_close)
        vwap = session_vwap(ctx.intraday, prev_close)
        if vwap <= 0:
            vwap = price

        band = day_band(q, self.min_band, self.band_factor)
        upper = vwap * (1 + band)
        lower = vwap * (1 - band)

        max_dist = vwap * band * 1.5
        strength = min(100.0, safe_number(abs(price - vwap) / max_dist * 100)) if max_dist > 0 else 0.0
        liquidity = liquidity_score(q)
        trend = trend_report(price, ctx.daily, self.indicators)
        rsi_value = trend.rsi

        buy_point: float | None
        sell_point: float | None
        if price < lower:
            phase, action, description = "opportunity", "Opportunity", DESC_OVERSOLD
            buy_point, sell_point = price, None
            confidence = 50.0
            if rsi_value < 30:
                confidence += 30
            elif rsi_value < 45:
                confidence += 10
            confidence += strength * 0.3
        elif price > upper:
            phase, action, description = "risk", "Risk", DESC_OVERBOUGHT
            buy_point, sell_point = None, price
            confidence = 50.0
            if rsi_value > 70:
                confidence += 30
            elif rsi_value > 55:
                confidence += 10
            confidence += strength * 0.3
        else:
            phase, action = "neutral", "Wait"
            description = DESC_ABOVE_VWAP if price > vwap else DESC_BELOW_VWAP
            buy_point, sell_point = lower, upper
            strength = max(10.0, strength)
            confidence = 40 + liquidity * 0.2
        confidence = clamp(confidence)

        stop, above_stop = stop_status(price, ctx.daily, self.indicators)
        holding = holding_report(price, ctx.holding, trend.position)

        return SignalReport(
            model=self.name,
            phase=phase,
            confidence=confidence,
            axis_scores=AxisScores(
                volume=clamp(liquidity),
                price=clamp(strength),
                time=clamp(trend.strength),
                space=clamp(range_position(ctx.daily, self.indicators.range_period)),
            ),
            stop_loss_price=stop,
            is_above_stop=above_stop,
            holding_advice=holding.advice if holding else None,
            trend=trend,
            holding=holding,
            band=BandSignal(
                action=action,
                buy_point=buy_point,
                sell_point=sell_point,
                description=description,
                vwap=vwap,
                band=band,
                upper_band=upper,
                lower_band=lower,
                strength=strength,
                strength_level=strength_level(strength),
                confidence=confidence,
                execution_score=liquidity,
            ),
        )
