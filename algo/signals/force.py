"""五阶段“主力”模型（force）。

按固定顺序逐条判断（风险优先）：出货 → 拉升 → 洗盘 → 吸筹 → 混沌。
输入为安全绳（吊灯止损）、RSI、5 日量比与 5 日振幅。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

from algo.signals.base import AxisScores, ForceDetails, SignalContext, SignalReport
from algo.signals.common import holding_report, quote_price, stop_status, trend_report
from shared.config.schema import IndicatorConfig
from shared.models.models import PricePoint
from shared.utils.numeric import clamp, safe_number

Advice = Literal["Buy", "Sell", "Hold", "Wait"]


def volume_ratio_5d(daily: Sequence[PricePoint]) -> float:
    """近 5 日成交量之和 / 再往前 5 日之和；数据不足或分母为 0 时为 1.0。"""
    if len(daily) < 10:
        return 1.0
    recent = sum(max(0.0, safe_number(p.volume)) for p in daily[-5:])
    prior = sum(max(0.0, safe_number(p.volume)) for p in daily[-10:-5])
    if prior <= 0:
        return 1.0
    return safe_number(recent / prior, 1.0)


def amplitude_5d(daily: Sequence[PricePoint]) -> float:
    """近 5 日 (最高 - 最低) / 最低，百分比。"""
    if len(daily) < 5:
        return 0.0
    window = daily[-5:]
    hi = max(safe_number(p.high) for p in window)
    lo = min(safe_number(p.low) for p in window)
    if lo <= 0:
        return 0.0
    return safe_number((hi - lo) / lo * 100)


@dataclass
class ForcePhaseModel:
    """五阶段决策树。阈值可由配置覆盖，默认值即文档表格。"""

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    break_rsi: float = 35.0
    dump_change_max: float = 2.0
    dump_volume_ratio: float = 2.2
    dump_price_factor: float = 1.1
    lift_change_min: float = 3.0
    lift_volume_ratio: float = 1.5
    shakeout_change_low: float = -5.0
    shakeout_change_high: float = -1.5
    shakeout_volume_ratio: float = 0.8
    shakeout_rsi: float = 38.0
    accumulation_amplitude: float = 5.0
    accumulation_ratio_low: float = 1.1
    accumulation_ratio_high: float = 1.8
    name: str = "force"

    def classify(
        self,
        *,
        price: float,
        prev_close: float,
        day_change: float,
        above_stop: bool,
        rsi_value: float,
        vol_ratio: float,
        amp5: float,
    ) -> tuple[str, str, float, Advice]:
        """返回 (phase, label, confidence, advice)。"""
        if not above_stop and rsi_value > self.break_rsi:
            return "distribution", "break", 90.0, "Sell"
        if (
            day_change < self.dump_change_max
            and vol_ratio > self.dump_volume_ratio
            and price > prev_close * self.dump_price_factor
        ):
            return "distribution", "dump", 90.0, "Sell"
        if above_stop and day_change > self.lift_change_min and vol_ratio > self.lift_volume_ratio:
            return "lifting", "lifting", 88.0, "Buy"
        if (
            above_stop
            and self.shakeout_change_low < day_change < self.shakeout_change_high
            and vol_ratio < self.shakeout_volume_ratio
            and rsi_value > self.shakeout_rsi
        ):
            return "shakeout", "shakeout", 78.0, "Hold"
        if (
            above_stop
            and amp5 < self.accumulation_amplitude
            and self.accumulation_ratio_low < vol_ratio < self.accumulation_ratio_high
        ):
            return "accumulation", "accumulation", 70.0, "Hold"
        return "chaos", "chaos", 35.0, "Wait"

    def evaluate(self, ctx: SignalContext) -> SignalReport:
        q = ctx.quote
        price = quote_price(q)
        prev_close = safe_number(q.prev_close)
        day_change = safe_number(q.change_percent)
        trend = trend_report(price, ctx.daily, self.indicators)
        stop, above_stop = stop_status(price, ctx.daily, self.indicators)
        vol_ratio = volume_ratio_5d(ctx.daily)
        amp5 = amplitude_5d(ctx.daily)

        phase, label, confidence, advice = self.classify(
            price=price,
            prev_close=prev_close,
            day_change=day_change,
            above_stop=above_stop,
            rsi_value=trend.rsi,
            vol_ratio=vol_ratio,
            amp5=amp5,
        )
        holding = holding_report(price, ctx.holding, trend.position)

        return SignalReport(
            model=self.name,
            phase=phase,
            confidence=confidence,
            axis_scores=AxisScores(
                volume=clamp(vol_ratio / self.dump_volume_ratio * 100),
                price=clamp(50 + day_change * 10),
                time=clamp(trend.rsi),
                space=clamp(100 - amp5 * 10),
            ),
            stop_loss_price=stop,
            is_above_stop=above_stop,
            holding_advice=holding.advice if holding else None,
            trend=trend,
            holding=holding,
            force=ForceDetails(
                label=label,
                advice=advice,
                volume_ratio=vol_ratio,
                amplitude_5d=amp5,
                day_change=day_change,
                rsi=trend.rsi,
            ),
        )
