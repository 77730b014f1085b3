"""信号模型协议与报告结构。

两套启发式（日内乖离带 "t0" / 五阶段主力 "force"）实现同一个
`SignalModel` 接口，由配置选择，报告结构对上层渲染保持一致。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol, Sequence

from shared.models.models import Holding, MinutePoint, PricePoint, QuoteSnapshot
from shared.utils.numeric import StrengthLevel

TrendPosition = Literal["low", "mid", "high"]
TrendDirection = Literal["bullish", "bearish", "range"]


@dataclass(frozen=True)
class SignalContext:
    """一次评估的全部输入（快照、日线、分时、可选持仓）。"""
    quote: QuoteSnapshot
    daily: Sequence[PricePoint] = field(default_factory=tuple)
    intraday: Sequence[MinutePoint] = field(default_factory=tuple)
    holding: Holding | None = None


@dataclass(frozen=True)
class AxisScores:
    """量/价/时/空 四维评分，均在 0~100。"""
    volume: float
    price: float
    time: float
    space: float


@dataclass(frozen=True)
class TrendReport:
    position: TrendPosition
    direction: TrendDirection
    rsi: float
    strength: float
    strength_level: StrengthLevel
    advice: str


@dataclass(frozen=True)
class HoldingReport:
    pnl: float
    pnl_percent: float
    advice: str


@dataclass(frozen=True)
class BandSignal:
    """日内乖离带（T0）细节。buy/sell 点不适用时为 None。"""
    action: str
    buy_point: float | None
    sell_point: float | None
    description: str
    vwap: float
    band: float
    upper_band: float
    lower_band: float
    strength: float
    strength_level: StrengthLevel
    confidence: float
    execution_score: float


@dataclass(frozen=True)
class ForceDetails:
    """五阶段模型细节。"""
    label: str
    advice: Literal["Buy", "Sell", "Hold", "Wait"]
    volume_ratio: float
    amplitude_5d: float
    day_change: float
    rsi: float


@dataclass(frozen=True)
class SignalReport:
    model: str
    phase: str
    confidence: float
    axis_scores: AxisScores
    stop_loss_price: float | None
    is_above_stop: bool
    holding_advice: str | None
    trend: TrendReport
    holding: HoldingReport | None = None
    band: BandSignal | None = None
    force: ForceDetails | None = None


class SignalModel(Protocol):
    """信号模型协议：`evaluate(ctx) -> SignalReport`，纯函数语义。"""

    name: str

    def evaluate(self, ctx: SignalContext) -> SignalReport:
        ...
