"""IndicatorSet：每次日线序列变化时整体重算，不做增量更新。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import pandas as pd

from algo.factors.frame import candles_frame
from algo.factors.ma import moving_average
from algo.factors.macd import MACDResult, macd
from algo.factors.range_position import range_position
from algo.factors.registry import apply_factors, build_factors, factor_specs
from algo.factors.rsi import rsi
from algo.factors.trailing_stop import trailing_stop
from shared.config.schema import IndicatorConfig
from shared.models.models import PricePoint


@dataclass(frozen=True)
class IndicatorSet:
    ma: list[float | None]
    rsi: float
    macd: MACDResult
    trailing_stop: list[float | None]
    range_position: float

    @property
    def last_ma(self) -> float | None:
        return self.ma[-1] if self.ma else None

    @property
    def last_stop(self) -> float | None:
        return self.trailing_stop[-1] if self.trailing_stop else None


def compute_indicator_set(points: Sequence[PricePoint], cfg: IndicatorConfig | None = None) -> IndicatorSet:
    cfg = cfg or IndicatorConfig()
    return IndicatorSet(
        ma=moving_average(points, cfg.ma_period),
        rsi=rsi(points, cfg.rsi_period),
        macd=macd(points, cfg.macd.short, cfg.macd.long, cfg.macd.mid),
        trailing_stop=trailing_stop(points, cfg.trailing_stop.period, cfg.trailing_stop.multiplier),
        range_position=range_position(points, cfg.range_period),
    )


def indicator_frame(points: Sequence[PricePoint], cfg: IndicatorConfig | None = None) -> pd.DataFrame:
    """日线 + 全部指标列的 DataFrame（图表层使用）。"""
    factors = build_factors(factor_specs(cfg or IndicatorConfig()))
    return apply_factors(candles_frame(points), factors)
