"""区间位置因子：收盘价在近 N 日高低区间中的百分位。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from algo.factors.base import require_columns
from algo.factors.frame import candles_frame
from shared.models.models import PricePoint
from shared.utils.logging import setup_logger
from shared.utils.numeric import safe_number

_LOGGER = setup_logger("factor-range-position")

NEUTRAL_POSITION = 50.0


@dataclass(frozen=True)
class RangePositionFactor:
    """(close - 最低) / (最高 - 最低) * 100；区间退化（高 == 低）时为 50。"""

    period: int = 20
    out_col: str | None = None
    name: str = "range_position"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("range position period must be > 0")
        object.__setattr__(self, "params", {"period": self.period, "out_col": self.out_col})

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, ("high", "low", "close"), "RangePositionFactor")
        out = self.out_col or f"range_pos_{self.period}"

        high = df["high"].astype(float).to_numpy()
        low = df["low"].astype(float).to_numpy()
        close = df["close"].astype(float).to_numpy()
        n = len(close)
        values = np.full(n, np.nan)
        if n >= self.period:
            hi = sliding_window_view(high, self.period).max(axis=1)
            lo = sliding_window_view(low, self.period).min(axis=1)
            span = hi - lo
            last = close[self.period - 1 :]
            with np.errstate(divide="ignore", invalid="ignore"):
                pos = np.where(span == 0.0, NEUTRAL_POSITION, (last - lo) / span * 100.0)
            values[self.period - 1 :] = pos
        df[out] = values
        return df


def range_position(points: Sequence[PricePoint], period: int = 20) -> float:
    """样本不足或区间退化时返回 50。"""
    factor = RangePositionFactor(period=period, out_col="pos")
    if len(points) < period:
        _LOGGER.debug("Range position(%s) needs %s bars, got %s; using %s", period, period, len(points), NEUTRAL_POSITION)
        return NEUTRAL_POSITION
    df = factor.compute(candles_frame(points))
    window = df.iloc[-period:]
    if window["high"].max() == window["low"].min():
        _LOGGER.debug("Range position(%s) over a flat range; using %s", period, NEUTRAL_POSITION)
    return safe_number(df["pos"].iloc[-1], NEUTRAL_POSITION)
