"""吊灯止损（Chandelier Exit）因子。

stop[i] = 最近 period 根最高价 - ATR * multiplier，
ATR 为同一窗口内真实波幅的简单平均。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from algo.factors.base import require_columns
from algo.factors.frame import candles_frame, optional_list
from shared.models.models import PricePoint
from shared.utils.logging import setup_logger

_LOGGER = setup_logger("factor-trailing-stop")


def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """真实波幅；首根只用 high-low，结果下限为 0。"""
    prev_close = np.concatenate(([np.nan], close[:-1]))
    tr = high - low
    with np.errstate(invalid="ignore"):
        tr = np.fmax(tr, np.abs(high - prev_close))
        tr = np.fmax(tr, np.abs(low - prev_close))
    return np.clip(np.nan_to_num(tr, nan=0.0), 0.0, None)


@dataclass(frozen=True)
class TrailingStopFactor:
    """吊灯止损线（同时输出 ATR 列）。"""

    period: int = 22
    multiplier: float = 3.0
    high_col: str = "high"
    low_col: str = "low"
    close_col: str = "close"
    out_col: str | None = None
    name: str = "trailing_stop"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("trailing stop period must be > 0")
        if self.multiplier < 0:
            raise ValueError("trailing stop multiplier must be >= 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "multiplier": self.multiplier,
                "high_col": self.high_col,
                "low_col": self.low_col,
                "close_col": self.close_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.high_col, self.low_col, self.close_col), "TrailingStopFactor")
        out = self.out_col or f"stop_{self.period}"

        high = df[self.high_col].astype(float).to_numpy()
        low = df[self.low_col].astype(float).to_numpy()
        close = df[self.close_col].astype(float).to_numpy()
        n = len(high)
        atr_values = np.full(n, np.nan)
        stop_values = np.full(n, np.nan)
        if n >= self.period:
            tr = true_range(high, low, close)
            atr = sliding_window_view(tr, self.period).mean(axis=1)
            highest = sliding_window_view(high, self.period).max(axis=1)
            atr_values[self.period - 1 :] = atr
            stop_values[self.period - 1 :] = highest - atr * float(self.multiplier)
        df[f"atr_{self.period}"] = atr_values
        df[out] = stop_values
        return df


def trailing_stop(points: Sequence[PricePoint], period: int = 22, multiplier: float = 3.0) -> list[float | None]:
    """前 period-1 个位置为 None；样本不足时返回空列表。"""
    factor = TrailingStopFactor(period=period, multiplier=multiplier, out_col="stop")
    if len(points) < period:
        _LOGGER.debug("Trailing stop(%s) needs %s bars, got %s", period, period, len(points))
        return []
    df = factor.compute(candles_frame(points))
    return optional_list(df["stop"])


def last_stop(points: Sequence[PricePoint], period: int = 22, multiplier: float = 3.0) -> float | None:
    """最新一根的止损位，无定义时为 None。"""
    values = trailing_stop(points, period, multiplier)
    return values[-1] if values else None
