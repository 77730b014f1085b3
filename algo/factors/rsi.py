"""RSI 因子。"""

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

_LOGGER = setup_logger("factor-rsi")

NEUTRAL_RSI = 50.0


@dataclass(frozen=True)
class RSIFactor:
    """相对强弱指数（RSI，窗口均值版本）。

    第 i 根的涨跌 = close[i] - close[i-1]；前收缺失或非正时退化为 close[i] - open[i]。
    窗口内平均跌幅恰为 0 时输出 100。前 period 根没有完整窗口，输出 NaN。
    """

    period: int = 6
    price_col: str = "close"
    open_col: str = "open"
    out_col: str | None = None
    name: str = "rsi"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError("RSI period must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "period": self.period,
                "price_col": self.price_col,
                "open_col": self.open_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, (self.price_col, self.open_col), "RSIFactor")
        out = self.out_col or f"rsi_{self.period}"

        close = df[self.price_col].astype(float).to_numpy()
        opens = df[self.open_col].astype(float).to_numpy()
        n = len(close)
        values = np.full(n, np.nan)
        if n > self.period:
            prev = np.concatenate(([np.nan], close[:-1]))
            usable_prev = np.isfinite(prev) & (prev > 0)
            delta = np.where(usable_prev, close - np.where(usable_prev, prev, 0.0), close - opens)
            gain = np.clip(delta, 0.0, None)
            loss = np.clip(-delta, 0.0, None)

            avg_gain = sliding_window_view(gain, self.period).mean(axis=1)
            avg_loss = sliding_window_view(loss, self.period).mean(axis=1)
            with np.errstate(divide="ignore", invalid="ignore"):
                rs = avg_gain / avg_loss
                rsi = np.where(avg_loss == 0.0, 100.0, 100.0 - (100.0 / (1.0 + rs)))
            # 窗口 k 覆盖 [k, k+period-1]；只保留不含首根的完整窗口
            values[self.period :] = rsi[1:]
        df[out] = values
        return df


def rsi(points: Sequence[PricePoint], period: int = 6) -> float:
    """最近一个窗口的 RSI；样本数 <= period 时返回 50。"""
    factor = RSIFactor(period=period, out_col="rsi")
    if len(points) <= period:
        _LOGGER.debug("RSI(%s) needs more than %s bars, got %s; using %s", period, period, len(points), NEUTRAL_RSI)
        return NEUTRAL_RSI
    df = factor.compute(candles_frame(points))
    value = safe_number(df["rsi"].iloc[-1], NEUTRAL_RSI)
    return min(100.0, max(0.0, value))
