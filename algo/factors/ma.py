"""MA 因子。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns
from algo.factors.frame import candles_frame, optional_list
from shared.models.models import PricePoint
from shared.utils.logging import setup_logger

_LOGGER = setup_logger("factor-ma")


@dataclass(frozen=True)
class MAFactor:
    """简单移动平均（SMA）。"""

    window: int
    price_col: str = "close"
    out_col: str | None = None
    name: str = "ma"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.window <= 0:
            raise ValueError("MA window must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "window": self.window,
                "price_col": self.price_col,
                "out_col": self.out_col,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], "MAFactor")
        out = self.out_col or f"ma_{self.window}"
        df[out] = df[self.price_col].astype(float).rolling(self.window, min_periods=self.window).mean()
        return df


def moving_average(points: Sequence[PricePoint], period: int) -> list[float | None]:
    """收盘价 SMA；前 period-1 个位置为 None，样本不足时返回空列表。"""
    factor = MAFactor(window=period, out_col="ma")
    if len(points) < period:
        _LOGGER.debug("MA(%s) needs %s bars, got %s", period, period, len(points))
        return []
    df = factor.compute(candles_frame(points))
    return optional_list(df["ma"])
