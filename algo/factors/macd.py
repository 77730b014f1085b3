"""MACD 因子。

EMA 以首根收盘价作为种子（不是前 period 根的 SMA），
递推式 ema = (2*x + (n-1)*ema_prev) / (n+1)，等价于 pandas `ewm(span=n, adjust=False)`。
早期数值因此偏粗糙，但与历史版本的输出保持一致。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from algo.factors.base import require_columns
from algo.factors.frame import candles_frame, optional_list
from shared.models.models import PricePoint
from shared.utils.logging import setup_logger

_LOGGER = setup_logger("factor-macd")


@dataclass(frozen=True)
class MACDResult:
    dif: list[float]
    dea: list[float]
    bar: list[float]

    @property
    def empty(self) -> bool:
        return not self.dif


@dataclass(frozen=True)
class MACDFactor:
    """MACD（dif/dea/bar 三列）。"""

    short: int = 12
    long: int = 26
    mid: int = 9
    price_col: str = "close"
    out_prefix: str = "macd"
    name: str = "macd"
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.short <= 0 or self.long <= 0 or self.mid <= 0:
            raise ValueError("MACD periods must be > 0")
        object.__setattr__(
            self,
            "params",
            {
                "short": self.short,
                "long": self.long,
                "mid": self.mid,
                "price_col": self.price_col,
                "out_prefix": self.out_prefix,
            },
        )

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        require_columns(df, [self.price_col], "MACDFactor")
        close = df[self.price_col].astype(float)
        ema_short = close.ewm(span=self.short, adjust=False).mean()
        ema_long = close.ewm(span=self.long, adjust=False).mean()
        dif = ema_short - ema_long
        dea = dif.ewm(span=self.mid, adjust=False).mean()
        df[f"{self.out_prefix}_dif"] = dif
        df[f"{self.out_prefix}_dea"] = dea
        df[f"{self.out_prefix}_bar"] = (dif - dea) * 2.0
        return df


def macd(points: Sequence[PricePoint], short: int = 12, long: int = 26, mid: int = 9) -> MACDResult:
    """样本数 < long 时返回空结果。"""
    factor = MACDFactor(short=short, long=long, mid=mid)
    if len(points) < long:
        _LOGGER.debug("MACD needs %s bars, got %s", long, len(points))
        return MACDResult(dif=[], dea=[], bar=[])
    df = factor.compute(candles_frame(points))
    return MACDResult(
        dif=[v or 0.0 for v in optional_list(df["macd_dif"])],
        dea=[v or 0.0 for v in optional_list(df["macd_dea"])],
        bar=[v or 0.0 for v in optional_list(df["macd_bar"])],
    )
