"""日线序列 <-> DataFrame 转换。

所有数值先经 `safe_number` 清洗，因子层因此只面对有限浮点数。
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import pandas as pd

from shared.models.models import PricePoint
from shared.utils.numeric import safe_number

CANDLE_COLUMNS = ["date", "open", "close", "high", "low", "volume"]


def candles_frame(points: Sequence[PricePoint]) -> pd.DataFrame:
    """把 PricePoint 序列（旧 -> 新）转成新的 DataFrame，不修改输入。"""
    rows = [
        {
            "date": str(p.date),
            "open": safe_number(p.open),
            "close": safe_number(p.close),
            "high": safe_number(p.high),
            "low": safe_number(p.low),
            "volume": max(0.0, safe_number(p.volume)),
        }
        for p in points
    ]
    return pd.DataFrame(rows, columns=CANDLE_COLUMNS)


def optional_list(values: Iterable[float]) -> list[float | None]:
    """NaN/Inf -> None，其余转 float。"""
    out: list[float | None] = []
    for v in values:
        f = float(v)
        out.append(f if math.isfinite(f) else None)
    return out
