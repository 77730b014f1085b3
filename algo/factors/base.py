"""指标因子协议。

因子输入为 `candles_frame` 产出的日线 DataFrame（date/open/close/high/low/volume），
`compute` 在其上追加指标列并返回同一个 df。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol

import pandas as pd


class Factor(Protocol):
    name: str
    params: Mapping[str, Any]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        ...


def require_columns(df: pd.DataFrame, columns: Iterable[str], owner: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{owner} requires column: {', '.join(missing)}")
