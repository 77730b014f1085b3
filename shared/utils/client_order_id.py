"""模拟委托 ID 生成。

要求：
- 同一账户内唯一（时间戳 + 单调序号）。
- 长度可控，便于在界面/命令行里引用（用 hash 缩短）。
"""

from __future__ import annotations

import hashlib
from datetime import datetime


def make_order_id(
    *,
    symbol: str,
    side: str,
    submitted_at: datetime,
    seq: int,
) -> str:
    raw = "|".join(
        [
            str(symbol),
            str(side),
            submitted_at.isoformat(),
            str(int(seq)),
        ]
    )
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]
    return f"wk_{digest}"


def make_trade_id(order_id: str) -> str:
    """成交 ID 由委托 ID 派生，一单一笔成交。"""
    return f"{order_id}_exec"
