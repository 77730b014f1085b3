"""核心数据结构：行情快照、日线/分时点、委托、成交、持仓。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Side = Literal["BUY", "SELL"]


@dataclass(frozen=True)
class PricePoint:
    """日线 K 线（按日期升序排列，整体替换，不做原地修改）。"""
    date: str
    open: float
    close: float
    high: float
    low: float
    volume: float


@dataclass(frozen=True)
class MinutePoint:
    """分时点；volume 为相对上一分钟的增量成交量（>= 0）。"""
    time: str
    price: float
    volume: float


@dataclass(frozen=True)
class QuoteSnapshot:
    """实时报价快照，每次轮询整体替换。"""
    symbol: str
    price: float
    prev_close: float = 0.0
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    turnover_rate: float = 0.0
    amount: float = 0.0
    name: str = ""


@dataclass(frozen=True)
class Holding:
    """用户手工录入的持仓成本（与模拟账户独立）。"""
    cost: float
    shares: float


@dataclass(frozen=True)
class Order:
    """挂单（Submitted → Filled | Cancelled）。"""
    id: str
    side: Side
    limit_price: float
    quantity: float
    submitted_at: str


@dataclass(frozen=True)
class Trade:
    """成交记录，写入后不可变。"""
    id: str
    side: Side
    fill_price: float
    quantity: float
    filled_at: str
    notional: float


@dataclass
class Position:
    """单一标的的模拟持仓。

    quantity_held 为“可用”数量：卖单提交时即预扣。
    """
    symbol: str
    quantity_held: float = 0.0
    average_cost: float = 0.0
    realized_pnl: float = 0.0
    trades: list[Trade] = field(default_factory=list)
    resting_orders: list[Order] = field(default_factory=list)
