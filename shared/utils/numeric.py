"""数值安全工具。

行情上游可能给出空串、None、NaN、Infinity；指标与信号层统一经由
`safe_number` 收敛，保证输出永远是有限数。
"""

from __future__ import annotations

import math
from typing import Any, Literal

StrengthLevel = Literal["very-weak", "weak", "moderate", "strong", "very-strong"]


def safe_number(value: Any, fallback: float = 0.0) -> float:
    """把任意输入转成有限 float；无法转换或非有限时返回 fallback。"""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        try:
            out = float(value.strip())
        except ValueError:
            return fallback
    else:
        try:
            out = float(value)
        except (TypeError, ValueError):
            return fallback
    if math.isnan(out) or math.isinf(out):
        return fallback
    return out


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    v = safe_number(value, lo)
    return max(lo, min(hi, v))


def strength_level(value: float) -> StrengthLevel:
    """0~100 强度映射为五档标签（20/40/60/80 分界）。"""
    v = safe_number(value, 0.0)
    if v < 20:
        return "very-weak"
    if v < 40:
        return "weak"
    if v < 60:
        return "moderate"
    if v < 80:
        return "strong"
    return "very-strong"
