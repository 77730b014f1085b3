"""行情源报文解析：实时报价文本、分时 JSON、日线 JSON。

全部为纯函数，便于离线测试；非法字段一律按 0 处理，不抛异常。
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from shared.models.models import MinutePoint, PricePoint, QuoteSnapshot
from shared.utils.numeric import safe_number

_CODE_RE = re.compile(r"v_(.*?)=")

# 报价字段下标（以 `~` 分隔）
IDX_NAME = 1
IDX_PRICE = 3
IDX_PREV_CLOSE = 4
IDX_PREV_CLOSE_US = 26
IDX_OPEN = 5
IDX_VOLUME = 6
IDX_CHANGE_PCT = 32
IDX_HIGH = 33
IDX_LOW = 34
IDX_AMOUNT = 37
IDX_TURNOVER = 38
MIN_FIELDS = 10

SESSION_MINUTES = {"us": 390, "hk": 330}
DEFAULT_SESSION_MINUTES = 241


def is_html(text: str) -> bool:
    """行情源偶尔返回错误页，需整体丢弃。"""
    head = text.lstrip()[:200].lower()
    return head.startswith("<!doctype html") or "<html" in head


def session_length(symbol: str) -> int:
    """单日交易分钟数，用于分时横轴。"""
    return SESSION_MINUTES.get(symbol[:2].lower(), DEFAULT_SESSION_MINUTES)


def _field(parts: list[str], idx: int) -> float:
    if idx >= len(parts):
        return 0.0
    return safe_number(parts[idx])


def parse_quote_line(line: str) -> QuoteSnapshot | None:
    parts = line.split("~")
    if len(parts) < MIN_FIELDS:
        return None
    match = _CODE_RE.search(line)
    symbol = match.group(1).strip() if match else ""
    if not symbol:
        return None

    is_us = symbol.startswith("us")
    price = _field(parts, IDX_PRICE)
    open_ = _field(parts, IDX_OPEN)
    prev_close = _field(parts, IDX_PREV_CLOSE_US if is_us else IDX_PREV_CLOSE)
    if prev_close <= 0:
        prev_close = price if price > 0 else open_

    return QuoteSnapshot(
        symbol=symbol,
        name=parts[IDX_NAME],
        price=price,
        prev_close=prev_close,
        open=open_,
        high=_field(parts, IDX_HIGH),
        low=_field(parts, IDX_LOW),
        change_percent=_field(parts, IDX_CHANGE_PCT),
        volume=_field(parts, IDX_VOLUME),
        turnover_rate=_field(parts, IDX_TURNOVER),
        amount=_field(parts, IDX_AMOUNT),
    )


def parse_quote_text(text: str) -> dict[str, QuoteSnapshot]:
    """解析 `v_code="...~...";` 形式的批量报价，字段不足的行直接跳过。"""
    if not text or is_html(text):
        return {}
    out: dict[str, QuoteSnapshot] = {}
    for line in text.split(";"):
        if not line.strip():
            continue
        quote = parse_quote_line(line)
        if quote is not None:
            out[quote.symbol] = quote
    return out


def _symbol_node(payload: Any, symbol: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        return {}
    data = payload.get("data")
    if not isinstance(data, dict):
        return {}
    node = data.get(symbol)
    return node if isinstance(node, dict) else {}


def _format_minute(raw: str) -> str:
    if len(raw) == 4 and raw.isdigit():
        return f"{raw[:2]}:{raw[2:]}"
    return raw


def minute_points(rows: Iterable[Any]) -> list[MinutePoint]:
    """`"HHMM price 累计量"` → 分时点；累计量差分为增量，负值截断为 0。"""
    points: list[MinutePoint] = []
    last_total = 0.0
    for index, row in enumerate(rows):
        parts = str(row).split(" ")
        if len(parts) < 2:
            continue
        price = safe_number(parts[1], float("nan"))
        total = safe_number(parts[2]) if len(parts) > 2 else last_total
        volume = total if index == 0 else total - last_total
        last_total = total
        if price != price:
            continue
        points.append(MinutePoint(time=_format_minute(parts[0]), price=price, volume=max(0.0, volume)))
    return points


def parse_minute_payload(payload: Any, symbol: str) -> list[MinutePoint]:
    node = _symbol_node(payload, symbol)
    inner = node.get("data")
    rows = inner.get("data") if isinstance(inner, dict) else None
    if not isinstance(rows, list):
        return []
    return minute_points(rows)


def parse_daily_payload(payload: Any, symbol: str) -> list[PricePoint] | None:
    """前复权日线优先，其次不复权；结构不符返回 None（保持旧数据不动）。"""
    node = _symbol_node(payload, symbol)
    rows = node.get("qfqday") or node.get("day")
    if not isinstance(rows, list):
        return None
    points: list[PricePoint] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 6:
            continue
        points.append(
            PricePoint(
                date=str(row[0]),
                open=safe_number(row[1]),
                close=safe_number(row[2]),
                high=safe_number(row[3]),
                low=safe_number(row[4]),
                volume=max(0.0, safe_number(row[5])),
            )
        )
    return points


def daily_param(symbol: str, bars: int = 320) -> str:
    if symbol.startswith("us"):
        return f"{symbol},day,,,{bars}"
    return f"{symbol},day,,,{bars},qfq"
