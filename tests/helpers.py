from __future__ import annotations

from shared.models.models import MinutePoint, PricePoint, QuoteSnapshot


def bars(closes: list[float], spread: float = 0.5, volume: float = 1000.0) -> list[PricePoint]:
    return [
        PricePoint(
            date=f"D{i:03d}",
            open=c,
            close=c,
            high=c + spread,
            low=c - spread,
            volume=volume,
        )
        for i, c in enumerate(closes)
    ]


def quote(symbol: str = "sh600519", price: float = 100.0, **kwargs) -> QuoteSnapshot:
    base = dict(prev_close=100.0, open=100.0, high=101.0, low=99.0)
    base.update(kwargs)
    return QuoteSnapshot(symbol=symbol, price=price, **base)


def minutes(prices: list[float], volume: float = 100.0) -> list[MinutePoint]:
    return [MinutePoint(time=f"09:{30 + i:02d}", price=p, volume=volume) for i, p in enumerate(prices)]
