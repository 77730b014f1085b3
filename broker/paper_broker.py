"""模拟交易账户（paper）：挂单冻结 + 按价格触发撮合。

- 提交委托时立即冻结：买单冻结资金，卖单冻结持仓数量；
- 每个新价格 tick 同步扫一遍挂单，满足条件的按挂单价成交；
- 撤单是提交的精确逆操作；
- 所有操作以返回 dict 的 `status` 表示成败，拒绝时不改任何状态。
"""

from __future__ import annotations

import copy
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from shared.models.models import Order, Position, Side, Trade
from shared.utils.client_order_id import make_order_id, make_trade_id
from shared.utils.logging import setup_logger
from shared.utils.numeric import safe_number

DEFAULT_INITIAL_CAPITAL = 1_000_000.0

SnapshotCallback = Callable[[dict[str, Any]], None]


def _is_positive(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value) and value > 0


class PaperLedger:
    """纸面账户：全局现金 + 按标的的持仓/挂单/成交记录。"""

    def __init__(
        self,
        *,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
        cash: float | None = None,
        positions: Mapping[str, Position] | None = None,
        on_change: SnapshotCallback | None = None,
        clock: Callable[[], datetime] | None = None,
        order_seq: int = 0,
    ):
        if not _is_positive(initial_capital):
            raise ValueError("initial_capital must be > 0")
        self.logger = setup_logger("paper-ledger")
        self.initial_capital = float(initial_capital)
        self.cash = float(initial_capital if cash is None else cash)
        self.positions: dict[str, Position] = dict(positions or {})
        self.last_prices: dict[str, float] = {}
        self._on_change = on_change
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._order_seq = int(order_seq)

    def set_on_change(self, callback: SnapshotCallback | None) -> None:
        self._on_change = callback

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    def get_position(self, symbol: str) -> Position | None:
        return self.positions.get(symbol)

    def resting_orders(self, symbol: str) -> list[Order]:
        pos = self.positions.get(symbol)
        return list(pos.resting_orders) if pos else []

    def reserved_cash(self, symbol: str | None = None) -> float:
        """买单冻结资金（单个标的或全部）。"""
        symbols = [symbol] if symbol is not None else list(self.positions)
        total = 0.0
        for sym in symbols:
            pos = self.positions.get(sym)
            if not pos:
                continue
            total += sum(o.limit_price * o.quantity for o in pos.resting_orders if o.side == "BUY")
        return total

    def mark_price(self, symbol: str, marks: Mapping[str, float] | None = None) -> float:
        """最新标记价；未知时回退到持仓成本。"""
        if marks and _is_positive(marks.get(symbol)):
            return float(marks[symbol])
        if _is_positive(self.last_prices.get(symbol)):
            return self.last_prices[symbol]
        pos = self.positions.get(symbol)
        return pos.average_cost if pos else 0.0

    def total_equity(self, marks: Mapping[str, float] | None = None) -> float:
        """现金 + Σ 可用持仓 × 标记价。只读派生值，不落盘。"""
        total = self.cash
        for symbol, pos in self.positions.items():
            total += pos.quantity_held * self.mark_price(symbol, marks)
        return total

    def total_pnl(self, marks: Mapping[str, float] | None = None) -> float:
        return self.total_equity(marks) - self.initial_capital

    def unrealized_pnl(self, symbol: str, mark: float | None = None) -> dict[str, float] | None:
        """(mark - 成本) × 可用持仓；空仓返回 None。"""
        pos = self.positions.get(symbol)
        if not pos or pos.quantity_held <= 0:
            return None
        price = mark if _is_positive(mark) else self.mark_price(symbol)
        market_value = float(price) * pos.quantity_held
        cost_value = pos.average_cost * pos.quantity_held
        value = market_value - cost_value
        pct = value / cost_value * 100 if cost_value > 0 else 0.0
        return {"value": value, "percent": pct}

    # ------------------------------------------------------------------
    # 委托
    # ------------------------------------------------------------------
    def submit_order(self, symbol: str, side: str, limit_price: float, quantity: float) -> dict[str, Any]:
        side_u = str(side).upper()
        if side_u not in {"BUY", "SELL"}:
            return self._reject("submit", symbol, f"unsupported side {side}")
        if not _is_positive(limit_price):
            return self._reject("submit", symbol, "invalid_price")
        if not _is_positive(quantity):
            return self._reject("submit", symbol, "invalid_quantity")

        price = float(limit_price)
        qty = float(quantity)
        pos = self.positions.get(symbol) or Position(symbol=symbol)
        notional = price * qty

        if side_u == "BUY":
            if self.cash < notional:
                return self._reject(
                    "submit", symbol, "insufficient_cash", needed=notional, available=self.cash
                )
        elif pos.quantity_held < qty:
            return self._reject(
                "submit", symbol, "insufficient_quantity", needed=qty, available=pos.quantity_held
            )

        now = self._clock()
        self._order_seq += 1
        order = Order(
            id=make_order_id(symbol=symbol, side=side_u, submitted_at=now, seq=self._order_seq),
            side=side_u,  # type: ignore[arg-type]
            limit_price=price,
            quantity=qty,
            submitted_at=now.isoformat(),
        )
        if side_u == "BUY":
            self.cash -= notional
        else:
            pos.quantity_held -= qty
        pos.resting_orders.append(order)
        self.positions[symbol] = pos

        self.logger.info("[PAPER ORDER] %s %s qty=%s @ %s id=%s", side_u, symbol, qty, price, order.id)
        result: dict[str, Any] = {
            "status": "accepted",
            "order_id": order.id,
            "symbol": symbol,
            "side": side_u,
            "price": price,
            "quantity": qty,
            "reserved": notional if side_u == "BUY" else qty,
        }
        last = self.last_prices.get(symbol)
        if side_u == "BUY" and last is not None and price > last:
            result["warning"] = "limit_above_market"
        self._notify()
        return result

    def cancel_order(self, order_id: str, symbol: str | None = None) -> dict[str, Any]:
        found = self._find_order(order_id, symbol)
        if found is None:
            return {"status": "not_found", "order_id": order_id}
        sym, pos, order = found
        if order.side == "BUY":
            self.cash += order.limit_price * order.quantity
        else:
            pos.quantity_held += order.quantity
        pos.resting_orders = [o for o in pos.resting_orders if o.id != order_id]

        self.logger.info("[PAPER CANCEL] %s %s id=%s", order.side, sym, order_id)
        self._notify()
        return {"status": "cancelled", "order_id": order_id, "symbol": sym, "side": order.side}

    def _find_order(self, order_id: str, symbol: str | None) -> tuple[str, Position, Order] | None:
        symbols = [symbol] if symbol is not None else list(self.positions)
        for sym in symbols:
            pos = self.positions.get(sym)
            if not pos:
                continue
            for order in pos.resting_orders:
                if order.id == order_id:
                    return sym, pos, order
        return None

    # ------------------------------------------------------------------
    # 撮合
    # ------------------------------------------------------------------
    def match_tick(self, symbol: str, current_price: float) -> dict[str, Any]:
        """按最新价扫描该标的全部挂单（先提交先处理），满足条件即按挂单价成交。

        所有成交先在局部变量上计算，最后一次性写回，外部读不到中间态。
        """
        if not _is_positive(current_price):
            return {"status": "ignored", "symbol": symbol, "fills": []}
        price = float(current_price)
        self.last_prices[symbol] = price

        pos = self.positions.get(symbol)
        if not pos or not pos.resting_orders:
            return {"status": "ok", "symbol": symbol, "fills": []}

        cash = self.cash
        held = pos.quantity_held
        avg_cost = pos.average_cost
        realized = pos.realized_pnl
        trades = list(pos.trades)
        remaining: list[Order] = []
        fills: list[Trade] = []
        filled_at = self._clock().isoformat()

        for order in pos.resting_orders:
            if order.side == "BUY" and price <= order.limit_price:
                cost_basis = held * avg_cost + order.limit_price * order.quantity
                held += order.quantity
                avg_cost = cost_basis / held if held > 0 else 0.0
            elif order.side == "SELL" and price >= order.limit_price:
                cash += order.limit_price * order.quantity
                realized += (order.limit_price - avg_cost) * order.quantity
            else:
                remaining.append(order)
                continue
            trade = Trade(
                id=make_trade_id(order.id),
                side=order.side,
                fill_price=order.limit_price,
                quantity=order.quantity,
                filled_at=filled_at,
                notional=order.limit_price * order.quantity,
            )
            trades.append(trade)
            fills.append(trade)

        if not fills:
            return {"status": "ok", "symbol": symbol, "fills": []}

        self.cash = cash
        self.positions[symbol] = replace(
            pos,
            quantity_held=held,
            average_cost=avg_cost,
            realized_pnl=realized,
            trades=trades,
            resting_orders=remaining,
        )
        for t in fills:
            self.logger.info(
                "[PAPER FILL] %s %s qty=%s @ %s tick=%s", t.side, symbol, t.quantity, t.fill_price, price
            )
        self._notify()
        return {"status": "ok", "symbol": symbol, "fills": fills}

    # ------------------------------------------------------------------
    # 账户维护
    # ------------------------------------------------------------------
    def delete_trade(self, trade_id: str, symbol: str | None = None) -> dict[str, Any]:
        """仅从成交记录中移除，不回滚现金/持仓（与账户余额可能不再对得上）。"""
        symbols = [symbol] if symbol is not None else list(self.positions)
        for sym in symbols:
            pos = self.positions.get(sym)
            if not pos:
                continue
            kept = [t for t in pos.trades if t.id != trade_id]
            if len(kept) != len(pos.trades):
                pos.trades = kept
                self._notify()
                return {"status": "deleted", "trade_id": trade_id, "symbol": sym}
        return {"status": "not_found", "trade_id": trade_id}

    def reset_account(self) -> dict[str, Any]:
        self.positions = {}
        self.cash = self.initial_capital
        self.logger.info("[PAPER RESET] cash restored to %s", self.initial_capital)
        self._notify()
        return {"status": "reset", "cash": self.cash}

    def clear_symbol(self, symbol: str) -> dict[str, Any]:
        """按成本回滚：退回 可用持仓 × 成本 + 买单冻结资金，然后删除该标的。

        这是回滚而不是按市价平仓；卖单冻结的数量随持仓一并删除。
        """
        pos = self.positions.get(symbol)
        if pos is None:
            return {"status": "not_found", "symbol": symbol}
        refund = pos.quantity_held * pos.average_cost + self.reserved_cash(symbol)
        self.cash += refund
        del self.positions[symbol]
        self.last_prices.pop(symbol, None)
        self.logger.info("[PAPER CLEAR] %s refund=%s", symbol, refund)
        self._notify()
        return {"status": "cleared", "symbol": symbol, "refund": refund}

    def set_initial_capital(self, amount: float) -> dict[str, Any]:
        """重设本金：现金直接置为新本金，不处理已有持仓。"""
        if not _is_positive(amount):
            return self._reject("capital", "-", "invalid_amount")
        self.initial_capital = float(amount)
        self.cash = float(amount)
        self.logger.info("[PAPER CAPITAL] initial capital set to %s", amount)
        self._notify()
        return {"status": "accepted", "cash": self.cash, "initial_capital": self.initial_capital}

    # ------------------------------------------------------------------
    # 快照
    # ------------------------------------------------------------------
    def to_snapshot(self) -> dict[str, Any]:
        positions: dict[str, Any] = {}
        for symbol, pos in self.positions.items():
            positions[symbol] = {
                "holding": pos.quantity_held,
                "avgCost": pos.average_cost,
                "realizedPnl": pos.realized_pnl,
                "trades": [
                    {
                        "id": t.id,
                        "time": t.filled_at,
                        "price": t.fill_price,
                        "shares": t.quantity,
                        "type": t.side,
                        "amount": t.notional,
                    }
                    for t in pos.trades
                ],
                "pending": [
                    {
                        "id": o.id,
                        "time": o.submitted_at,
                        "price": o.limit_price,
                        "shares": o.quantity,
                        "type": o.side,
                    }
                    for o in pos.resting_orders
                ],
            }
        return {
            "cash": self.cash,
            "initialCapital": self.initial_capital,
            "orderSeq": self._order_seq,
            "positions": positions,
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Any,
        *,
        default_capital: float = DEFAULT_INITIAL_CAPITAL,
        on_change: SnapshotCallback | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> "PaperLedger":
        """从持久化快照恢复；兼容缺少 trades/pending/realizedPnl 的旧格式。"""
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("cash"), (int, float)):
            return cls(initial_capital=default_capital, on_change=on_change, clock=clock)

        capital = safe_number(snapshot.get("initialCapital"), default_capital)
        if capital <= 0:
            capital = default_capital
        positions: dict[str, Position] = {}
        raw_positions = snapshot.get("positions")
        if isinstance(raw_positions, dict):
            for symbol, raw in raw_positions.items():
                if isinstance(raw, dict):
                    positions[str(symbol)] = _position_from_snapshot(str(symbol), raw)

        return cls(
            initial_capital=capital,
            cash=safe_number(snapshot.get("cash"), capital),
            positions=positions,
            on_change=on_change,
            clock=clock,
            order_seq=int(safe_number(snapshot.get("orderSeq"), 0)),
        )

    # ------------------------------------------------------------------
    def _reject(self, op: str, symbol: str, reason: str, **extra: Any) -> dict[str, Any]:
        self.logger.info("[PAPER REJECT] %s %s reason=%s %s", op, symbol, reason, extra or "")
        return {"status": "rejected", "reason": reason, **extra}

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(copy.deepcopy(self.to_snapshot()))
        except Exception as exc:
            self.logger.warning("Ledger snapshot callback failed: %s", exc)


def _side(raw: Any) -> Side | None:
    text = str(raw or "").upper()
    if text in {"BUY", "SELL"}:
        return text  # type: ignore[return-value]
    return None


def _position_from_snapshot(symbol: str, raw: dict[str, Any]) -> Position:
    trades: list[Trade] = []
    for item in raw.get("trades") if isinstance(raw.get("trades"), list) else []:
        side = _side(item.get("type")) if isinstance(item, dict) else None
        if side is None:
            continue
        price = safe_number(item.get("price"))
        shares = safe_number(item.get("shares"))
        trades.append(
            Trade(
                id=str(item.get("id") or ""),
                side=side,
                fill_price=price,
                quantity=shares,
                filled_at=str(item.get("time") or ""),
                notional=safe_number(item.get("amount"), price * shares),
            )
        )

    orders: list[Order] = []
    for item in raw.get("pending") if isinstance(raw.get("pending"), list) else []:
        side = _side(item.get("type")) if isinstance(item, dict) else None
        if side is None:
            continue
        price = safe_number(item.get("price"))
        shares = safe_number(item.get("shares"))
        if price <= 0 or shares <= 0:
            continue
        orders.append(
            Order(
                id=str(item.get("id") or ""),
                side=side,
                limit_price=price,
                quantity=shares,
                submitted_at=str(item.get("time") or ""),
            )
        )

    return Position(
        symbol=symbol,
        quantity_held=max(0.0, safe_number(raw.get("holding"))),
        average_cost=max(0.0, safe_number(raw.get("avgCost"))),
        realized_pnl=safe_number(raw.get("realizedPnl")),
        trades=trades,
        resting_orders=orders,
    )
