"""盯盘工具统一命令行入口。

子命令：

- `watch`：按固定间隔轮询行情，rich 看板实时刷新，挂单随行情自动撮合。
- `report`：单次拉取某标的行情/日线/分时并输出信号报告。
- `order` / `cancel`：模拟账户下单、撤单。
- `ledger` / `reset` / `capital` / `clear`：模拟账户查看与维护。
- `add` / `remove` / `hold`：自选列表与手工持仓维护。
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console
from rich.live import Live

from algo.factors.indicator_set import compute_indicator_set, indicator_frame
from algo.signals.base import SignalContext
from dashboard import generate_indicator_panel, generate_ledger_panel, generate_report_panel, make_layout
from engine.poller import QuotePoller
from engine.session import WatchSession, normalize_symbol
from market.client import QuoteClient
from shared.config.config_loader import load_config
from shared.config.schema import MainConfig
from shared.state.snapshot_store import build_snapshot_store
from shared.utils.logging import LogBuffer, capture_logs, set_global_level


@dataclass
class CliArgs:
    """命令行参数结构。

    config: 配置文件路径
    task: 子命令名
    """
    config: str
    task: str
    max_ticks: int | None = None  # 仅用于 debug，限制轮询多少个 tick 就停止
    symbol: str | None = None
    side: str | None = None
    price: float | None = None
    quantity: float | None = None
    order_id: str | None = None
    amount: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketwatch", description="行情盯盘 + 模拟交易")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `main.py --config ... ledger`（全局）与 `main.py ledger --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_watch = sub.add_parser("watch", help="实时盯盘")
    _add_config_arg(p_watch, default=argparse.SUPPRESS)
    p_watch.add_argument("--max-ticks", type=int, default=None, help="轮询多少次后退出")

    p_report = sub.add_parser("report", help="单标的信号报告")
    _add_config_arg(p_report, default=argparse.SUPPRESS)
    p_report.add_argument("symbol")

    p_order = sub.add_parser("order", help="模拟下单")
    _add_config_arg(p_order, default=argparse.SUPPRESS)
    p_order.add_argument("symbol")
    p_order.add_argument("side", choices=["buy", "sell", "BUY", "SELL"])
    p_order.add_argument("price", type=float)
    p_order.add_argument("quantity", type=float)

    p_cancel = sub.add_parser("cancel", help="撤销挂单")
    _add_config_arg(p_cancel, default=argparse.SUPPRESS)
    p_cancel.add_argument("symbol")
    p_cancel.add_argument("order_id")

    p_ledger = sub.add_parser("ledger", help="查看模拟账户")
    _add_config_arg(p_ledger, default=argparse.SUPPRESS)

    p_reset = sub.add_parser("reset", help="重置模拟账户")
    _add_config_arg(p_reset, default=argparse.SUPPRESS)

    p_capital = sub.add_parser("capital", help="重设初始本金")
    _add_config_arg(p_capital, default=argparse.SUPPRESS)
    p_capital.add_argument("amount", type=float)

    p_clear = sub.add_parser("clear", help="按成本清除某标的")
    _add_config_arg(p_clear, default=argparse.SUPPRESS)
    p_clear.add_argument("symbol")

    p_add = sub.add_parser("add", help="加入自选")
    _add_config_arg(p_add, default=argparse.SUPPRESS)
    p_add.add_argument("symbol")

    p_remove = sub.add_parser("remove", help="移出自选")
    _add_config_arg(p_remove, default=argparse.SUPPRESS)
    p_remove.add_argument("symbol")

    p_hold = sub.add_parser("hold", help="录入手工持仓（非法值即删除）")
    _add_config_arg(p_hold, default=argparse.SUPPRESS)
    p_hold.add_argument("symbol")
    p_hold.add_argument("cost")
    p_hold.add_argument("shares")

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    parser = build_parser()
    ns = parser.parse_args(argv)
    task = ns.task or "watch"
    config = getattr(ns, "config", "config/config.yml")
    symbol = getattr(ns, "symbol", None)
    extra: dict[str, Any] = {}
    if task == "hold":
        extra = {"cost": ns.cost, "shares": ns.shares}
    return CliArgs(
        config=str(config),
        task=task,
        max_ticks=getattr(ns, "max_ticks", None),
        symbol=normalize_symbol(symbol) if symbol else None,
        side=str(getattr(ns, "side", "") or "").upper() or None,
        price=getattr(ns, "price", None),
        quantity=getattr(ns, "quantity", None),
        order_id=getattr(ns, "order_id", None),
        amount=getattr(ns, "amount", None),
        extra=extra,
    )


def build_session(cfg: MainConfig) -> WatchSession:
    store = build_snapshot_store(cfg.state.backend, cfg.state.path)
    return WatchSession(cfg, store=store)


def run_watch(session: WatchSession, client: QuoteClient, max_ticks: int | None, console: Console) -> int:
    buffer = LogBuffer()
    poller = QuotePoller(session, client)
    with capture_logs(buffer), Live(
        make_layout(session, buffer.lines), console=console, refresh_per_second=4, screen=max_ticks is None
    ) as live:
        poller.on_tick = lambda s: live.update(make_layout(s, buffer.lines))
        return asyncio.run(poller.run(max_ticks=max_ticks))


def run_report(session: WatchSession, client: QuoteClient, symbol: str, console: Console):
    quotes = client.fetch_quotes([symbol]) or {}
    quote = quotes.get(symbol)
    if quote is None:
        console.print(f"[red]No quote for {symbol}[/red]")
        return None
    ctx = SignalContext(
        quote=quote,
        daily=tuple(client.fetch_daily(symbol) or ()),
        intraday=tuple(client.fetch_minutes(symbol) or ()),
        holding=session.holdings.get(symbol),
    )
    report = session.signal_model.evaluate(ctx)
    console.print(generate_report_panel(report))
    if ctx.daily:
        indicators = session.cfg.indicators
        console.print(
            generate_indicator_panel(
                symbol,
                compute_indicator_set(ctx.daily, indicators),
                indicator_frame(ctx.daily, indicators),
                minutes_seen=len(ctx.intraday),
            )
        )
    return report


def main(argv: list[str] | None = None, console: Console | None = None, client: QuoteClient | None = None) -> Any:
    """程序主入口；返回对应子命令的结果（便于测试断言）。"""
    args = parse_args(argv)
    cfg = load_config(args.config)
    set_global_level(cfg.log_level)
    console = console or Console()
    session = build_session(cfg)
    ledger = session.ledger

    if args.task == "watch":
        return run_watch(session, client or QuoteClient(cfg.quote), args.max_ticks, console)

    if args.task == "report":
        return run_report(session, client or QuoteClient(cfg.quote), args.symbol, console)

    if args.task == "ledger":
        console.print(generate_ledger_panel(ledger))
        return ledger.to_snapshot()

    result: Any
    if args.task == "order":
        result = ledger.submit_order(args.symbol, args.side, args.price, args.quantity)
    elif args.task == "cancel":
        result = ledger.cancel_order(args.order_id, args.symbol)
    elif args.task == "reset":
        result = ledger.reset_account()
    elif args.task == "capital":
        result = ledger.set_initial_capital(args.amount)
    elif args.task == "clear":
        result = ledger.clear_symbol(args.symbol)
    elif args.task == "add":
        result = {"status": "added" if session.add_symbol(args.symbol) else "exists", "symbols": session.symbols}
    elif args.task == "remove":
        result = {"status": "removed" if session.remove_symbol(args.symbol) else "not_found", "symbols": session.symbols}
    elif args.task == "hold":
        holding = session.set_holding(args.symbol, args.extra["cost"], args.extra["shares"])
        result = {"status": "saved" if holding else "removed", "symbol": args.symbol}
    else:
        raise ValueError(f"Unknown task: {args.task}")

    console.print(result)
    return result


if __name__ == "__main__":
    main()
