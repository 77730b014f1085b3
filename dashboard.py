"""控制台看板（rich）：自选行情、信号报告、日线指标、模拟账户。

只负责把会话状态渲染成 rich 组件，不改任何状态。
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

import pandas as pd

from rich import box
from rich.console import Group
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from algo.anomaly.detector import Anomaly
from algo.factors.indicator_set import IndicatorSet
from algo.signals.base import SignalReport
from broker.paper_broker import PaperLedger
from engine.session import WatchSession
from market.parsers import session_length


def _pnl_color(value: float) -> str:
    return "red" if value >= 0 else "green"


def _fmt_price(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


def generate_header(session: WatchSession) -> Panel:
    """顶部 KPI：总资产 / 总盈亏 / 刷新时间"""
    ledger = session.ledger
    marks = session.marks()
    equity = ledger.total_equity(marks)
    pnl = ledger.total_pnl(marks)
    pnl_pct = pnl / ledger.initial_capital * 100 if ledger.initial_capital > 0 else 0.0
    color = _pnl_color(pnl)
    sign = "+" if pnl >= 0 else "-"

    grid = Table.grid(expand=True)
    grid.add_column(justify="center", ratio=1)
    grid.add_column(justify="center", ratio=1)
    grid.add_column(justify="center", ratio=1)
    grid.add_row(
        f"[bold white]Market Watch[/bold white] | {session.selected or '-'}",
        f"[bold yellow]Equity: {equity:,.2f}[/bold yellow]",
        f"[{color}]PnL: {sign}{abs(pnl):,.2f} ({sign}{abs(pnl_pct):.2f}%)[/{color}]\n"
        f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim]",
    )
    return Panel(grid, style="on blue")


def generate_watch_panel(session: WatchSession) -> Panel:
    table = Table(box=box.SIMPLE_HEAD, expand=True)
    table.add_column("Code", style="bold white")
    table.add_column("Name")
    table.add_column("Price", justify="right", style="cyan")
    table.add_column("Chg%", justify="right")
    table.add_column("Turnover%", justify="right", style="dim white")

    for sym in session.symbols:
        q = session.quotes.get(sym)
        marker = "> " if sym == session.selected else "  "
        if q is None:
            table.add_row(marker + sym, "", "-", "-", "-")
            continue
        color = _pnl_color(q.change_percent)
        table.add_row(
            marker + sym,
            q.name,
            f"{q.price:.2f}",
            f"[{color}]{q.change_percent:+.2f}[/{color}]",
            f"{q.turnover_rate:.2f}",
        )
    return Panel(table, title="Watch List")


def generate_report_panel(report: SignalReport | None, anomaly: Anomaly | None = None) -> Panel:
    if report is None:
        return Panel(Text("Waiting for quotes...", style="dim"), title="Signal")

    axes = report.axis_scores
    lines = [
        f"[bold]{report.model.upper()}[/bold]  phase=[bold cyan]{report.phase}[/bold cyan]"
        f"  confidence={report.confidence:.0f}",
        f"volume {axes.volume:.0f} | price {axes.price:.0f} | time {axes.time:.0f} | space {axes.space:.0f}",
        f"stop {_fmt_price(report.stop_loss_price)}  "
        + ("[green]above stop[/green]" if report.is_above_stop else "[red]below stop[/red]"),
    ]
    if report.band is not None:
        band = report.band
        lines.append(
            f"T0 {band.action}: buy {_fmt_price(band.buy_point)} / sell {_fmt_price(band.sell_point)}"
            f"  vwap {band.vwap:.2f}  band {band.band * 100:.2f}%"
        )
        lines.append(f"[dim]{band.description}[/dim]")
    if report.force is not None:
        f = report.force
        lines.append(
            f"{f.label} ({f.advice})  vol-ratio {f.volume_ratio:.2f}  amp5 {f.amplitude_5d:.2f}%  rsi {f.rsi:.1f}"
        )
    trend = report.trend
    lines.append(
        f"trend {trend.position}/{trend.direction}  strength {trend.strength:.0f} ({trend.strength_level})"
    )
    lines.append(f"[dim]{trend.advice}[/dim]")
    if report.holding is not None:
        h = report.holding
        color = _pnl_color(h.pnl)
        lines.append(f"holding [{color}]{h.pnl:+,.2f} ({h.pnl_percent:+.2f}%)[/{color}]  {h.advice}")
    if anomaly is not None:
        lines.append(f"[bold magenta]{anomaly.label}[/bold magenta] ({anomaly.win_rate})")
    return Panel(Text.from_markup("\n".join(lines)), title="Signal")


def _fmt_optional(value: float | None, digits: int = 2) -> str:
    if value is None or pd.isna(value):
        return "-"
    return f"{value:.{digits}f}"


def _table_columns(frame: pd.DataFrame) -> list[str]:
    prefixes = ("ma_", "rsi_", "stop_")
    picked = [c for c in frame.columns if c.startswith(prefixes)]
    return ["date", "close", *picked, "macd_bar"]


def generate_indicator_panel(
    symbol: str | None,
    indicators: IndicatorSet | None,
    frame: pd.DataFrame | None = None,
    minutes_seen: int = 0,
    rows: int = 5,
) -> Panel:
    """日线指标：IndicatorSet 最新值 + 最近几根的指标列。"""
    if symbol is None or indicators is None:
        return Panel(Text("Waiting for daily bars...", style="dim"), title="Indicators")

    m = indicators.macd
    header = (
        f"MA {_fmt_optional(indicators.last_ma)}  RSI {indicators.rsi:.1f}  "
        f"stop {_fmt_optional(indicators.last_stop)}  range {indicators.range_position:.0f}%\n"
        + (
            "MACD -"
            if m.empty
            else f"MACD dif {m.dif[-1]:.3f}  dea {m.dea[-1]:.3f}  bar {m.bar[-1]:+.3f}"
        )
        + f"\n[dim]intraday {minutes_seen}/{session_length(symbol)} min[/dim]"
    )
    parts: list = [Text.from_markup(header)]

    if frame is not None and not frame.empty:
        cols = [c for c in _table_columns(frame) if c in frame.columns]
        table = Table(box=box.SIMPLE_HEAD, expand=True)
        for c in cols:
            table.add_column(c, justify="left" if c == "date" else "right")
        for _, row in frame.tail(rows).iterrows():
            table.add_row(*[str(row[c]) if c == "date" else _fmt_optional(row[c]) for c in cols])
        parts.append(table)
    return Panel(Group(*parts), title=f"Indicators {symbol}")


def generate_ledger_panel(ledger: PaperLedger, marks: dict[str, float] | None = None) -> Panel:
    table = Table(box=box.SIMPLE_HEAD, expand=True)
    table.add_column("Symbol", style="cyan bold")
    table.add_column("Held", justify="right")
    table.add_column("Avg Cost", justify="right")
    table.add_column("Mark", justify="right")
    table.add_column("Unrealized", justify="right")
    table.add_column("Realized", justify="right")
    table.add_column("Pending", justify="right", style="dim white")

    for sym, pos in ledger.positions.items():
        mark = ledger.mark_price(sym, marks)
        upnl = ledger.unrealized_pnl(sym, mark)
        upnl_text = "-"
        if upnl is not None:
            color = _pnl_color(upnl["value"])
            upnl_text = f"[{color}]{upnl['value']:+,.2f}[/{color}]"
        table.add_row(
            sym,
            f"{pos.quantity_held:g}",
            f"{pos.average_cost:.3f}",
            f"{mark:.2f}",
            upnl_text,
            f"{pos.realized_pnl:+,.2f}",
            str(len(pos.resting_orders)),
        )

    orders = [
        f"[dim]{o.id}[/dim] [bold]{sym}[/bold] {o.side} {o.quantity:g} @ {o.limit_price:.2f}"
        for sym, pos in ledger.positions.items()
        for o in pos.resting_orders
    ]
    summary = Text(
        f"cash {ledger.cash:,.2f} | capital {ledger.initial_capital:,.2f} | "
        f"equity {ledger.total_equity(marks):,.2f}",
        style="bold",
    )
    group = Group(
        summary,
        table,
        Text("Resting orders:", style="bold underline"),
        Text.from_markup("\n".join(orders) if orders else "No resting orders"),
    )
    return Panel(group, title="Paper Ledger")


def generate_logs_panel(lines: Iterable[str]) -> Panel:
    return Panel(Text("\n".join(lines), style="dim white"), title="Logs", box=box.SIMPLE)


def make_layout(session: WatchSession, logs: Iterable[str] = ()) -> Layout:
    layout = Layout()
    layout.split_column(
        Layout(name="header", size=4),
        Layout(name="body", ratio=1),
        Layout(name="footer", ratio=1),
        Layout(name="logs", size=7),
    )
    layout["body"].split_row(
        Layout(name="watch", ratio=3),
        Layout(name="report", ratio=4),
        Layout(name="indicators", ratio=4),
    )
    layout["header"].update(generate_header(session))
    layout["watch"].update(generate_watch_panel(session))
    layout["report"].update(generate_report_panel(session.report(), session.anomaly()))
    sym = session.selected
    layout["indicators"].update(
        generate_indicator_panel(
            sym,
            session.indicators(),
            session.indicator_table(),
            minutes_seen=len(session.intraday.get(sym, ())) if sym else 0,
        )
    )
    layout["footer"].update(generate_ledger_panel(session.ledger, session.marks()))
    layout["logs"].update(generate_logs_panel(logs))
    return layout
