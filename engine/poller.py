"""固定间隔的报价轮询循环（asyncio）。

每个 tick 发起一次批量报价请求，不等待上一次请求结束：
阻塞的 HTTP 调用放到线程里跑，多个请求可以同时在途。
响应是否写入完全由会话的请求代号决定，这里不做取消。
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Callable

from engine.session import WatchSession
from market.client import QuoteClient
from shared.utils.logging import setup_logger

TickCallback = Callable[[WatchSession], None]


class QuotePoller:
    def __init__(
        self,
        session: WatchSession,
        client: QuoteClient,
        *,
        interval: float | None = None,
        on_tick: TickCallback | None = None,
    ):
        self.session = session
        self.client = client
        self.interval = float(interval if interval is not None else session.cfg.quote.poll_interval_secs)
        self.on_tick = on_tick
        self.logger = setup_logger("quote-poller")
        self.failed_ticks = 0
        self._series_seq: int | None = None

    async def poll_quotes_once(self) -> bool:
        seq = self.session.begin_quote_request()
        symbols = list(self.session.symbols)
        quotes = await asyncio.to_thread(self.client.fetch_quotes, symbols)
        applied = self.session.apply_quotes(quotes, seq)
        if not applied:
            self.logger.debug("Quote response seq=%s not applied", seq)
        return applied

    async def load_series(self, symbol: str) -> None:
        """拉取日线 + 分时；写入时再按当前选中标的校验。"""
        daily, minutes = await asyncio.gather(
            asyncio.to_thread(self.client.fetch_daily, symbol),
            asyncio.to_thread(self.client.fetch_minutes, symbol),
        )
        self.session.apply_daily(symbol, daily)
        self.session.apply_intraday(symbol, minutes)

    async def _tick(self) -> None:
        selected = self.session.selected
        selection_seq = self.session.selection_seq
        if selected is not None and selection_seq != self._series_seq:
            self._series_seq = selection_seq
            await asyncio.gather(self.poll_quotes_once(), self.load_series(selected))
        else:
            await self.poll_quotes_once()
        if self.on_tick is not None:
            self.on_tick(self.session)

    def _tick_done(self, pending: set[asyncio.Task], task: asyncio.Task) -> None:
        pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failed_ticks += 1
            self.logger.error("Tick failed: %r", exc, exc_info=exc)

    async def run(self, max_ticks: int | None = None) -> int:
        """按固定间隔发起 tick；返回发起的 tick 数。

        单个 tick 失败只记 ERROR（计入 `failed_ticks`），循环继续。
        """
        pending: set[asyncio.Task] = set()
        ticks = 0
        try:
            while max_ticks is None or ticks < max_ticks:
                task = asyncio.create_task(self._tick())
                pending.add(task)
                task.add_done_callback(partial(self._tick_done, pending))
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                await asyncio.sleep(self.interval)
        finally:
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        self.logger.info("Poll loop stopped after %s ticks (%s failed)", ticks, self.failed_ticks)
        return ticks
