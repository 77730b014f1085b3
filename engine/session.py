"""盯盘会话状态：自选列表、手工持仓、行情缓存、模拟账户。

- 启动时从 SnapshotStore 读入 codes / portfolio / ledger 三节；
- 每次变更后回写对应一节，写失败只记 WARNING；
- 批量报价按请求代号（generation）判定是否过期；
- 日线/分时按“响应到达时”的选中标的判定是否过期，日线写入时整体重算指标；
- 报价写入后同步触发挂单撮合，读方看不到撮合前的中间态。
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

import pandas as pd

from algo.anomaly.detector import Anomaly, detect_anomaly
from algo.factors.indicator_set import IndicatorSet, compute_indicator_set, indicator_frame
from algo.signals.base import SignalContext, SignalModel, SignalReport
from algo.signals.registry import build_signal_model
from broker.paper_broker import PaperLedger
from shared.config.schema import MainConfig
from shared.models.models import Holding, MinutePoint, PricePoint, QuoteSnapshot
from shared.state.snapshot_store import MemorySnapshotStore, SnapshotStore
from shared.utils.logging import setup_logger

CODES_KEY = "codes"
PORTFOLIO_KEY = "portfolio"
LEDGER_KEY = "ledger"


def normalize_symbol(raw: Any) -> str:
    """市场前缀小写（hk/sh/sz/us），代码部分原样保留。"""
    sym = str(raw or "").strip()
    return sym[:2].lower() + sym[2:] if sym else ""


def should_apply(request_seq: int, current_seq: int) -> bool:
    """只有最新一次请求的响应才允许写入。"""
    return request_seq == current_seq


class WatchSession:
    def __init__(
        self,
        cfg: MainConfig | None = None,
        *,
        store: SnapshotStore | None = None,
        signal_model: SignalModel | None = None,
        ledger: PaperLedger | None = None,
    ):
        self.cfg = cfg or MainConfig()
        self.logger = setup_logger("watch-session")
        self.store: SnapshotStore = store or MemorySnapshotStore()
        self.signal_model = signal_model or build_signal_model(self.cfg.signal, self.cfg.indicators)

        self.symbols: list[str] = self._load_symbols()
        self.holdings: dict[str, Holding] = self._load_holdings()
        if ledger is None:
            ledger = PaperLedger.from_snapshot(
                self._safe_load(LEDGER_KEY),
                default_capital=self.cfg.ledger.initial_capital,
            )
        self.ledger = ledger
        self.ledger.set_on_change(self._save_ledger)

        self.quotes: dict[str, QuoteSnapshot] = {}
        self.daily: dict[str, list[PricePoint]] = {}
        self.intraday: dict[str, list[MinutePoint]] = {}
        self.indicator_sets: dict[str, IndicatorSet] = {}
        self.indicator_frames: dict[str, pd.DataFrame] = {}
        self.selected: str | None = self.symbols[0] if self.symbols else None
        self.selection_seq = 0
        self._quote_seq = 0

    # ------------------------------------------------------------------
    # 持久化
    # ------------------------------------------------------------------
    def _safe_load(self, key: str) -> Any:
        try:
            return self.store.load(key)
        except Exception as exc:
            self.logger.warning("Failed to load %s snapshot: %s", key, exc)
            return None

    def _save(self, key: str, payload: Any) -> None:
        try:
            self.store.save(key, payload)
        except Exception as exc:
            self.logger.warning("Failed to save %s snapshot: %s", key, exc)

    def _save_ledger(self, snapshot: dict[str, Any]) -> None:
        self._save(LEDGER_KEY, snapshot)

    def _load_symbols(self) -> list[str]:
        raw = self._safe_load(CODES_KEY)
        source = raw if isinstance(raw, list) else self.cfg.symbols
        out: list[str] = []
        for item in source:
            sym = normalize_symbol(item)
            if sym and sym not in out:
                out.append(sym)
        return out

    def _load_holdings(self) -> dict[str, Holding]:
        raw = self._safe_load(PORTFOLIO_KEY)
        if not isinstance(raw, dict):
            return {}
        out: dict[str, Holding] = {}
        for sym, item in raw.items():
            if not isinstance(item, dict):
                continue
            holding = _valid_holding(item.get("cost"), item.get("shares"))
            if holding is not None:
                out[str(sym)] = holding
        return out

    def portfolio_snapshot(self) -> dict[str, dict[str, float]]:
        return {sym: {"cost": h.cost, "shares": h.shares} for sym, h in self.holdings.items()}

    # ------------------------------------------------------------------
    # 自选列表
    # ------------------------------------------------------------------
    def add_symbol(self, raw: str) -> bool:
        sym = normalize_symbol(raw)
        if not sym or sym in self.symbols:
            return False
        self.symbols.append(sym)
        if self.selected is None:
            self._set_selected(sym)
        self._save(CODES_KEY, list(self.symbols))
        return True

    def remove_symbol(self, symbol: str) -> bool:
        if symbol not in self.symbols:
            return False
        self.symbols.remove(symbol)
        self.quotes.pop(symbol, None)
        self._drop_series(symbol)
        if self.selected == symbol:
            self._set_selected(self.symbols[0] if self.symbols else None)
        self._save(CODES_KEY, list(self.symbols))
        return True

    def move_symbol(self, symbol: str, index: int) -> bool:
        """移动到指定位置，越界时夹到两端。"""
        if symbol not in self.symbols:
            return False
        self.symbols.remove(symbol)
        index = max(0, min(int(index), len(self.symbols)))
        self.symbols.insert(index, symbol)
        self._save(CODES_KEY, list(self.symbols))
        return True

    def move_up(self, symbol: str) -> bool:
        if symbol not in self.symbols or self.symbols.index(symbol) == 0:
            return False
        return self.move_symbol(symbol, self.symbols.index(symbol) - 1)

    def move_down(self, symbol: str) -> bool:
        if symbol not in self.symbols or self.symbols.index(symbol) == len(self.symbols) - 1:
            return False
        return self.move_symbol(symbol, self.symbols.index(symbol) + 1)

    def select(self, symbol: str) -> bool:
        """切换选中标的，并清空其旧的日线/分时（等待新响应）。

        重复选中同一标的同样视为一次切换：`selection_seq` 递增，轮询方据此重新拉取。
        """
        if symbol not in self.symbols:
            return False
        self._set_selected(symbol)
        self.daily[symbol] = []
        self.intraday[symbol] = []
        self.indicator_sets.pop(symbol, None)
        self.indicator_frames.pop(symbol, None)
        return True

    def _set_selected(self, symbol: str | None) -> None:
        self.selected = symbol
        self.selection_seq += 1

    def _drop_series(self, symbol: str) -> None:
        self.daily.pop(symbol, None)
        self.intraday.pop(symbol, None)
        self.indicator_sets.pop(symbol, None)
        self.indicator_frames.pop(symbol, None)

    # ------------------------------------------------------------------
    # 手工持仓
    # ------------------------------------------------------------------
    def set_holding(self, symbol: str, cost: Any, shares: Any) -> Holding | None:
        """录入持仓成本；非法输入视为删除该持仓。"""
        holding = _valid_holding(cost, shares)
        if holding is None:
            self.holdings.pop(symbol, None)
        else:
            self.holdings[symbol] = holding
        self._save(PORTFOLIO_KEY, self.portfolio_snapshot())
        return holding

    def remove_holding(self, symbol: str) -> bool:
        if self.holdings.pop(symbol, None) is None:
            return False
        self._save(PORTFOLIO_KEY, self.portfolio_snapshot())
        return True

    # ------------------------------------------------------------------
    # 行情写入
    # ------------------------------------------------------------------
    @property
    def current_quote_seq(self) -> int:
        return self._quote_seq

    def begin_quote_request(self) -> int:
        self._quote_seq += 1
        return self._quote_seq

    def apply_quotes(self, quotes: Mapping[str, QuoteSnapshot] | None, request_seq: int) -> bool:
        """写入一批报价并同步撮合；过期或失败的响应不改变任何状态。"""
        if not should_apply(request_seq, self._quote_seq):
            self.logger.debug("Drop stale quote response seq=%s current=%s", request_seq, self._quote_seq)
            return False
        if quotes is None:
            return False
        for sym, quote in quotes.items():
            self.quotes[sym] = quote
        for sym, quote in quotes.items():
            self.ledger.match_tick(sym, quote.price)
        return True

    def apply_daily(self, symbol: str, points: Sequence[PricePoint] | None) -> bool:
        if symbol != self.selected:
            self.logger.debug("Drop daily response for deselected %s", symbol)
            return False
        if points is None:
            return False
        self.daily[symbol] = list(points)
        # 日线一变就整体重算
        self.indicator_sets[symbol] = compute_indicator_set(self.daily[symbol], self.cfg.indicators)
        self.indicator_frames[symbol] = indicator_frame(self.daily[symbol], self.cfg.indicators)
        return True

    def apply_intraday(self, symbol: str, points: Sequence[MinutePoint] | None) -> bool:
        if symbol != self.selected:
            self.logger.debug("Drop intraday response for deselected %s", symbol)
            return False
        if points is None:
            return False
        self.intraday[symbol] = list(points)
        return True

    # ------------------------------------------------------------------
    # 派生视图
    # ------------------------------------------------------------------
    def context(self, symbol: str | None = None) -> SignalContext | None:
        sym = symbol or self.selected
        if sym is None or sym not in self.quotes:
            return None
        return SignalContext(
            quote=self.quotes[sym],
            daily=tuple(self.daily.get(sym, ())),
            intraday=tuple(self.intraday.get(sym, ())),
            holding=self.holdings.get(sym),
        )

    def indicators(self, symbol: str | None = None) -> IndicatorSet | None:
        sym = symbol or self.selected
        return self.indicator_sets.get(sym) if sym else None

    def indicator_table(self, symbol: str | None = None) -> pd.DataFrame | None:
        sym = symbol or self.selected
        return self.indicator_frames.get(sym) if sym else None

    def report(self, symbol: str | None = None) -> SignalReport | None:
        ctx = self.context(symbol)
        if ctx is None:
            return None
        return self.signal_model.evaluate(ctx)

    def anomaly(self, symbol: str | None = None) -> Anomaly | None:
        if not self.cfg.anomaly.enabled:
            return None
        sym = symbol or self.selected
        if sym is None or sym not in self.quotes:
            return None
        return detect_anomaly(self.quotes[sym], self.intraday.get(sym, ()), win_rates=self.cfg.anomaly.win_rates)

    def marks(self) -> dict[str, float]:
        return {sym: q.price for sym, q in self.quotes.items() if q.price > 0}


def _valid_holding(cost: Any, shares: Any) -> Holding | None:
    try:
        c = float(cost)
        s = float(shares)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(c) and math.isfinite(s)) or c <= 0 or s <= 0:
        return None
    return Holding(cost=c, shares=s)
