"""行情客户端（HTTP 轮询）。

三类请求：批量实时报价、单标的分时、单标的日线。
网络/解析失败只记日志并返回 None，由调用方保留上一轮数据。
"""

from __future__ import annotations

import time
from typing import Any

import requests

from market.parsers import daily_param, is_html, parse_daily_payload, parse_minute_payload, parse_quote_text
from shared.config.schema import QuoteConfig
from shared.models.models import MinutePoint, PricePoint, QuoteSnapshot
from shared.utils.logging import setup_logger


class QuoteClient:
    """腾讯行情 HTTP 客户端。

    Parameters
    ----------
    cfg:
        `QuoteConfig`，提供 base_url / kline_base_url / 超时等。
    session:
        可注入的 `requests.Session`，测试中替换为假对象。
    """

    def __init__(self, cfg: QuoteConfig | None = None, session: requests.Session | None = None, logger=None):
        self.cfg = cfg or QuoteConfig()
        self.session = session or requests.Session()
        self.logger = logger or setup_logger("quote-client")

    def _get(self, url: str, params: dict[str, Any] | None = None) -> requests.Response | None:
        try:
            resp = self.session.get(url, params=params, timeout=self.cfg.request_timeout_secs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            self.logger.warning("Quote request failed %s: %s", url, exc)
            return None
        ctype = str(resp.headers.get("content-type", "")).lower()
        if "text/html" in ctype:
            self.logger.warning("Quote endpoint returned HTML: %s", url)
            return None
        return resp

    @staticmethod
    def _decode(resp: requests.Response) -> str:
        try:
            return resp.content.decode("gbk")
        except UnicodeDecodeError:
            return resp.content.decode("utf-8", errors="replace")

    def _json(self, resp: requests.Response, url: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            self.logger.warning("Invalid JSON from %s: %s", url, exc)
            return None

    def fetch_quotes(self, symbols: list[str]) -> dict[str, QuoteSnapshot] | None:
        """批量报价；空列表直接返回空 dict。"""
        if not symbols:
            return {}
        url = f"{self.cfg.base_url.rstrip('/')}/q={','.join(symbols)}"
        resp = self._get(url, params={"_t": int(time.time() * 1000)})
        if resp is None:
            return None
        text = self._decode(resp)
        if is_html(text):
            self.logger.warning("Quote endpoint returned HTML body")
            return None
        return parse_quote_text(text)

    def fetch_minutes(self, symbol: str) -> list[MinutePoint] | None:
        url = f"{self.cfg.kline_base_url.rstrip('/')}/appstock/app/minute/query"
        resp = self._get(url, params={"code": symbol, "_t": int(time.time() * 1000)})
        if resp is None:
            return None
        payload = self._json(resp, url)
        if payload is None:
            return None
        return parse_minute_payload(payload, symbol)

    def fetch_daily(self, symbol: str) -> list[PricePoint] | None:
        url = f"{self.cfg.kline_base_url.rstrip('/')}/appstock/app/fqkline/get"
        params = {"param": daily_param(symbol, self.cfg.daily_bars), "_t": int(time.time() * 1000)}
        resp = self._get(url, params=params)
        if resp is None:
            return None
        payload = self._json(resp, url)
        if payload is None:
            return None
        return parse_daily_payload(payload, symbol)
