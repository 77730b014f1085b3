from __future__ import annotations

import requests

from market.client import QuoteClient
from market.parsers import (
    daily_param,
    parse_daily_payload,
    parse_minute_payload,
    parse_quote_text,
    session_length,
)
from shared.config.schema import QuoteConfig


def _quote_line(code: str, fields: dict[int, str]) -> str:
    parts = ["0"] * 50
    parts[0] = f'v_{code}="1'
    for idx, value in fields.items():
        parts[idx] = value
    return "~".join(parts) + '";'


def test_parse_quote_text_maps_fields():
    text = _quote_line(
        "sh600519",
        {1: "贵州茅台", 3: "1700.5", 4: "1690", 5: "1695", 6: "12345", 32: "0.62", 33: "1710", 34: "1688", 37: "21000", 38: "0.35"},
    )
    quotes = parse_quote_text(text)
    q = quotes["sh600519"]
    assert q.name == "贵州茅台"
    assert q.price == 1700.5
    assert q.prev_close == 1690.0
    assert q.open == 1695.0
    assert q.volume == 12345.0
    assert q.change_percent == 0.62
    assert (q.high, q.low) == (1710.0, 1688.0)
    assert q.amount == 21000.0
    assert q.turnover_rate == 0.35


def test_parse_quote_text_us_prev_close_and_fallbacks():
    text = "\n".join(
        [
            _quote_line("usNVDA", {1: "NVIDIA", 3: "120", 4: "999", 26: "118"}),
            _quote_line("hk00700", {1: "TENCENT", 3: "0", 4: "0", 5: "380"}),
            'v_sz000001="1~short~line";',
        ]
    )
    quotes = parse_quote_text(text)
    assert quotes["usNVDA"].prev_close == 118.0
    assert quotes["hk00700"].prev_close == 380.0
    assert "sz000001" not in quotes


def test_parse_quote_text_rejects_html_and_bad_numbers():
    assert parse_quote_text("<!DOCTYPE html><html></html>") == {}
    q = parse_quote_text(_quote_line("sz000001", {3: "abc", 4: "10"}))["sz000001"]
    assert q.price == 0.0
    assert q.prev_close == 10.0


def test_parse_minute_payload_differences_cumulative_volume():
    payload = {"data": {"sh600519": {"data": {"data": ["0930 10.0 100", "0931 10.1 250", "0932 10.2 200", "0933 x 300"]}}}}
    points = parse_minute_payload(payload, "sh600519")
    assert [p.time for p in points] == ["09:30", "09:31", "09:32"]
    assert [p.volume for p in points] == [100.0, 150.0, 0.0]
    assert parse_minute_payload({"data": {}}, "sh600519") == []


def test_parse_daily_payload_prefers_adjusted_rows():
    payload = {
        "data": {
            "sh600519": {
                "qfqday": [["2024-01-02", "10", "11", "12", "9", "1000"]],
                "day": [["2024-01-02", "1", "1", "1", "1", "1"]],
            }
        }
    }
    points = parse_daily_payload(payload, "sh600519")
    assert len(points) == 1
    p = points[0]
    assert (p.date, p.open, p.close, p.high, p.low, p.volume) == ("2024-01-02", 10.0, 11.0, 12.0, 9.0, 1000.0)
    assert parse_daily_payload({"data": {"usAAPL": {"day": []}}}, "usAAPL") == []
    assert parse_daily_payload({"data": {"usAAPL": {}}}, "usAAPL") is None
    assert parse_daily_payload(None, "usAAPL") is None


def test_session_length_and_daily_param():
    assert session_length("usNVDA") == 390
    assert session_length("hk00700") == 330
    assert session_length("sh600519") == 241
    assert daily_param("usNVDA") == "usNVDA,day,,,320"
    assert daily_param("sh600519", 100) == "sh600519,day,,,100,qfq"


class _StubResponse:
    def __init__(self, content: bytes = b"", payload=None, ctype: str = "text/plain", status: int = 200):
        self.content = content
        self._payload = payload
        self.headers = {"content-type": ctype}
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _StubSession:
    def __init__(self, response=None, exc: Exception | None = None):
        self.response = response
        self.exc = exc
        self.calls: list[tuple[str, dict]] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        if self.exc is not None:
            raise self.exc
        return self.response


def test_client_fetch_quotes_decodes_gbk():
    body = _quote_line("sh600519", {1: "贵州茅台", 3: "1700"}).encode("gbk")
    session = _StubSession(_StubResponse(content=body))
    client = QuoteClient(QuoteConfig(base_url="http://quotes.test"), session=session)
    quotes = client.fetch_quotes(["sh600519"])
    assert quotes["sh600519"].name == "贵州茅台"
    assert session.calls[0][0] == "http://quotes.test/q=sh600519"
    assert client.fetch_quotes([]) == {}


def test_client_returns_none_on_failures():
    client = QuoteClient(session=_StubSession(exc=requests.ConnectionError("down")))
    assert client.fetch_quotes(["sh600519"]) is None
    assert client.fetch_daily("sh600519") is None

    html = QuoteClient(session=_StubSession(_StubResponse(content=b"<html></html>", ctype="text/html")))
    assert html.fetch_minutes("sh600519") is None

    server_error = QuoteClient(session=_StubSession(_StubResponse(status=502)))
    assert server_error.fetch_quotes(["sh600519"]) is None

    not_json = QuoteClient(session=_StubSession(_StubResponse(content=b"oops")))
    assert not_json.fetch_daily("sh600519") is None


def test_client_fetch_series_builds_params():
    payload = {"data": {"usNVDA": {"day": [["2024-01-02", "1", "2", "3", "0.5", "10"]]}}}
    session = _StubSession(_StubResponse(payload=payload, ctype="application/json"))
    client = QuoteClient(QuoteConfig(kline_base_url="http://kline.test"), session=session)
    points = client.fetch_daily("usNVDA")
    url, params = session.calls[0]
    assert url == "http://kline.test/appstock/app/fqkline/get"
    assert params["param"] == "usNVDA,day,,,320"
    assert points[0].close == 2.0
