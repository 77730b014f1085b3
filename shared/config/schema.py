"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型 + 可演进”的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在长时间盯盘中“隐蔽爆炸”；
- 业务代码只读属性，不做 `cfg.get(...)` 与深层字典索引。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_SYMBOLS = ["hk00700", "sh600519", "usNVDA", "sz000001"]


class QuoteConfig(BaseModel):
    """行情源配置。"""
    base_url: str = "https://qt.gtimg.cn"
    kline_base_url: str = "https://web.ifzq.gtimg.cn"
    poll_interval_secs: float = Field(default=3.0, gt=0)
    request_timeout_secs: float = Field(default=5.0, gt=0)
    daily_bars: int = Field(default=320, gt=0)
    model_config = ConfigDict(extra="forbid")


class MACDConfig(BaseModel):
    short: int = Field(default=12, gt=0)
    long: int = Field(default=26, gt=0)
    mid: int = Field(default=9, gt=0)
    model_config = ConfigDict(extra="forbid")


class TrailingStopConfig(BaseModel):
    period: int = Field(default=22, gt=0)
    multiplier: float = Field(default=3.0, ge=0)
    model_config = ConfigDict(extra="forbid")


class IndicatorConfig(BaseModel):
    """指标参数。"""
    ma_period: int = Field(default=20, gt=0)
    rsi_period: int = Field(default=6, gt=0)
    macd: MACDConfig = Field(default_factory=MACDConfig)
    trailing_stop: TrailingStopConfig = Field(default_factory=TrailingStopConfig)
    range_period: int = Field(default=20, gt=0)
    model_config = ConfigDict(extra="forbid")


class SignalConfig(BaseModel):
    """信号模型配置（model + params）。

    与策略块一致：`signal:` 下的扁平字段会被自动挪到 `params`。
    """
    model: str = "t0"
    params: Dict[str, Any] = Field(default_factory=dict)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _pack_flat_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if set(data.keys()) <= {"model", "params"}:
            return data
        model = data.get("model", "t0")
        params = {k: v for k, v in data.items() if k not in {"model", "params"}}
        existing = data.get("params")
        if isinstance(existing, dict):
            params = {**params, **existing}
        return {"model": model, "params": params}


class AnomalyConfig(BaseModel):
    enabled: bool = True
    # kind -> 展示用胜率文案，覆盖内置占位值
    win_rates: dict[str, str] = Field(default_factory=dict)
    model_config = ConfigDict(extra="forbid")


class LedgerConfig(BaseModel):
    """模拟账户配置。"""
    initial_capital: float = Field(default=1_000_000.0, gt=0)
    model_config = ConfigDict(extra="forbid")


class StateConfig(BaseModel):
    """会话状态持久化配置。"""
    backend: Literal["memory", "json", "sqlite"] = "json"
    path: str = "dataset/state/watch_state.json"
    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。"""
    symbols: List[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    quote: QuoteConfig = Field(default_factory=QuoteConfig)
    indicators: IndicatorConfig = Field(default_factory=IndicatorConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, value: List[str]) -> List[str]:
        out: list[str] = []
        for raw in value:
            sym = str(raw).strip()
            if not sym:
                continue
            sym = sym[:2].lower() + sym[2:]
            if sym not in out:
                out.append(sym)
        return out


AppConfig = MainConfig
