"""信号模型注册表：字符串 -> SignalModel 实现。

模型实例由配置驱动构建；两套模型可互换，不做规则合并。
"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

from algo.signals.base import SignalModel
from algo.signals.force import ForcePhaseModel
from algo.signals.t0 import DeviationBandModel
from shared.config.schema import IndicatorConfig, SignalConfig

_REGISTRY: dict[str, type] = {}


def register_signal_model(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_signal_model_cls(name: str) -> type:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown signal model: {name}")
    return _REGISTRY[name]


def available_models() -> list[str]:
    return sorted(_REGISTRY)


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name not in {"self", "indicators", "name"}}
    return {k: v for k, v in params.items() if k in allowed}


def build_signal_model(
    cfg: SignalConfig | Mapping[str, Any] | None,
    indicators: IndicatorConfig | None = None,
) -> SignalModel:
    """从配置构建信号模型。

    支持：
    - SignalConfig（来自 shared.config.schema）
    - dict（含 model + 参数字段）
    - None：默认 t0
    """
    if cfg is None:
        name = "t0"
        params: dict[str, Any] = {}
    elif isinstance(cfg, SignalConfig):
        name = str(cfg.model or "t0")
        params = dict(cfg.params or {})
    elif isinstance(cfg, Mapping):
        name = str(cfg.get("model") or "t0")
        params = dict(cfg.get("params") or {})
        params.update({k: v for k, v in cfg.items() if k not in {"model", "params"}})
    else:
        raise ValueError("signal cfg must be SignalConfig or dict")

    cls = get_signal_model_cls(name)
    kwargs = _filter_init_kwargs(cls, params)
    return cls(indicators=indicators or IndicatorConfig(), **kwargs)


# 默认注册
register_signal_model("t0", DeviationBandModel)
register_signal_model("force", ForcePhaseModel)
