"""配置加载。

YAML -> 环境变量展开 -> pydantic 校验，三步都失败为 ValueError（文件缺失除外）。
占位符支持 `${VAR}` 与 `${VAR:-默认值}`；配置目录及其上一级的 .env/.env.local 会被读入环境，
但不会覆盖进程里已经存在的变量。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Iterator

import yaml
from pydantic import ValidationError

from shared.config.schema import AppConfig, MainConfig

_PLACEHOLDER = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")
ENV_FILE_NAMES = (".env", ".env.local")


def _env_candidates(cfg_path: Path) -> Iterator[Path]:
    for folder in (cfg_path.parent, cfg_path.parent.parent):
        for name in ENV_FILE_NAMES:
            yield folder / name


def _read_env_pairs(env_path: Path) -> Iterator[tuple[str, str]]:
    for raw in env_path.read_text(encoding="utf-8").splitlines():
        entry = raw.strip()
        if entry.startswith("export "):
            entry = entry[len("export "):].lstrip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        name, _, value = entry.partition("=")
        name = name.strip()
        if name:
            yield name, value.strip().strip("\"'")


def load_env_files(cfg_path: Path) -> list[Path]:
    """把配置附近的 env 文件读进 os.environ，返回实际读取过的文件。"""
    loaded: list[Path] = []
    for env_path in _env_candidates(cfg_path):
        if not env_path.is_file():
            continue
        for name, value in _read_env_pairs(env_path):
            os.environ.setdefault(name, value)
        loaded.append(env_path)
    return loaded


def _substitute(text: str) -> str:
    def lookup(match: re.Match[str]) -> str:
        name = match.group("name")
        if name in os.environ:
            return os.environ[name]
        default = match.group("default")
        if default is None:
            raise ValueError(f"Missing environment variable: {name}")
        return default

    return _PLACEHOLDER.sub(lookup, text)


def expand_env(node: Any) -> Any:
    if isinstance(node, str):
        return _substitute(node)
    if isinstance(node, dict):
        return {key: expand_env(item) for key, item in node.items()}
    if isinstance(node, list):
        return [expand_env(item) for item in node]
    return node


def _describe(exc: ValidationError) -> str:
    unknown = []
    invalid = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err.get("loc", ()))
        if err.get("type") == "extra_forbidden":
            unknown.append(where)
        else:
            invalid.append(f"{where}: {err.get('msg')}")
    sections = []
    if unknown:
        sections.append("config contains unknown keys: " + ", ".join(unknown))
    if invalid:
        sections.append("invalid config values: " + "; ".join(invalid))
    return " | ".join(sections) or str(exc)


def parse_config(raw_cfg: dict[str, Any]) -> MainConfig:
    """校验原始 dict 并返回 MainConfig；失败统一抛 ValueError。"""
    try:
        return MainConfig.model_validate(raw_cfg)
    except ValidationError as exc:
        raise ValueError(_describe(exc)) from exc


def read_raw_config(cfg_path: Path) -> dict[str, Any]:
    with cfg_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValueError(f"config is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("config root must be a mapping")
    return data


def load_config(path: str, load_env: bool = True, expand_env_vars: bool = True) -> AppConfig:
    """读取 YAML 配置。

    Parameters
    ----------
    path:
        配置文件路径。
    load_env:
        是否读取配置目录附近的 .env/.env.local。
    expand_env_vars:
        是否展开 `${VAR}` / `${VAR:-默认值}` 占位符。

    Raises
    ------
    FileNotFoundError
        配置文件不存在。
    ValueError
        YAML 语法、未知字段、非法取值或缺失环境变量。
    """
    cfg_path = Path(path)
    if not cfg_path.is_file():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    if load_env:
        load_env_files(cfg_path)
    raw_cfg = read_raw_config(cfg_path)
    if expand_env_vars:
        raw_cfg = expand_env(raw_cfg)
    return parse_config(raw_cfg)
