"""
轻量日志封装。

Notes
-----
- `setup_logger` 会避免重复添加 handler，否则多次调用会出现重复日志。
- 盯盘看板全屏刷新时，用 `capture_logs` 把所有已创建 logger 的输出
  临时改写进内存缓冲，由看板在日志面板里展示。
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Iterator

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

_MANAGED: set[str] = set()
_level: int = logging.INFO


def setup_logger(name: str = "marketwatch", level: int | None = None) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称。
    level:
        日志级别；None 时沿用最近一次 `set_global_level` 的级别（初始为 INFO）。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    logger.setLevel(_level if level is None else level)
    logger.propagate = False
    _MANAGED.add(name)

    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(ch)

    return logger


def set_global_level(level: str | int) -> None:
    """统一调整本项目全部 logger 的级别（读取配置 `log_level`），之后新建的 logger 同样生效。"""
    global _level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    _level = level
    logging.getLogger().setLevel(level)
    for name in _MANAGED:
        logging.getLogger(name).setLevel(level)


class LogBuffer(logging.Handler):
    """把日志行写入定长 deque（看板日志面板读取）。"""

    def __init__(self, maxlen: int = 10):
        super().__init__()
        self.lines: deque[str] = deque(maxlen=maxlen)
        self.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.lines.append(self.format(record))
        except Exception:
            self.handleError(record)


@contextmanager
def capture_logs(buffer: LogBuffer) -> Iterator[LogBuffer]:
    """临时用 buffer 替换所有托管 logger 的 handler，退出时恢复。"""
    saved: dict[str, list[logging.Handler]] = {}
    for name in list(_MANAGED):
        logger = logging.getLogger(name)
        saved[name] = list(logger.handlers)
        for h in saved[name]:
            logger.removeHandler(h)
        logger.addHandler(buffer)
    try:
        yield buffer
    finally:
        for name, handlers in saved.items():
            logger = logging.getLogger(name)
            logger.removeHandler(buffer)
            for h in handlers:
                logger.addHandler(h)
