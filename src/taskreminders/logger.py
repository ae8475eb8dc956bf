"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

使用：先调用 setup_logging 配置日志，然后 logger.info(...) 等写日志。
未调用 setup_logging 时沿用 loguru 的默认 stderr 输出（测试环境即如此）。

uvicorn / aiosqlite 等第三方库走标准库 logging，setup_logging 会把它们转接到 loguru，
统一落到同一组 sink。
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable, Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL"}

# 需要转接到 loguru 的标准库 logger
STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "aiosqlite", "httpx")


def normalize_level(level: Union[str, LogLevel]) -> str:
    return _LEVEL_ALIAS.get(str(level).upper(), str(level).upper())


class InterceptHandler(logging.Handler):
    """把标准库 logging 记录转发给 loguru，保留原始调用位置"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_stdlib_logging(names: Iterable[str] = STDLIB_LOGGERS, level: int = logging.INFO) -> None:
    handler = InterceptHandler()
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.setLevel(level)
        std_logger.propagate = False


def _file_handler(
    path: Path,
    *,
    level: str,
    retention: str,
) -> dict:
    return {
        "sink": path,
        "level": level,
        "format": FILE_FORMAT,
        "rotation": "10 MB",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
    }


def error_log_path(log_file: Union[str, Path]) -> Path:
    log_file = Path(log_file)
    return log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_level = normalize_level(log_level)
    console_lv = normalize_level(console_level)

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": console_lv,
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            _file_handler(log_file, level=file_level, retention="30 days"),
            _file_handler(error_log_path(log_file), level="ERROR", retention="90 days"),
        ]
    )
    intercept_stdlib_logging()


__all__ = [
    "setup_logging", "logger", "normalize_level", "error_log_path",
    "InterceptHandler", "intercept_stdlib_logging",
]
