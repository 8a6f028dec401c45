"""
日志模块

使用 loguru 提供统一的日志记录功能。库代码只调用 logger，由命令行入口配置输出。
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
FILE_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stderr,
    enqueue: bool = True,
    colorize: bool = True,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """
    设置日志记录器

    控制台日志默认写到 stderr，stdout 只留给 resolve/install 的 --json 输出，
    便于管道处理。指定 log_file 时额外写一份按大小轮转的完整日志，
    文件日志总是记录 DEBUG 级别，方便排查下载失败。

    Args:
        level: 控制台日志级别 (DEBUG, INFO, WARNING, ERROR)，
            未指定时由 LAUNCHFETCH_DEBUG=1 切换到 DEBUG
        sink: 控制台输出目标
        enqueue: 是否启用队列（SIGINT 处理与工作协程可能同时写日志）
        colorize: 是否启用颜色
        log_file: 日志文件路径，也可通过 LAUNCHFETCH_LOG_FILE 指定
    """
    if level is None:
        level = "DEBUG" if os.environ.get("LAUNCHFETCH_DEBUG", "0") == "1" else "INFO"
    if log_file is None:
        log_file = os.environ.get("LAUNCHFETCH_LOG_FILE") or None

    logger.remove()

    logger.add(
        sink=sink,
        format=LOG_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if log_file is not None:
        logger.add(
            sink=str(log_file),
            format=FILE_LOG_FORMAT,
            enqueue=enqueue,
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
            backtrace=True,
            diagnose=False,
        )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger"]
