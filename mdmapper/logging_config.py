"""Logging configuration: loguru setup and standard logging interception."""

import logging
import sys

from loguru import logger

# Standard library loggers of the parsing stack, forwarded into loguru
FORWARDED_LOGGERS = ("markdown_it", "mdit_py_plugins")

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[origin]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _loguru_level(record: logging.LogRecord) -> str | int:
    try:
        return logger.level(record.levelname).name
    except ValueError:
        return record.levelno


def _caller_depth() -> int:
    """Stack depth from the handler to the code that called the stdlib logger."""
    frame, depth = sys._getframe(1), 0
    while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
        frame = frame.f_back
        depth += 1
    return depth


class StdlibBridge(logging.Handler):
    """Hand records of markdown-it and its plugins to loguru, tagged with their logger name."""

    def emit(self, record: logging.LogRecord) -> None:
        logger.bind(origin=record.name).opt(depth=_caller_depth(), exception=record.exc_info).log(
            _loguru_level(record), record.getMessage()
        )


def configure_logging(level: str = "WARNING") -> None:
    """Configure loguru with a stderr sink and forward the parser's stdlib loggers.

    Stdout is left alone so CLI output (JSON, Markdown) stays clean.
    """
    logger.remove()
    logger.configure(patcher=lambda record: record["extra"].setdefault("origin", record["name"]))
    logger.add(sys.stderr, format=_FORMAT, level=level.upper(), colorize=None)

    bridge = StdlibBridge()
    for name in FORWARDED_LOGGERS:
        forwarded = logging.getLogger(name)
        forwarded.handlers = [bridge]
        forwarded.setLevel(level.upper())
        forwarded.propagate = False
