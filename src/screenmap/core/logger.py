"""screenmap structured logging system."""

from __future__ import annotations

import os
import sys
from typing import Any

from loguru import logger

from .config import config

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} | {message}"

# (file name pattern, level, retention, only prompt records)
_FILE_SINKS = (
    ("screenmap_{time:YYYY-MM-DD}.log", "DEBUG", "30 days", False),
    ("errors_{time:YYYY-MM-DD}.log", "ERROR", "90 days", False),
    ("prompt_interactions_{time:YYYY-MM-DD}.log", "DEBUG", "30 days", True),
)


def _is_prompt(record: dict[str, Any]) -> bool:
    return bool(record["extra"].get("prompt", False))


class Logger:
    """Structured logging for the annotation pipeline.

    Messages are prefixed with ``[name]`` and reported at the caller's
    location, not this wrapper's.
    """

    def __init__(self, name: str = "screenmap") -> None:
        self.name = name
        self._setup_logger()

    def _setup_logger(self) -> None:
        logger.remove()
        logger.add(sys.stderr, format=_CONSOLE_FORMAT, level=config.log_level, colorize=True)

        os.makedirs(config.logs_dir, exist_ok=True)
        for pattern, level, retention, prompts_only in _FILE_SINKS:
            logger.add(
                os.path.join(config.logs_dir, pattern),
                format=_FILE_FORMAT,
                level=level,
                rotation="1 day",
                retention=retention,
                compression="zip",
                filter=_is_prompt if prompts_only else None,
            )

    def _emit(self, level: str, message: str, **kwargs: Any) -> None:
        logger.opt(depth=2).log(level, f"[{self.name}] {message}", **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._emit("INFO", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._emit("DEBUG", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._emit("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._emit("ERROR", message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._emit("CRITICAL", message, **kwargs)

    def success(self, message: str, **kwargs: Any) -> None:
        self._emit("SUCCESS", message, **kwargs)

    def log_stage(self, stage: str, details: dict[str, Any] | None = None) -> None:
        """Log the start of a pipeline stage."""
        suffix = f" | {details}" if details else ""
        self._emit("INFO", f"STAGE {stage}{suffix}")

    def log_detection(self, label: str, status: str, duration_ms: float) -> None:
        self._emit("DEBUG", f"DETECTION '{label}' -> {status} ({duration_ms:.0f}ms)")

    def log_prompt(self, service: str, prompt_type: str, duration_ms: float, summary: str) -> None:
        """Log an external model call; routed to the prompt interactions file."""
        logger.bind(prompt=True).opt(depth=1).debug(
            f"[{self.name}] PROMPT {service} ({prompt_type}) {duration_ms:.0f}ms | {summary}"
        )

    def log_performance(self, operation: str, duration_ms: float) -> None:
        self._emit("DEBUG", f"PERFORMANCE {operation} took {duration_ms:.2f}ms")


# Global logger instance
log = Logger()
