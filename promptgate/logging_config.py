"""Centralized logging configuration for the CLI."""

import logging
import logging.config

from rich.console import Console
from rich.logging import RichHandler


def rich_stderr_handler(**kwargs) -> RichHandler:
    """RichHandler writing to stderr so command output stays clean."""
    return RichHandler(console=Console(stderr=True), **kwargs)


def setup_logging(level: str = "INFO") -> None:
    """Route all logs through a rich handler on stderr.

    Args:
        level: Root log level name (e.g. ``"DEBUG"``)
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "rich": {
                    "format": "%(name)s: %(message)s",
                    "datefmt": "[%X]",
                }
            },
            "handlers": {
                "default": {
                    "()": "promptgate.logging_config.rich_stderr_handler",
                    "formatter": "rich",
                    "rich_tracebacks": True,
                    "show_path": False,
                }
            },
            "root": {
                "level": level.upper(),
                "handlers": ["default"],
            },
            "loggers": {
                # Request lines from the vendor clients are too chatty at INFO
                "httpx": {"level": "WARNING"},
                "openai": {"level": "WARNING"},
            },
        }
    )
    logging.captureWarnings(True)
