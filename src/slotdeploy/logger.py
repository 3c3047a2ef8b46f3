import logging
import os
import sys
from typing import Union, Optional

from rich.console import Console
from rich.logging import RichHandler

TRUTHY = ("1", "true", "yes", "on")


def is_rich_enabled() -> bool:
    """Rich log output is opt-in through ``SLOTDEPLOY_RICH_UI``."""
    return os.environ.get("SLOTDEPLOY_RICH_UI", "").strip().lower() in TRUTHY


def get_rich_handler(stream=sys.stderr) -> logging.Handler:
    handler = RichHandler(
        console=Console(file=stream),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(
    level: Union[int, str] = logging.INFO, stream=sys.stderr, fmt: Optional[str] = None
):
    """
    Sets up the root logger with a stream handler and basic formatting.
    Uses a Rich handler when SLOTDEPLOY_RICH_UI is set, otherwise plain logging.
    Does nothing if handlers are already configured.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if not root_logger.hasHandlers():
        if is_rich_enabled():
            handler = get_rich_handler(stream)
        else:
            if fmt is None:
                if level == logging.DEBUG:
                    fmt = "%(asctime)s | %(levelname)-5s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
                else:
                    # Default format for INFO level and above
                    fmt = "%(asctime)s | %(levelname)-5s | %(message)s"

            handler = logging.StreamHandler(stream)
            handler.setFormatter(logging.Formatter(fmt))

        root_logger.setLevel(level)
        root_logger.addHandler(handler)

    # Optionally allow log level override via env var
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        root_logger.setLevel(env_level.upper())

    # aioftp logs every protocol line at DEBUG
    if root_logger.level > logging.DEBUG:
        logging.getLogger("aioftp").setLevel(logging.WARNING)
