# Model arena package init
import logging
import os
from typing import Dict

LOG_FORMAT = "%(asctime)s [ARENA][%(levelname)s] %(name)s: %(message)s"


def _level(name: str, default: int) -> int:
    value = getattr(logging, name.strip().upper(), None)
    return value if isinstance(value, int) else default


def _area_levels(raw: str, default: int) -> Dict[str, int]:
    """Parse ``ARENA_LOG_LEVELS`` such as ``llm=DEBUG,store=WARNING``."""
    levels: Dict[str, int] = {}
    for item in raw.split(","):
        area, sep, level_name = item.partition("=")
        area = area.strip()
        if not sep or not area:
            continue
        logger_name = area if area.startswith("arena") else f"arena.{area}"
        levels[logger_name] = _level(level_name, default)
    return levels


def _configure_logging() -> None:
    root_level = _level(os.getenv("ARENA_LOG_LEVEL") or "INFO", logging.INFO)
    logger = logging.getLogger("arena")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(root_level)

    # Per-area overrides, e.g. chatty backend calls at DEBUG while stores stay quiet.
    for name, level in _area_levels(os.getenv("ARENA_LOG_LEVELS") or "", root_level).items():
        logging.getLogger(name).setLevel(level)


_configure_logging()
