from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from ..config import RunnerConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"

# per-request connection chatter from the MAS HTTP layer
NOISY_LOGGERS = ("urllib3", "requests")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> int:
    """
    Configure process logging for a scoring run.

    Parameters
    ----------
    level:
        Logging level name (e.g., "INFO", "DEBUG"). Unknown names fall back
        to INFO.
    log_file:
        Optional path to log output. When not provided, logs go to stderr.
    quiet:
        Loggers held at WARNING unless ``level`` is DEBUG, so a batch of
        thousands of rows does not log one connection line per row.

    Returns the numeric level applied.
    """

    logging_level = getattr(logging, str(level).upper(), None)
    if not isinstance(logging_level, int):
        logging_level = logging.INFO
    log_kwargs = {
        "level": logging_level,
        "format": LOG_FORMAT,
    }

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        log_kwargs["filename"] = log_file

    logging.basicConfig(**log_kwargs)

    library_level = logging.DEBUG if logging_level <= logging.DEBUG else logging.WARNING
    for name in quiet:
        logging.getLogger(name).setLevel(library_level)
    return logging_level


def setup_logging_from_config(config: "RunnerConfig", level: Optional[str] = None) -> int:
    """Apply ``config.log_level``/``config.log_file``; ``level`` overrides the config level."""
    return setup_logging(level or config.log_level, config.log_file)
