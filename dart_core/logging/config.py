# =============================================================================
# dart_core/logging/config.py
# Logging Configuration for the DART sync core
# =============================================================================

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP stack of the Supabase client; one line per request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "storage3")


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (default: INFO)
        log_dir: Also write to ``<log_dir>/sync_YYYY-MM-DD.log`` when set
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"sync_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from dart_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


@contextmanager
def log_duration(logger: logging.Logger, operation: str) -> Iterator[None]:
    """
    Log how long a block took; failures are logged and re-raised.

    Usage:
        with log_duration(logger, "Sync cycle"):
            report.push = push_engine.run()
    """
    start = time.monotonic()
    try:
        yield
    except Exception as e:
        logger.error(f"{operation} failed after {time.monotonic() - start:.2f}s: {e}", exc_info=True)
        raise
    logger.info(f"{operation} finished in {time.monotonic() - start:.2f}s")
