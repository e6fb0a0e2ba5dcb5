"""Utility functions for molineaux-sim."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def timer(label: str = "") -> Generator[None, None, None]:
    """Simple context-manager timer. Logs elapsed time on exit."""
    start = time.perf_counter()
    yield
    elapsed = time.perf_counter() - start
    if label:
        logger.info("[%s] %.3fs", label, elapsed)
    else:
        logger.info("Elapsed: %.3fs", elapsed)
