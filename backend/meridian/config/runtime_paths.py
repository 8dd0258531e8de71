"""Writable locations for runtime artifacts (trace exports)."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_APP_DATA_DIR = Path("/tmp/meridian")


@lru_cache(maxsize=None)
def _announce(base: Path, from_env: bool) -> None:
    logger.info("Runtime data dir: %s (APP_DATA_DIR %s)", base, "set" if from_env else "unset")


def get_app_data_dir() -> Path:
    configured = os.getenv("APP_DATA_DIR", "").strip()
    base = Path(configured) if configured else DEFAULT_APP_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    _announce(base, bool(configured))
    return base


def get_trace_dir() -> Path:
    trace_dir = get_app_data_dir() / "traces"
    trace_dir.mkdir(parents=True, exist_ok=True)
    return trace_dir
