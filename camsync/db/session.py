"""Database engine helpers."""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def create_engine_from_env() -> Engine:
    """Create an engine from DATABASE_URL; a missing variable raises ``KeyError``."""
    url = os.environ["DATABASE_URL"]
    return create_engine(url, pool_pre_ping=True, future=True)
