"""Database layer for stepform, built on SQLAlchemy 2.0 async."""

from __future__ import annotations

from stepform.db.base import Base
from stepform.db.engine import DatabaseManager

__all__ = ["Base", "DatabaseManager"]
