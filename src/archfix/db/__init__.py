"""archfix database layer: the verdict cache."""

from archfix.db.cache import ContentCache
from archfix.db.connection import Database
from archfix.db.migrations import MIGRATIONS, run_migrations

__all__ = [
    "ContentCache",
    "Database",
    "MIGRATIONS",
    "run_migrations",
]
