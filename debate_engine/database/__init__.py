"""Database management module."""

from .database import DebateStore, get_database_path

__all__ = ["DebateStore", "get_database_path"]
