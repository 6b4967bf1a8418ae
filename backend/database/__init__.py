"""
Database module: declarative base, session helpers and ORM models.
"""

from database.base import Base
from database.session import get_db, init_db

__all__ = ["Base", "get_db", "init_db"]
