from butternovel.db.base import Base
from butternovel.db.session import get_db, engine, SessionLocal
from butternovel.db.tables import ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES"]
