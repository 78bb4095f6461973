from app.database.base import Base
from app.database.engine import Database
from app.database.session import get_database, get_db

__all__ = ["Base", "Database", "get_database", "get_db"]
