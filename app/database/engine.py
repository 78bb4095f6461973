import logging
import sqlite3
from datetime import datetime, timezone

from sqlalchemy import create_engine, event, func, select, text, type_coerce
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database.base import Base
from app.database.types import UTCDateTime

logger = logging.getLogger(__name__)

# Execution option read by the SQLite "begin" hook.
SQLITE_BEGIN_OPTION = "sqlite_begin"

# Statement-time UTC clock per server backend. Backends not listed use the
# process clock.
SERVER_CLOCKS = {
    "postgresql": lambda: func.clock_timestamp(),
    "mysql": lambda: func.utc_timestamp(6),
    "mssql": lambda: func.sysutcdatetime(),
}


class Database:
    """Owns the engine (connection pool) and session factory for one process.

    Created at startup and disposed at shutdown by whoever created it; the
    stock adjuster and the request dependencies receive it explicitly.
    """

    def __init__(
        self,
        url: str,
        *,
        lock_timeout_seconds: float = 30.0,
        pool_size: int = 10,
        max_overflow: int = 0,
        pool_timeout_seconds: int = 30,
    ):
        self.url = make_url(url)
        self.lock_timeout_seconds = lock_timeout_seconds
        self.backend = self.url.get_backend_name()
        self.is_sqlite = self.backend == "sqlite"
        self.is_sqlite_memory = False
        if self.is_sqlite:
            sqlite_db = self.url.database
            self.is_sqlite_memory = sqlite_db in (None, "", ":memory:")
            if not self.is_sqlite_memory and self.url.query.get("mode") == "memory":
                self.is_sqlite_memory = True

        connect_args = {}
        engine_kwargs: dict[str, object] = dict(pool_pre_ping=True)
        if self.is_sqlite:
            connect_args = {"check_same_thread": False, "timeout": lock_timeout_seconds}
            if self.is_sqlite_memory:
                engine_kwargs.update(poolclass=StaticPool)
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout_seconds,
            )

        self.engine = create_engine(url, connect_args=connect_args, **engine_kwargs)
        if self.is_sqlite:
            self._install_sqlite_hooks()

        self._sessionmaker = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            lock_timeout_seconds=settings.DB_LOCK_TIMEOUT_SECONDS,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout_seconds=settings.DB_POOL_TIMEOUT_SECONDS,
        )

    def _install_sqlite_hooks(self) -> None:
        busy_timeout_ms = int(self.lock_timeout_seconds * 1000)
        is_memory = self.is_sqlite_memory

        @event.listens_for(self.engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record):
            # pysqlite would otherwise emit its own deferred BEGIN before DML.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute(f"PRAGMA busy_timeout={busy_timeout_ms}")
                if not is_memory:
                    try:
                        cursor.execute("PRAGMA journal_mode=WAL")
                        cursor.execute("PRAGMA synchronous=NORMAL")
                    except sqlite3.DatabaseError:
                        logger.warning("Could not enable WAL journal mode for %s", self.url.database)
            finally:
                cursor.close()

        @event.listens_for(self.engine, "begin")
        def _begin(conn):
            mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION)
            if mode == "IMMEDIATE":
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    def session(self) -> Session:
        return self._sessionmaker()

    def serializable_options(self) -> dict:
        """Execution options for a transaction that must not allow write skew.

        SQLite is serializable already; taking the write lock at BEGIN stops
        two adjusters from reading the same quantity before either writes.
        """
        if self.is_sqlite:
            return {SQLITE_BEGIN_OPTION: "IMMEDIATE"}
        return {"isolation_level": "SERIALIZABLE"}

    def current_timestamp(self, db: Session) -> datetime:
        clock = SERVER_CLOCKS.get(self.backend)
        if clock is None:
            return datetime.now(timezone.utc)
        return db.execute(select(type_coerce(clock(), UTCDateTime()))).scalar_one()

    def apply_lock_timeout(self, db: Session) -> None:
        if self.backend == "postgresql":
            timeout_ms = int(self.lock_timeout_seconds * 1000)
            db.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))

    def create_schema(self) -> None:
        from app.models import import_all_models

        import_all_models()
        Base.metadata.create_all(bind=self.engine)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def dispose(self) -> None:
        logger.info("Disposing connection pool for %s", self.url.render_as_string(hide_password=True))
        self.engine.dispose()


__all__ = ["Database", "SERVER_CLOCKS", "SQLITE_BEGIN_OPTION"]
