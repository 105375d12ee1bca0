"""Database handle and tenant-scoped units of work."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledgerline_api.errors import ScopeError
from ledgerline_api.settings import get_settings

logger = logging.getLogger(__name__)

TENANT_SETTING = "app.current_tenant_id"


class Database:
    """Process-lifetime engine and session factory.

    Created once at startup and passed explicitly to every unit of work.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @classmethod
    def from_url(cls, url: str, pool_size: int = 10, max_overflow: int = 20) -> "Database":
        """Build a handle for the given URL."""
        if url.startswith("sqlite"):
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            _enable_sqlite_savepoints(engine)
        else:
            engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_size=pool_size,
                max_overflow=max_overflow,
            )
        return cls(engine)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT/RELEASE behave on pysqlite."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_database() -> Database:
    """Create the database handle from settings."""
    settings = get_settings()
    return Database.from_url(
        settings.database_url_computed,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the handle created at startup."""
    return request.app.state.database


def scoped_tenant_id(session: Session) -> Optional[str]:
    """Tenant the session was opened for, if any."""
    return session.info.get("tenant_id")


@contextmanager
def tenant_scope(database: Database, tenant_id: Optional[str]) -> Iterator[Session]:
    """Run one unit of work restricted to ``tenant_id``.

    Commits on normal exit, rolls back on any exception and always closes
    the session. On PostgreSQL the tenant is published as a transaction-local
    setting consumed by the row-level security policies.
    """
    if not tenant_id or not str(tenant_id).strip():
        raise ScopeError("tenant_id is required to open a tenant scope")

    session = database.session_factory()
    try:
        try:
            if database.dialect == "postgresql":
                session.execute(
                    text("SELECT set_config(:name, :tenant_id, true)"),
                    {"name": TENANT_SETTING, "tenant_id": str(tenant_id)},
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to set tenant context: {e}", extra={"tenant_id": tenant_id})
            raise ScopeError(f"Could not establish tenant scope for {tenant_id}") from e

        session.info["tenant_id"] = str(tenant_id)
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
