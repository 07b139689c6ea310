import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.base import Executable

from labexport.config import Settings
from labexport.schemas import TabularResult


logger = logging.getLogger(__name__)

COMMAND_TIMEOUT_SECONDS = 300


class DatabaseError(RuntimeError):
    pass


class DriverMissingError(DatabaseError):
    pass


def build_database_url(settings: Settings) -> str | URL:
    if settings.database_url:
        return settings.database_url
    return URL.create(
        "mssql+pymssql",
        username=settings.db_user or None,
        password=settings.db_password or None,
        host=settings.db_host,
        database=settings.db_name,
    )


def build_engine(database_url: str | URL) -> Engine:
    url_text = str(database_url)
    connect_args: dict[str, object] = {}
    if url_text.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    if url_text.startswith(("sqlite", "mssql+pymssql")):
        connect_args["timeout"] = COMMAND_TIMEOUT_SECONDS

    # No pooling: every execute() gets its own connection and releases it.
    try:
        return create_engine(database_url, future=True, poolclass=NullPool, connect_args=connect_args)
    except ImportError as exc:
        raise DriverMissingError(f"database driver not installed: {exc}") from exc
    except SQLAlchemyError as exc:
        raise DatabaseError(f"cannot create database engine: {exc}") from exc


class QueryExecutor:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryExecutor":
        return cls(build_engine(build_database_url(settings)))

    def execute(self, query: str | Executable, expect_result: bool = True) -> TabularResult | None:
        statement = text(query) if isinstance(query, str) else query
        try:
            with self.engine.connect() as conn:
                result = conn.execute(statement)
                if not expect_result:
                    conn.commit()
                    return None
                columns = list(result.keys())
                rows = [tuple(row) for row in result]
                return TabularResult(columns=columns, rows=rows)
        except SQLAlchemyError as exc:
            raise DatabaseError(str(exc)) from exc

    def probe(self) -> None:
        self.execute("SELECT 1", expect_result=True)
        logger.debug("database probe succeeded", extra={"dialect": self.engine.dialect.name})
