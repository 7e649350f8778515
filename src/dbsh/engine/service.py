from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy
import structlog
from sqlalchemy import inspect
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ..errors import ConnectivityError, UsageError
from .config import DataSourceResolver

logger = structlog.get_logger(__name__)


@dataclass
class ResultSet:
    """Rows returned by one statement, or the count of rows it touched."""

    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    rowcount: int = -1

    @property
    def returns_rows(self) -> bool:
        return bool(self.columns)


class Connection:
    """A named database connection holding one open AsyncConnection."""

    def __init__(self, name: str, dsn: str, url: URL):
        self.name = name
        self.dsn = dsn
        self.url = url
        self.engine: Optional[AsyncEngine] = None
        self.conn: Optional[AsyncConnection] = None

    @property
    def key(self) -> str:
        return self.name.casefold()

    @property
    def is_open(self) -> bool:
        return self.conn is not None and not self.conn.closed

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, url={self.url.render_as_string(hide_password=True)!r})"


class DatabaseService:
    """
    Owns the shell's database connections.

    Connections are keyed by case-insensitive name. The most recently
    opened (or `use`d) connection is the current one and receives SQL.
    """

    def __init__(self, resolver: Optional[DataSourceResolver] = None):
        self.resolver = resolver or DataSourceResolver()
        self.connections: Dict[str, Connection] = {}
        self.current: Optional[Connection] = None

    def get(self, name: Optional[str] = None) -> Connection:
        """Returns the named connection, or the current one when name is None."""
        if name is None:
            if self.current is None:
                raise ConnectivityError("not connected to a database")
            return self.current
        connection = self.connections.get(name.casefold())
        if connection is None:
            raise ConnectivityError(f'unknown connection "{name}"')
        return connection

    def use(self, name: str) -> Connection:
        self.current = self.get(name)
        return self.current

    async def connect(self, name: str, dsn: str) -> Connection:
        if name.casefold() in self.connections:
            raise ConnectivityError(f'connection with name "{name}" already exists')
        connection = Connection(name, dsn, self.resolver.resolve(dsn))
        await self._open(connection)
        self.connections[connection.key] = connection
        self.current = connection
        return connection

    async def disconnect(self, name: Optional[str] = None) -> Connection:
        connection = self.get(name)
        await self._close(connection)
        del self.connections[connection.key]
        if self.current is connection:
            self.current = None
        return connection

    async def reconnect(self, name: Optional[str] = None) -> Connection:
        connection = self.get(name)
        await self._close(connection)
        await self._open(connection)
        self.current = connection
        return connection

    async def close_all(self) -> List[str]:
        """Closes every connection and returns their names in opening order."""
        closed = []
        for connection in list(self.connections.values()):
            await self._close(connection)
            closed.append(connection.name)
        self.connections.clear()
        self.current = None
        return closed

    async def execute(self, sql: str) -> ResultSet:
        """Sends SQL to the current connection exactly as typed."""
        connection = self._open_connection()
        log = logger.bind(connection=connection.name)
        log.debug("service.execute.begin", sql=sql)
        try:
            result = await connection.conn.exec_driver_sql(sql)
            if result.returns_rows:
                result_set = ResultSet(
                    columns=list(result.keys()),
                    rows=[tuple(row) for row in result.fetchall()],
                    rowcount=result.rowcount,
                )
            else:
                result_set = ResultSet(rowcount=result.rowcount)
            if connection.conn.in_transaction():
                await connection.conn.commit()
        except SQLAlchemyError as e:
            if connection.conn.in_transaction():
                await connection.conn.rollback()
            log.warning("service.execute.failed", error=str(e))
            raise ConnectivityError(str(getattr(e, "orig", None) or e)) from e
        log.debug("service.execute.success", rowcount=result_set.rowcount)
        return result_set

    async def show(self, what: str) -> ResultSet:
        """Answers the `show` catalog requests."""
        what = what.lower()
        if what == "dsn":
            return self.list_data_sources()
        if what not in ("tables", "owners", "qualifiers", "types", "datatypes"):
            raise UsageError("invalid database data request")

        connection = self._open_connection()
        if what == "qualifiers":
            return ResultSet(["TABLE_QUALIFIER"], [(connection.url.database or "",)])
        if what == "types":
            return ResultSet(["TABLE_TYPE"], [("TABLE",), ("VIEW",)])
        if what == "datatypes":
            names = getattr(connection.engine.dialect, "ischema_names", {})
            return ResultSet(["TYPE_NAME"], [(name,) for name in sorted(names)])

        try:
            if what == "owners":
                rows = await connection.conn.run_sync(_schema_rows)
                return ResultSet(["TABLE_SCHEM"], rows)
            rows = await connection.conn.run_sync(_table_rows)
            return ResultSet(["TABLE_SCHEM", "TABLE_NAME", "TABLE_TYPE"], rows)
        except SQLAlchemyError as e:
            logger.warning("service.show.failed", what=what, error=str(e))
            raise ConnectivityError(str(e)) from e

    def list_data_sources(self) -> ResultSet:
        sources = self.resolver.load()
        return ResultSet(
            ["DSN", "DESCRIPTION"],
            [(source.name, source.description or "") for source in sources.values()],
        )

    def version_info(self) -> List[Tuple[str, str]]:
        info = [("SQLAlchemy", sqlalchemy.__version__)]
        if self.current is not None and self.current.engine is not None:
            dialect = self.current.engine.dialect
            info.append(("Driver", f"{dialect.name}+{dialect.driver}"))
            if dialect.server_version_info:
                info.append(
                    (
                        "Server",
                        ".".join(str(part) for part in dialect.server_version_info),
                    )
                )
        return info

    def _open_connection(self) -> Connection:
        connection = self.get()
        if not connection.is_open:
            raise ConnectivityError(
                f"connection \"{connection.name}\" is closed, try `reconnect;'"
            )
        return connection

    async def _open(self, connection: Connection) -> None:
        log = logger.bind(connection=connection.name, dialect=connection.url.drivername)
        engine: Optional[AsyncEngine] = None
        try:
            engine = create_async_engine(connection.url)
            connection.conn = await engine.connect()
        except (SQLAlchemyError, ImportError, OSError) as e:
            if engine is not None:
                await engine.dispose()
            log.error("service.connect.failed", error=str(e))
            raise ConnectivityError(f"unable to connect: {e}") from e
        connection.engine = engine
        log.info("service.connect.success")

    async def _close(self, connection: Connection) -> None:
        log = logger.bind(connection=connection.name)
        if connection.conn is not None:
            await connection.conn.close()
            connection.conn = None
        if connection.engine is not None:
            await connection.engine.dispose()
            connection.engine = None
        log.info("service.disconnect.success")


def _schema_rows(sync_conn) -> List[Tuple[Any, ...]]:
    return [(name,) for name in inspect(sync_conn).get_schema_names()]


def _table_rows(sync_conn) -> List[Tuple[Any, ...]]:
    inspector = inspect(sync_conn)
    schema = inspector.default_schema_name
    rows = [(schema, name, "TABLE") for name in inspector.get_table_names()]
    rows.extend((schema, name, "VIEW") for name in inspector.get_view_names())
    return rows
