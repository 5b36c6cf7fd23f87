"""Target Database Connection Module

Builds SQLAlchemy engines for the MySQL / PostgreSQL databases that published
APIs run against. Engines are created per call from the decrypted connection
descriptor and disposed afterwards, since every published URL may point at a
different database.
"""

import asyncio
import time
from typing import Any

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from vulcan.lib.errors import ExecutionError, InvalidConnectionError
from vulcan.lib.metrics import record_sql_execution
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.connection import ConnectionDescriptor, Engine as DatabaseEngine

logger = StructuredLogger(__name__)

DRIVERS = {
    DatabaseEngine.MYSQL: 'mysql+pymysql',
    DatabaseEngine.POSTGRESQL: 'postgresql+psycopg',
}


def build_connection_url(connection: ConnectionDescriptor) -> URL:
    """Build the SQLAlchemy URL for a connection descriptor.

    Raises:
        InvalidConnectionError: If the port is not numeric or the database is missing
    """
    if not connection.database:
        raise InvalidConnectionError(
            'Database name is required. Please specify a database in your connection settings.'
        )
    try:
        port = int(connection.port)
    except ValueError as e:
        raise InvalidConnectionError(f'Invalid port: {connection.port}') from e

    return URL.create(
        drivername=DRIVERS[connection.engine_type],
        username=connection.username,
        password=connection.password or None,
        host=connection.host,
        port=port,
        database=connection.database,
    )


def create_target_engine(connection: ConnectionDescriptor) -> Engine:
    """Create an unpooled engine for one target database.

    NullPool: each checkout opens a fresh DBAPI connection and closing it
    really closes it, so nothing outlives the request.
    """
    return create_engine(
        build_connection_url(connection),
        poolclass=NullPool,
        echo=False,
    )


def _run_statement(connection: ConnectionDescriptor, sql: str) -> list[dict[str, Any]]:
    engine = create_target_engine(connection)
    try:
        with engine.begin() as conn:
            result = conn.execute(text(sql))
            if result.returns_rows:
                return [dict(row) for row in result.mappings().all()]
            return [{'affectedRows': result.rowcount}]
    finally:
        engine.dispose()


def execute_sql(connection: ConnectionDescriptor, sql: str) -> list[dict[str, Any]]:
    """Execute one SQL statement and return its rows.

    Statements that return no rows (INSERT/UPDATE/DELETE) produce a single
    ``{'affectedRows': n}`` row.

    Raises:
        InvalidConnectionError: If the descriptor cannot form a connection URL
        ExecutionError: On any driver or SQL failure
    """
    start_time = time.time()
    try:
        rows = _run_statement(connection, sql)
    except InvalidConnectionError:
        raise
    except SQLAlchemyError as e:
        record_sql_execution(connection.engine_type.value, 'failure', time.time() - start_time)
        logger.error(
            f'Failed to execute SQL: {e}',
            engine=connection.engine_type.value,
            host=connection.host,
            database=connection.database,
        )
        raise ExecutionError(f'Failed to execute SQL: {e}') from e

    record_sql_execution(connection.engine_type.value, 'success', time.time() - start_time)
    logger.debug(
        'Executed SQL statement',
        engine=connection.engine_type.value,
        row_count=len(rows),
    )
    return rows


async def execute_sql_async(connection: ConnectionDescriptor, sql: str) -> list[dict[str, Any]]:
    """Run ``execute_sql`` in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(execute_sql, connection, sql)


def ping_connection(connection: ConnectionDescriptor) -> bool:
    """Open a connection and run ``SELECT 1``.

    Returns:
        True if the database answered, False otherwise
    """
    try:
        engine = create_target_engine(connection)
    except InvalidConnectionError as e:
        logger.warning(f'Connection validation failed: {e.message}', host=connection.host)
        return False
    try:
        with engine.connect() as conn:
            conn.execute(text('SELECT 1'))
        return True
    except SQLAlchemyError as e:
        logger.warning(
            f'Connection validation failed: {e}',
            engine=connection.engine_type.value,
            host=connection.host,
            database=connection.database,
        )
        return False
    finally:
        engine.dispose()


async def ping_connection_async(connection: ConnectionDescriptor) -> bool:
    return await asyncio.to_thread(ping_connection, connection)
