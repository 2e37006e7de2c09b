"""
Database dump producer.

Builds a plain-text SQL snapshot of a database (CREATE TABLE statements
followed by one INSERT per row) using SQLAlchemy reflection, so the same
code path works for SQLite, MySQL and PostgreSQL.
"""

import logging
import threading
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import MetaData, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable


logger = logging.getLogger(__name__)

_engines: Dict[str, Engine] = {}
_engines_lock = threading.Lock()


class DumpError(Exception):
    """Raised when the database dump cannot be produced."""
    pass


class DumpProducer:
    """Produces a complete database snapshot as bytes."""

    def produce(self) -> bytes:
        raise NotImplementedError


class SQLAlchemyDumpProducer(DumpProducer):
    """
    Dumps every table reachable through a SQLAlchemy engine.
    """

    def __init__(self, engine: Engine):
        """
        Initialize dump producer.

        Args:
            engine: Engine bound to the database to dump
        """
        self.engine = engine

    def produce(self) -> bytes:
        """
        Dump schema and data of every table.

        Returns:
            UTF-8 encoded SQL text

        Raises:
            DumpError: If the database has no tables or cannot be read
        """
        try:
            metadata = MetaData()
            metadata.reflect(bind=self.engine)
            tables = metadata.sorted_tables

            if not tables:
                raise DumpError("Database has no tables to dump")

            preparer = self.engine.dialect.identifier_preparer
            chunks = []

            with self.engine.connect() as connection:
                for table in tables:
                    create_statement = str(CreateTable(table).compile(dialect=self.engine.dialect)).strip()
                    chunks.append(f"\n\n{create_statement};\n\n")

                    table_name = preparer.format_table(table)
                    for row in connection.execute(select(table)):
                        values = ','.join(quote_literal(value) for value in row)
                        chunks.append(f"INSERT INTO {table_name} VALUES ({values});\n")

        except SQLAlchemyError as e:
            raise DumpError(f"Failed to dump database: {e}")

        logger.debug(f"Dumped {len(tables)} tables")
        return ''.join(chunks).encode('utf-8')


def quote_literal(value: Any) -> str:
    """
    Render a Python value as an SQL literal.

    Args:
        value: Column value returned by the driver

    Returns:
        SQL literal text
    """
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"X'{bytes(value).hex()}'"
    if isinstance(value, (datetime, date, time)):
        return f"'{value}'"

    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def create_dump_producer(database_uri: Optional[str] = None) -> SQLAlchemyDumpProducer:
    """
    Create a dump producer for a database.

    Args:
        database_uri: SQLAlchemy URL of the database to dump, or None for the
            application database (requires an app context)

    Returns:
        SQLAlchemyDumpProducer instance
    """
    if database_uri is None:
        from dbkeeper import db
        return SQLAlchemyDumpProducer(db.engine)

    with _engines_lock:
        engine = _engines.get(database_uri)
        if engine is None:
            engine = create_engine(database_uri, pool_pre_ping=True)
            _engines[database_uri] = engine

    return SQLAlchemyDumpProducer(engine)
