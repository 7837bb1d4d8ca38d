"""
Database connector service for the configured execution backends.

Each configured datasource is wrapped in a ``QueryExecutor``: a
SQLAlchemy engine plus schema introspection and query execution.
The executors are created once at startup and shared read-only by
every request; the datasource router decides which one a request
uses.
"""

import logging
import re
from typing import List, Dict, Any, Optional

from sqlalchemy import create_engine, text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from text2sql.errors import ExecutionError

logger = logging.getLogger(__name__)

# Strict whitelist: table/column names must be plain
# identifiers (letters, digits, underscores).
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


def build_engine(url: str) -> Engine:
    """
    Create a SQLAlchemy engine for a datasource URL.

    Parameters:
        url (str): SQLAlchemy connection URL.

    Returns:
        Engine: Engine with connection health checks enabled.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(url, pool_pre_ping=True, echo=False)


def _describe_columns(inspector, table_name: str) -> List[Dict[str, Any]]:
    pk_constraint = inspector.get_pk_constraint(table_name)
    pk_columns = (
        pk_constraint.get("constrained_columns", [])
        if isinstance(pk_constraint, dict)
        else []
    )
    return [
        {
            "name": col["name"],
            "type": str(col["type"]),
            "nullable": col.get("nullable", True),
            "primary_key": col["name"] in pk_columns,
            "comment": col.get("comment"),
        }
        for col in inspector.get_columns(table_name)
    ]


class QueryExecutor:
    """
    Execution handle for one datasource.

    Attributes:
        name (str): Canonical datasource name.
        engine (Engine): SQLAlchemy engine.
        max_rows (int): Upper bound on rows returned per query.
    """

    def __init__(
        self,
        name: str,
        engine: Engine,
        max_rows: int = 1000,
    ):
        self.name = name
        self.engine = engine
        self.max_rows = max_rows

    def __repr__(self) -> str:
        return f"QueryExecutor(name={self.name!r})"

    def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Execute a SQL query and return the rows as dictionaries.

        Parameters:
            query (str): SQL statement (already safety-checked).
            params (dict, optional): Bound parameter values.

        Returns:
            list[dict]: Rows, at most ``max_rows`` of them.

        Raises:
            ExecutionError: If the backend rejects the statement.
        """
        logger.info("[%s] executing SQL: %s", self.name, query)
        try:
            with self.engine.connect() as connection:
                result = connection.execute(
                    text(query),
                    params or {},
                )
                columns = list(result.keys())
                rows = [
                    dict(zip(columns, row))
                    for row in result.fetchmany(self.max_rows)
                ]
        except SQLAlchemyError as exc:
            logger.error("[%s] query failed: %s", self.name, exc)
            raise ExecutionError(
                f"query execution failed: {exc}"
            ) from exc
        logger.info("[%s] query returned %d rows", self.name, len(rows))
        return rows

    def get_table_names(self) -> List[str]:
        """
        List the base tables of the datasource.

        Returns:
            list[str]: Sorted table names.
        """
        try:
            return sorted(inspect(self.engine).get_table_names())
        except SQLAlchemyError as exc:
            raise ExecutionError(
                f"failed to list tables: {exc}"
            ) from exc

    def get_table_columns(self, table_name: str) -> List[Dict[str, Any]]:
        """
        Describe the columns of one table.

        Parameters:
            table_name (str): Table name (validated).

        Returns:
            list[dict]: ``name``, ``type``, ``nullable``,
                ``primary_key`` and ``comment`` per column.

        Raises:
            ValueError: If the table name fails the whitelist check.
            ExecutionError: If introspection fails.
        """
        if not _IDENTIFIER_RE.match(table_name or ""):
            raise ValueError(f"Invalid table name: {table_name!r}")
        try:
            return _describe_columns(inspect(self.engine), table_name)
        except SQLAlchemyError as exc:
            raise ExecutionError(
                f"failed to read columns of {table_name}: {exc}"
            ) from exc

    def get_schema(self, table_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Introspect tables, columns and foreign keys.

        Parameters:
            table_name (str, optional): Restrict to one table.

        Returns:
            dict: Schema info with 'database' and 'tables' keys.

        Raises:
            LookupError: If *table_name* does not exist.
        """
        names = self.get_table_names()
        if table_name is not None:
            if table_name not in names:
                raise LookupError(f"Unknown table: {table_name}")
            names = [table_name]

        tables = []
        try:
            inspector = inspect(self.engine)
            for name in names:
                # Foreign key relationships
                foreign_keys = [
                    {
                        "columns": fk.get("constrained_columns", []),
                        "referred_table": fk.get("referred_table", ""),
                        "referred_columns": fk.get("referred_columns", []),
                    }
                    for fk in inspector.get_foreign_keys(name)
                ]
                tables.append({
                    "name": name,
                    "columns": _describe_columns(inspector, name),
                    "foreign_keys": foreign_keys,
                })
        except SQLAlchemyError as exc:
            raise ExecutionError(
                f"failed to read schema: {exc}"
            ) from exc
        return {
            "database": self.name,
            "tables": tables,
        }

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the datasource connection.

        Returns:
            dict: Result with 'success' (bool) and 'message' (str).
        """
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return {
                "success": True,
                "message": "Connection successful",
            }
        except Exception as e:
            logger.error("[%s] connection failed: %s", self.name, e)
            return {
                "success": False,
                "message": f"Connection failed: {str(e)}",
            }

    def dispose(self) -> None:
        self.engine.dispose()
