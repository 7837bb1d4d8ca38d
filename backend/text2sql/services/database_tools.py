"""
Database tools exposed to the language model.

The completion adapter advertises these as OpenAI function tools so
the model can look at the current datasource while it rewrites the
question, picks tables, and finally executes the generated query.
Every tool resolves the datasource at call time through the router,
so it always acts on the request's active execution context.

``execute_query`` runs the statement through the safety gate first;
the model can never execute anything the gate rejects.
"""

import json
import logging
from typing import Any, Callable, Dict, List

from text2sql.errors import ExecutionError
from text2sql.services.datasource_router import DataSourceRouter
from text2sql.services.sql_safety import check_sql

logger = logging.getLogger(__name__)


TOOL_SPECS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "getTableNames",
            "description": "List the names of all tables in the database",
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getTableSchema",
            "description": (
                "Get the full structure of one table: columns, types, "
                "primary key and foreign keys"
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "tableName": {
                        "type": "string",
                        "description": "Table name",
                    },
                },
                "required": ["tableName"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getDatabaseSchema",
            "description": "Get the structure of every table in the database",
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "getTableColumns",
            "description": "List the columns of one table",
            "parameters": {
                "type": "object",
                "properties": {
                    "tableName": {
                        "type": "string",
                        "description": "Table name",
                    },
                },
                "required": ["tableName"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "executeQuery",
            "description": (
                "Execute a SQL query and return the rows "
                "(only SELECT queries are supported)"
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "sql": {
                        "type": "string",
                        "description": "SQL SELECT statement",
                    },
                },
                "required": ["sql"],
            },
        },
    },
]


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


class DatabaseTools:
    """Tool implementations bound to a datasource router."""

    def __init__(self, router: DataSourceRouter):
        self.router = router
        self._dispatch: Dict[str, Callable[..., Any]] = {
            "getTableNames": self.get_table_names,
            "getTableSchema": self.get_table_schema,
            "getDatabaseSchema": self.get_database_schema,
            "getTableColumns": self.get_table_columns,
            "executeQuery": self.execute_query,
        }

    @property
    def specs(self) -> List[Dict[str, Any]]:
        return TOOL_SPECS

    def get_table_names(self) -> List[str]:
        return self.router.current().get_table_names()

    def get_table_schema(self, tableName: str) -> Dict[str, Any]:
        return self.router.current().get_schema(tableName)

    def get_database_schema(self) -> Dict[str, Any]:
        return self.router.current().get_schema()

    def get_table_columns(self, tableName: str) -> List[Dict[str, Any]]:
        return self.router.current().get_table_columns(tableName)

    def execute_query(self, sql: str) -> List[Dict[str, Any]]:
        """
        Run a read-only query on the active datasource.

        Raises:
            ExecutionError: If the safety gate rejects *sql* or the
                backend fails.
        """
        verdict = check_sql(sql)
        if not verdict.allowed:
            raise ExecutionError(f"SQL rejected: {verdict.reason}")
        return self.router.current().execute_query(sql)

    def call(self, name: str, arguments: str) -> str:
        """
        Dispatch a tool call coming from the model.

        Errors are reported back to the model as JSON rather than
        raised, so it can correct itself.

        Parameters:
            name (str): Tool name.
            arguments (str): JSON-encoded keyword arguments.

        Returns:
            str: JSON-encoded tool result or ``{"error": ...}``.
        """
        tool = self._dispatch.get(name)
        if tool is None:
            return _to_json({"error": f"unknown tool: {name}"})
        try:
            kwargs = json.loads(arguments or "{}")
            logger.info("[tools] %s(%s)", name, kwargs)
            return _to_json(tool(**kwargs))
        except Exception as exc:
            logger.warning("[tools] %s failed: %s", name, exc)
            return _to_json({"error": str(exc)})
