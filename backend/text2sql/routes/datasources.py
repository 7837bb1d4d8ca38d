"""
API routes for the configured datasources.

Lists datasources, tests their connectivity, and exposes table
names and schema introspection for a selected datasource.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from text2sql.database import get_router
from text2sql.errors import ExecutionError
from text2sql.schemas import (
    ConnectionTestResult,
    DataSourceList,
    SchemaResponse,
)
from text2sql.services.datasource_router import DataSourceRouter

router = APIRouter(prefix="/api", tags=["datasources"])


@router.get(
    "/datasources",
    response_model=DataSourceList,
    summary="List configured datasources",
)
def list_datasources(
    datasources: DataSourceRouter = Depends(get_router),
):
    """Return datasource names, aliases, and the default."""
    return {
        "default": datasources.default,
        "datasources": datasources.names,
        "aliases": datasources.aliases,
    }


@router.get(
    "/datasources/test",
    response_model=Dict[str, ConnectionTestResult],
    summary="Test every datasource connection",
)
def test_connections_endpoint(
    datasources: DataSourceRouter = Depends(get_router),
):
    """Attempt ``SELECT 1`` on every datasource."""
    return datasources.test_all_connections()


@router.get(
    "/table-names",
    response_model=List[str],
    summary="List tables of a datasource",
)
def get_table_names(
    data_source: Optional[str] = Query(default=None, alias="dataSource"),
    datasources: DataSourceRouter = Depends(get_router),
):
    """Return the table names of the selected datasource."""
    with datasources.use_datasource(data_source) as handle:
        try:
            return handle.get_table_names()
        except ExecutionError as e:
            raise HTTPException(status_code=500, detail=str(e))


@router.get(
    "/schema",
    response_model=SchemaResponse,
    summary="Get datasource schema",
)
def get_schema(
    data_source: Optional[str] = Query(default=None, alias="dataSource"),
    table: Optional[str] = None,
    datasources: DataSourceRouter = Depends(get_router),
):
    """
    Introspect the selected datasource.

    Returns tables, columns, types, and key information, either for
    every table or for the one named in ``table``.
    """
    with datasources.use_datasource(data_source) as handle:
        try:
            return handle.get_schema(table)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ExecutionError as e:
            raise HTTPException(
                status_code=500,
                detail=f"Failed to read schema: {str(e)}",
            )
