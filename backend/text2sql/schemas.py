"""
Pydantic schemas for API request/response validation.

Provides data validation, serialization, and documentation
for all API endpoints.
"""

from typing import Optional, List, Any, Dict
from pydantic import BaseModel, ConfigDict, Field


# --- Query Schemas ---

class QueryRequest(BaseModel):
    """Schema for a natural-language query request."""

    query: Optional[str] = None
    data_source: Optional[str] = Field(default=None, alias="dataSource")
    table_names: Optional[str] = Field(default=None, alias="tableNames")

    model_config = ConfigDict(populate_by_name=True)


class QueryResponse(BaseModel):
    """Schema for the single-shot query response."""

    success: bool
    sql: Optional[str] = None
    data: Optional[List[Dict[str, Any]]] = None
    count: Optional[int] = None
    error: Optional[str] = None


class StepResultResponse(BaseModel):
    """Schema for one pipeline stage."""

    ok: bool
    content: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


class StepQueryResponse(BaseModel):
    """Schema for the staged pipeline response."""

    success: bool
    sql: Optional[str] = None
    step1: Optional[StepResultResponse] = None
    step2: Optional[StepResultResponse] = None
    step3: Optional[StepResultResponse] = None
    step4: Optional[StepResultResponse] = None
    step5: Optional[StepResultResponse] = None


# --- Datasource Schemas ---

class ColumnInfo(BaseModel):
    """Schema for a database column."""

    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    comment: Optional[str] = None


class ForeignKeyInfo(BaseModel):
    """Schema for a foreign key relationship."""

    columns: List[str] = []
    referred_table: str = ""
    referred_columns: List[str] = []


class TableInfo(BaseModel):
    """Schema for a database table with its columns."""

    name: str
    columns: List[ColumnInfo] = []
    foreign_keys: List[ForeignKeyInfo] = []


class SchemaResponse(BaseModel):
    """Schema for database schema introspection response."""

    database: str
    tables: List[TableInfo] = []


class DataSourceList(BaseModel):
    """Schema for the configured datasources."""

    default: str
    datasources: List[str]
    aliases: Dict[str, str] = {}


class ConnectionTestResult(BaseModel):
    """Schema for connection test result."""

    success: bool
    message: str
