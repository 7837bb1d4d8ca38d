"""
API routes for natural-language queries.

Provides the single-shot query endpoint, the five-stage pipeline
endpoint, and its Server-Sent Events variant.  Every request runs
against the datasource named in its ``dataSource`` field (or the
default one).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from text2sql.config import settings
from text2sql.database import get_router
from text2sql.schemas import (
    QueryRequest,
    QueryResponse,
    StepQueryResponse,
)
from text2sql.services.database_tools import DatabaseTools
from text2sql.services.datasource_router import DataSourceRouter
from text2sql.services.llm import OpenAICompletionClient
from text2sql.services.pipeline import Text2SqlPipeline
from text2sql.services.pipeline.orchestrator import EMPTY_QUERY
from text2sql.services.prompts import PromptLibrary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/query", tags=["query"])

_pipeline: Optional[Text2SqlPipeline] = None


def get_pipeline(
    datasources: DataSourceRouter = Depends(get_router),
) -> Text2SqlPipeline:
    """
    Dependency that provides the Text2SQL pipeline.

    The pipeline is built once per datasource router, with an
    OpenAI completion client that can call the database tools.
    """
    global _pipeline
    if _pipeline is None or _pipeline.router is not datasources:
        completion = OpenAICompletionClient(
            tools=DatabaseTools(datasources),
        )
        _pipeline = Text2SqlPipeline(
            completion,
            router=datasources,
            prompts=PromptLibrary(settings.prompts_dir),
        )
    return _pipeline


@router.post(
    "",
    response_model=QueryResponse,
    summary="Convert a question to SQL and execute it",
)
def process_query(
    request: QueryRequest,
    pipeline: Text2SqlPipeline = Depends(get_pipeline),
    datasources: DataSourceRouter = Depends(get_router),
):
    """
    Generate one SQL query for the question and execute it.

    Returns the SQL, the rows, and the row count, or an error
    message.  A blank query is rejected with HTTP 400.
    """
    if not request.query or not request.query.strip():
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": EMPTY_QUERY},
        )

    with datasources.use_datasource(request.data_source):
        result = pipeline.process(request.query, request.table_names)

    if not result.success:
        return {
            "success": False,
            "sql": result.sql,
            "error": result.error,
        }
    return {
        "success": True,
        "sql": result.sql,
        "data": result.rows,
        "count": len(result.rows),
    }


@router.post(
    "/steps",
    response_model=StepQueryResponse,
    summary="Run the five-stage pipeline",
)
def process_query_with_steps(
    request: QueryRequest,
    pipeline: Text2SqlPipeline = Depends(get_pipeline),
    datasources: DataSourceRouter = Depends(get_router),
):
    """
    Run the staged pipeline and return every stage's outcome.

    Stages after the first failure are ``null``.
    """
    with datasources.use_datasource(request.data_source):
        result = pipeline.run(request.query, request.table_names)
    return result.to_response()


@router.post(
    "/steps/stream",
    summary="Run the five-stage pipeline with SSE progress",
)
def stream_query_with_steps(
    request: QueryRequest,
    pipeline: Text2SqlPipeline = Depends(get_pipeline),
):
    """
    Stream ``stage_start`` / ``stage_done`` events, then ``result``.
    """
    return StreamingResponse(
        pipeline.run_stream(
            request.query,
            request.table_names,
            datasource=request.data_source,
        ),
        media_type="text/event-stream",
    )
