"""
Staged Text2SQL pipeline.

Each stage has a dedicated prompt and handles one concern:
- QueryRewrite          → restate the question / reject non-data ones
- TableSelection        → pick candidate tables
- InformationInference  → columns, filters, joins (+ business rules)
- SqlGeneration         → produce the SQL text
- SqlExecution          → run the extracted, safety-checked statement

The orchestrator runs the stages in order and stops at the first
failure.
"""

from text2sql.services.pipeline.orchestrator import (
    Stage,
    Text2SqlPipeline,
    is_non_database_query,
    prepare_sql,
)
from text2sql.services.pipeline.results import (
    PipelineResult,
    QueryResult,
    StepResult,
)
from text2sql.services.pipeline.stage_executor import (
    StageExecutor,
    render_template,
)

__all__ = [
    "PipelineResult",
    "QueryResult",
    "Stage",
    "StageExecutor",
    "StepResult",
    "Text2SqlPipeline",
    "is_non_database_query",
    "prepare_sql",
    "render_template",
]
