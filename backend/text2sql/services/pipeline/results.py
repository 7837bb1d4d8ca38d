"""
Result types produced by the pipeline.

``StepResult`` is the outcome of one stage.  ``PipelineResult``
holds up to five of them; a ``None`` slot means the stage was never
attempted, which is different from a failed ``StepResult``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from text2sql.errors import Text2SqlError

STAGE_COUNT = 5


class StepResult(BaseModel):
    """Outcome of a single stage."""

    ok: bool
    content: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    model_config = {"frozen": True}

    @classmethod
    def success(cls, content: str) -> "StepResult":
        return cls(ok=True, content=content)

    @classmethod
    def failure(
        cls,
        error: str,
        error_type: str = "GenerationFailure",
    ) -> "StepResult":
        return cls(ok=False, error=error, error_type=error_type)

    @classmethod
    def from_exception(cls, exc: Exception) -> "StepResult":
        """Wrap an exception, keeping its category when known."""
        if isinstance(exc, Text2SqlError):
            return cls.failure(exc.message, exc.error_type)
        return cls.failure(str(exc) or type(exc).__name__)


class PipelineResult(BaseModel):
    """
    The possibly-truncated sequence of stage results.

    Attributes:
        steps (list): Five slots, stage 1 at index 0.
        sql (str | None): Statement extracted for stage 5, once the
            pipeline got that far and the statement passed the gate.
    """

    steps: List[Optional[StepResult]] = Field(
        default_factory=lambda: [None] * STAGE_COUNT,
    )
    sql: Optional[str] = None

    def step(self, stage_id: int) -> Optional[StepResult]:
        """Return the result of stage *stage_id* (1-based)."""
        if not 1 <= stage_id <= STAGE_COUNT:
            raise IndexError(f"no stage {stage_id}")
        return self.steps[stage_id - 1]

    def record(self, stage_id: int, result: StepResult) -> None:
        self.steps[stage_id - 1] = result

    @property
    def success(self) -> bool:
        return all(step is not None and step.ok for step in self.steps)

    @property
    def failed_stage(self) -> Optional[int]:
        for index, step in enumerate(self.steps, start=1):
            if step is not None and not step.ok:
                return index
        return None

    @property
    def error(self) -> Optional[str]:
        stage = self.failed_stage
        return self.step(stage).error if stage else None

    def to_response(self) -> Dict[str, Any]:
        """Serialise as ``{success, sql, step1..step5}``."""
        payload: Dict[str, Any] = {
            "success": self.success,
            "sql": self.sql,
        }
        for index, step in enumerate(self.steps, start=1):
            payload[f"step{index}"] = (
                step.model_dump() if step is not None else None
            )
        return payload


class QueryResult(BaseModel):
    """Outcome of the single-shot ``process`` entry point."""

    success: bool
    sql: Optional[str] = None
    rows: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, sql: str, rows: List[Dict[str, Any]]) -> "QueryResult":
        return cls(success=True, sql=sql, rows=rows)

    @classmethod
    def fail(
        cls,
        exc: Exception,
        sql: Optional[str] = None,
    ) -> "QueryResult":
        step = StepResult.from_exception(exc)
        return cls(
            success=False,
            sql=sql,
            error=step.error,
            error_type=step.error_type,
        )
