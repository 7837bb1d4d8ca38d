"""
Pipeline orchestrator.

Coordinates the five-stage Text2SQL pipeline:

1. **Query rewrite**          → precise restatement of the question,
                                 or a rejection for non-data questions.
2. **Table selection**        → candidate tables.
3. **Information inference**  → columns, filters, joins; seeded with
                                 the business rule advisor's hints.
4. **SQL generation**         → free-text answer containing the SQL.
5. **SQL execution**          → the extracted, safety-checked
                                 statement is executed and presented.

The stages are declared once in ``build_stages`` and consumed by a
single runner, which owns the short-circuit policy: the first failed
stage ends the run and later slots stay ``None``.

Also provides a single-shot entry point (``process``) that generates
and executes SQL with one completion call, and a streaming variant
(``run_stream``) that yields Server-Sent Events per stage.
"""

import json
import logging
from contextlib import nullcontext
from datetime import date
from typing import (
    Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple,
)

from text2sql.errors import (
    ClassificationRejection,
    ExecutionError,
    ExtractionFailure,
    GenerationFailure,
    SafetyViolation,
    Text2SqlError,
    ValidationError,
)
from text2sql.services import prompts as prompt_names
from text2sql.services.business_rules import build_business_rules
from text2sql.services.datasource_router import DataSourceRouter
from text2sql.services.db_connector import QueryExecutor
from text2sql.services.llm import CompletionClient
from text2sql.services.pipeline.results import (
    PipelineResult,
    QueryResult,
    StepResult,
)
from text2sql.services.pipeline.stage_executor import (
    StageExecutor,
    render_template,
)
from text2sql.services.prompts import PromptLibrary
from text2sql.services.sql_extractor import extract_sql, strip_code_fences
from text2sql.services.sql_safety import check_sql, find_disallowed_keyword

logger = logging.getLogger(__name__)

REJECTION_MARKERS = (
    "not a database-related question",
    "no relevant business tables",
)

NON_DATABASE_QUERY = "non-database query"
EMPTY_QUERY = "query must not be empty"
SQL_EXTRACTION_FAILED = "SQL extraction failed"
SQL_SAFETY_VIOLATION = "SQL safety violation"

Context = Dict[str, Any]


class Stage(NamedTuple):
    """
    Declarative description of one pipeline stage.

    Attributes:
        stage_id (int): 1-based stage number.
        name (str): Human-readable stage name.
        template (str): Prompt template name.
        output_key (str): Context key the stage content is stored
            under for later stages.
        variables (callable): Builds the template variables from the
            run context.  May raise a ``Text2SqlError`` to fail the
            stage before any completion call.
        post_process (callable, optional): Applied to the completion.
        validate (callable, optional): Raises a ``Text2SqlError``
            when the stage content is unusable.
        uses_table_hint (bool): Pick the ``-with-tables`` template
            variant when the request carries a table-names hint.
    """

    stage_id: int
    name: str
    template: str
    output_key: str
    variables: Callable[[Context], Dict[str, Any]]
    post_process: Optional[Callable[[str], str]] = None
    validate: Optional[Callable[[str], None]] = None
    uses_table_hint: bool = False


def is_non_database_query(content: Optional[str]) -> bool:
    """
    Classify stage-1 output as a rejection.

    Parameters:
        content (str | None): Stage-1 content.

    Returns:
        bool: True for blank content or a rejection marker.
    """
    if content is None or not content.strip():
        return True
    text = content.strip().lower()
    return any(marker in text for marker in REJECTION_MARKERS)


def _check_database_question(content: str) -> None:
    if is_non_database_query(content):
        raise ClassificationRejection(NON_DATABASE_QUERY)


def _require_content(content: str) -> None:
    if not content or not content.strip():
        raise GenerationFailure("stage produced empty content")


def prepare_sql(generated: str) -> str:
    """
    Extract and safety-check the statement from stage-4 output.

    Parameters:
        generated (str): Stage-4 content.

    Returns:
        str: The validated statement.

    Raises:
        ExtractionFailure: If no statement can be extracted.
        SafetyViolation: If the gate rejects the statement, or no
            SELECT was found but the text carries a mutation keyword.
    """
    sql = extract_sql(generated)
    if not sql:
        keyword = find_disallowed_keyword(generated)
        if keyword:
            logger.warning(
                "[pipeline] no SELECT found, output contains %s", keyword,
            )
            raise SafetyViolation(
                f"{SQL_SAFETY_VIOLATION}: disallowed keyword: {keyword}"
            )
        raise ExtractionFailure(SQL_EXTRACTION_FAILED)
    verdict = check_sql(sql)
    if not verdict.allowed:
        logger.warning(
            "[pipeline] rejected SQL (%s): %s", verdict.reason, sql,
        )
        raise SafetyViolation(f"{SQL_SAFETY_VIOLATION}: {verdict.reason}")
    return sql


def _sse_event(
    event: str,
    data: Any,
) -> str:
    """
    Format a Server-Sent Event string.

    Parameters:
        event (str): Event name.
        data: Payload (will be JSON-serialised).

    Returns:
        str: SSE-formatted string.
    """
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {payload}\n\n"


class Text2SqlPipeline:
    """
    Run natural-language questions through the staged pipeline.

    Attributes:
        completion (CompletionClient): Text-in/text-out capability.
        router (DataSourceRouter | None): Execution context router,
            needed by ``process`` and for per-request datasources.
        prompts (PromptLibrary): Prompt template source.
        today (date | None): Fixed reference date for the business
            rule advisor; None means the current date.
    """

    def __init__(
        self,
        completion: CompletionClient,
        router: Optional[DataSourceRouter] = None,
        prompts: Optional[PromptLibrary] = None,
        today: Optional[date] = None,
    ):
        self.completion = completion
        self.router = router
        self.prompts = prompts or PromptLibrary()
        self.today = today
        self.executor = StageExecutor(completion)
        self.stages = self.build_stages()

    # ----- stage table ------------------------------------------------

    def build_stages(self) -> List[Stage]:
        """Declare the five stages in execution order."""
        return [
            Stage(
                stage_id=1,
                name="query rewrite",
                template=prompt_names.STEP1_QUERY_REWRITE,
                output_key="rewrittenQuery",
                variables=lambda ctx: {"userQuery": ctx["userQuery"]},
                validate=_check_database_question,
            ),
            Stage(
                stage_id=2,
                name="table selection",
                template=prompt_names.STEP2_TABLE_SELECTION,
                output_key="selectedTables",
                variables=lambda ctx: {
                    "rewrittenQuery": ctx["rewrittenQuery"],
                    "tableNames": ctx["tableNames"],
                },
                post_process=strip_code_fences,
                validate=_require_content,
                uses_table_hint=True,
            ),
            Stage(
                stage_id=3,
                name="information inference",
                template=prompt_names.STEP3_INFORMATION_INFERENCE,
                output_key="inferenceResult",
                variables=self._inference_variables,
                validate=_require_content,
            ),
            Stage(
                stage_id=4,
                name="SQL generation",
                template=prompt_names.STEP4_SQL_GENERATION,
                output_key="generatedSql",
                variables=lambda ctx: {
                    "rewrittenQuery": ctx["rewrittenQuery"],
                    "selectedTables": ctx["selectedTables"],
                    "inferenceResult": ctx["inferenceResult"],
                },
                validate=_require_content,
            ),
            Stage(
                stage_id=5,
                name="SQL execution",
                template=prompt_names.STEP5_SQL_EXECUTION,
                output_key="executionResult",
                variables=self._execution_variables,
            ),
        ]

    def _inference_variables(self, ctx: Context) -> Dict[str, Any]:
        business_rules = build_business_rules(
            ctx["rewrittenQuery"],
            ctx["selectedTables"],
            today=self.today,
        )
        logger.info("[pipeline] business rules: %s", business_rules)
        return {
            "rewrittenQuery": ctx["rewrittenQuery"],
            "selectedTables": ctx["selectedTables"],
            "businessRules": business_rules,
        }

    def _execution_variables(self, ctx: Context) -> Dict[str, Any]:
        ctx["sqlQuery"] = prepare_sql(ctx["generatedSql"])
        return {"sqlQuery": ctx["sqlQuery"]}

    # ----- runner -----------------------------------------------------

    def _scope(self, datasource: Optional[str]):
        if datasource is None or self.router is None:
            return nullcontext()
        return self.router.use_datasource(datasource)

    def _execute_stage(
        self,
        stage: Stage,
        ctx: Context,
        datasource: Optional[str],
    ) -> StepResult:
        try:
            variables = stage.variables(ctx)
            name = stage.template
            if stage.uses_table_hint:
                name = self.prompts.variant(name, ctx["tableNames"])
            template = self.prompts.get(name)
        except (Text2SqlError, OSError) as exc:
            return StepResult.from_exception(exc)

        with self._scope(datasource):
            step = self.executor.execute(
                stage.stage_id, template, variables, stage.post_process,
            )

        if step.ok and stage.validate is not None:
            try:
                stage.validate(step.content)
            except Text2SqlError as exc:
                return StepResult.from_exception(exc)
        return step

    def _run_stages(
        self,
        result: PipelineResult,
        user_query: Optional[str],
        table_names: Optional[str] = None,
        datasource: Optional[str] = None,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """
        Drive the stages, filling *result* as they complete.

        Yields ``(event, payload)`` pairs (``stage_start`` /
        ``stage_done``) so callers can report progress.
        """
        if user_query is None or not user_query.strip():
            step = StepResult.from_exception(ValidationError(EMPTY_QUERY))
            result.record(1, step)
            yield "stage_done", {"stage": 1, **step.model_dump()}
            return

        ctx: Context = {
            "userQuery": user_query.strip(),
            "tableNames": (table_names or "").strip(),
        }
        for stage in self.stages:
            logger.info(
                "[pipeline] stage %d - %s", stage.stage_id, stage.name,
            )
            yield "stage_start", {
                "stage": stage.stage_id,
                "name": stage.name,
            }
            step = self._execute_stage(stage, ctx, datasource)
            result.record(stage.stage_id, step)
            result.sql = ctx.get("sqlQuery")
            yield "stage_done", {
                "stage": stage.stage_id,
                "name": stage.name,
                **step.model_dump(),
            }
            if not step.ok:
                logger.info(
                    "[pipeline] stopped at stage %d: %s",
                    stage.stage_id,
                    step.error,
                )
                return
            ctx[stage.output_key] = step.content

    def run(
        self,
        user_query: Optional[str],
        table_names: Optional[str] = None,
        datasource: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run the five stages for *user_query*.

        Parameters:
            user_query (str): Natural-language question.
            table_names (str, optional): Table-names hint.
            datasource (str, optional): Selector to activate around
                every stage call; None keeps the ambient context.

        Returns:
            PipelineResult: Never raises; failures are recorded.
        """
        logger.info("[pipeline] processing query: %s", user_query)
        result = PipelineResult()
        for _ in self._run_stages(result, user_query, table_names, datasource):
            pass
        return result

    process_with_steps = run

    def run_stream(
        self,
        user_query: Optional[str],
        table_names: Optional[str] = None,
        datasource: Optional[str] = None,
    ) -> Iterator[str]:
        """
        Streaming variant of ``run``.

        SSE events emitted:

        - ``stage_start``  → ``{"stage": N, "name": "..."}``
        - ``stage_done``   → ``{"stage": N, "ok": ..., ...}``
        - ``result``       → ``PipelineResult.to_response()``

        The datasource override is applied around each stage call
        only, never across a suspension of this generator.

        Yields:
            str: SSE-formatted event strings.
        """
        result = PipelineResult()
        for event, data in self._run_stages(
            result, user_query, table_names, datasource,
        ):
            yield _sse_event(event, data)
        yield _sse_event("result", result.to_response())

    # ----- single-shot ------------------------------------------------

    def _handle(self) -> QueryExecutor:
        if self.router is None:
            raise ExecutionError("no execution backend configured")
        return self.router.current()

    def process(
        self,
        user_query: Optional[str],
        table_names: Optional[str] = None,
        datasource: Optional[str] = None,
    ) -> QueryResult:
        """
        Generate SQL with one completion call and execute it.

        Parameters:
            user_query (str): Natural-language question.
            table_names (str, optional): Restrict generation to these
                tables (selects the ``-with-tables`` prompt).
            datasource (str, optional): Selector to activate.

        Returns:
            QueryResult: ``success`` with ``sql`` and ``rows``, or a
                failure with ``error``.
        """
        if user_query is None or not user_query.strip():
            return QueryResult.fail(ValidationError(EMPTY_QUERY))

        if table_names and table_names.strip():
            logger.info(
                "[pipeline] single-shot query: %s (tables: %s)",
                user_query,
                table_names,
            )
        else:
            logger.info("[pipeline] single-shot query: %s", user_query)

        sql = None
        try:
            with self._scope(datasource):
                name = self.prompts.variant(
                    prompt_names.SQL_GENERATION, table_names,
                )
                prompt = render_template(self.prompts.get(name), {
                    "userQuery": user_query.strip(),
                    "tableNames": (table_names or "").strip(),
                })
                generated = self.completion.complete(prompt)
                sql = extract_sql(generated)
                if not sql:
                    raise ExtractionFailure(
                        "could not generate a valid SQL query"
                    )
                sql = prepare_sql(sql)
                rows = self._handle().execute_query(sql)
        except Text2SqlError as exc:
            return QueryResult.fail(exc, sql)
        except Exception as exc:
            logger.exception("[pipeline] single-shot query failed")
            return QueryResult.fail(
                GenerationFailure(f"error while processing query: {exc}"),
                sql,
            )

        logger.info("[pipeline] single-shot query returned %d rows", len(rows))
        return QueryResult.ok(sql, rows)
