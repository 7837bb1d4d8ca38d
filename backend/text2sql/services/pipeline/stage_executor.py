"""
Stage executor.

Renders a prompt template, makes exactly one completion call, applies
an optional post-processing function, and wraps the outcome in a
``StepResult``.  This is the failure boundary of every stage:
exceptions are converted into failed results and never propagate.

Templates use single-brace ``{placeholder}`` variables.  Rendering
goes through a sandboxed Jinja2 environment with those delimiters
and strict undefined handling, so a missing variable is an error
rather than an empty string.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from jinja2 import StrictUndefined, TemplateError as JinjaTemplateError
from jinja2.sandbox import SandboxedEnvironment

from text2sql.errors import TemplateError
from text2sql.services.llm import CompletionClient
from text2sql.services.pipeline.results import StepResult

logger = logging.getLogger(__name__)


# Sandboxed Jinja2 environment: no file access, no imports.
_jinja_env = SandboxedEnvironment(
    variable_start_string="{",
    variable_end_string="}",
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


def render_template(template_str: str, variables: Mapping[str, Any]) -> str:
    """
    Substitute ``{name}`` placeholders in a prompt template.

    Parameters:
        template_str (str): Template text.
        variables (Mapping): Placeholder values.

    Returns:
        str: Rendered prompt.

    Raises:
        TemplateError: If a referenced variable is missing or the
            template is malformed.
    """
    try:
        return _jinja_env.from_string(template_str).render(**variables)
    except JinjaTemplateError as exc:
        raise TemplateError(f"prompt template error: {exc}") from exc


class StageExecutor:
    """Run one pipeline stage against the completion capability."""

    def __init__(self, completion: CompletionClient):
        self.completion = completion

    def execute(
        self,
        stage_id: int,
        template: str,
        variables: Dict[str, Any],
        post_process: Optional[Callable[[str], str]] = None,
    ) -> StepResult:
        """
        Execute a stage.

        Parameters:
            stage_id (int): Stage number, for logging.
            template (str): Prompt template text.
            variables (dict): Placeholder values.
            post_process (callable, optional): Applied to the
                completion text before wrapping.

        Returns:
            StepResult: Success with the (post-processed) content,
                or failure with the exception message.
        """
        try:
            logger.info("[stage %d] executing", stage_id)
            prompt = render_template(template, variables)
            content = self.completion.complete(prompt) or ""
            if post_process is not None:
                content = post_process(content)
            logger.debug("[stage %d] output: %s", stage_id, content)
            return StepResult.success(content)
        except Exception as exc:
            logger.error("[stage %d] failed: %s", stage_id, exc)
            return StepResult.from_exception(exc)
