"""
Error taxonomy for the Text2SQL pipeline.

Every failure the pipeline can produce has a dedicated exception
type.  They are raised inside stage preparation / validation and
caught at the stage or pipeline boundary, where they are turned
into structured failure fields (``StepResult.error`` and
``StepResult.error_type``).  None of them reach the HTTP caller
as an uncaught fault.
"""


class Text2SqlError(Exception):
    """Base class for all pipeline errors."""

    @property
    def error_type(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(Text2SqlError):
    """The user query is blank."""


class ClassificationRejection(Text2SqlError):
    """Stage 1 decided the question is not about the database."""


class GenerationFailure(Text2SqlError):
    """A stage produced empty or unusable content."""


class ExtractionFailure(Text2SqlError):
    """No SQL statement could be found in the stage-4 output."""


class SafetyViolation(Text2SqlError):
    """The candidate statement was rejected by the safety gate."""


class ExecutionError(Text2SqlError):
    """The execution backend failed to run a statement."""


class TemplateError(Text2SqlError):
    """A prompt template could not be rendered."""
