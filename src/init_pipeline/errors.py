"""Exception taxonomy for the init pipeline.

Validators never raise for malformed documents or blueprints; they return
structured results. Everything here is either a sequencing failure (wrong
stage, unmet checkpoint), an external-tool failure, or a fatal input problem
that stops the command before any state is written.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class. ``hint`` is a corrective action printed to the operator."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class StateNotInitializedError(PipelineError):
    def __init__(self) -> None:
        super().__init__("No init state detected.", hint="Run: init-pipeline start")


class StateCorruptError(PipelineError):
    pass


class LanguageNotSetError(PipelineError):
    def __init__(self, action: str) -> None:
        super().__init__(
            f"Language not set; refusing to {action}.",
            hint='Run: init-pipeline set-language --language "<your language>"',
        )


class WrongStageError(PipelineError):
    """Raised when a stage-scoped command runs outside its stage."""

    def __init__(self, command: str, current: str, required: str, *, hint: str | None = None) -> None:
        super().__init__(
            f"Current stage is {current}. {command} is only valid in Stage {required}.",
            hint=hint,
        )
        self.command = command
        self.current = current
        self.required = required


class GateNotSatisfiedError(PipelineError):
    """A checkpoint precondition (validated, reviewed, synced) is not met."""


class ValidationFailedError(PipelineError):
    def __init__(self, message: str, errors: list[str], *, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.errors = list(errors)


class PipelineHaltedError(PipelineError):
    def __init__(self, command: str) -> None:
        super().__init__(
            f"Pipeline is halted by an emergency stop; refusing {command}.",
            hint="Run: init-pipeline resume",
        )


class BlueprintNotFoundError(PipelineError):
    pass


class BlueprintParseError(PipelineError):
    pass


class ManifestError(PipelineError):
    pass


class ExternalToolError(PipelineError):
    def __init__(self, message: str, *, exit_code: int | None, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.exit_code = exit_code


class CleanupRefusedError(PipelineError):
    pass
