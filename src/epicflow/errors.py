from __future__ import annotations


class EpicError(RuntimeError):
    """Raised when the epic workflow cannot continue."""

    def __init__(self, message: str, *, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.suggestion = suggestion


class ContextError(EpicError):
    """Raised when persisted epic state is unreadable or inconsistent."""


class PreflightError(EpicError):
    """Raised when the repository is not usable for an epic run."""


class PlanningError(EpicError):
    """Raised when planning produced an unusable result."""


class DecompositionError(EpicError):
    """Raised when the approved plan could not be broken into tasks."""


class BranchError(EpicError):
    """Raised when the epic branch is invalid, taken, or not checked out."""


class ImplementationError(EpicError):
    """Raised when the coding agent failed to implement or fix a task."""


class VCSError(EpicError):
    """Raised when a git command that mutates the repository fails."""

    def __init__(
        self,
        message: str,
        *,
        args: list[str] | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command_args = list(args or [])
        self.exit_code = exit_code
