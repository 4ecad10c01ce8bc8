from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Sequence
    from pathlib import Path
    from typing import Any


class BuildGraphError(Exception):
    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        super().__init__(*args, **kwargs)


class DuplicateDefinitionWarning(UserWarning):
    pass


##
## DEFINITION
##


class DefinitionError(BuildGraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnknownTaskError(DefinitionError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Task '{name}' is not defined. Register it with `registry.define('{name}', ...)`."
        )


class InvalidReferenceError(DefinitionError):
    def __init__(self, task_name: str, missing: str) -> None:
        self.task_name = task_name
        self.missing = missing
        super().__init__(
            f"Task '{task_name}' lists prerequisite '{missing}', which is never defined."
        )


class FrozenRegistryError(DefinitionError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"Cannot define task '{name}': the registry is frozen once a run has begun."
        )


##
## PLAN RESOLUTION
##


class CycleDetectedError(BuildGraphError):
    def __init__(self, path: "Sequence[str]") -> None:
        self.path = tuple(path)
        super().__init__(
            "Task prerequisites cannot contain cycles. Offending cycle:\n"
            f"  {' -> '.join(self.path)}"
        )


##
## EXECUTION
##


class ActionFailure(BuildGraphError):
    def __init__(self, task_name: str, cause: BaseException) -> None:
        self.task_name = task_name
        self.cause = cause
        super().__init__(f"Task '{task_name}' failed: {cause}")


class ToolError(BuildGraphError):
    def __init__(self, tool: str, returncode: int, stderr: str = "") -> None:
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr
        detail = f"\n{stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"'{tool}' exited with status {returncode}.{detail}")


class LintError(BuildGraphError):
    def __init__(self, problems: dict[str, str]) -> None:
        self.problems = problems
        listing = "\n".join(f"  {path}: {msg}" for path, msg in problems.items())
        super().__init__(f"Lint failed for {len(problems)} file(s):\n{listing}")


class MissingSourceError(BuildGraphError):
    def __init__(self, patterns: "Sequence[str]") -> None:
        self.patterns = tuple(patterns)
        super().__init__(f"No source files matched: {', '.join(self.patterns)}.")


##
## TRANSFER
##


class TransferFailure(BuildGraphError):
    def __init__(self, path: "Path | str", cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to transfer '{path}': {cause}")


class DeployError(BuildGraphError):
    def __init__(self, failures: "Sequence[TransferFailure]") -> None:
        self.failures = tuple(failures)
        super().__init__(
            f"{len(self.failures)} file(s) failed to transfer. Re-run deploy to resume."
        )
