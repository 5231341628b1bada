from builtins import RecursionError as _RecursionError
from typing import TYPE_CHECKING, cast

from protoguard.status import Status, register_error_type

if TYPE_CHECKING:
    from protoguard.result import ValidationResult


class ProtoguardError(Exception):
    """Base class for protoguard exceptions."""

    _status = Status.UNSPECIFIED


class SchemaError(ProtoguardError, ValueError):
    """Constraint metadata attached to a schema is malformed, for example
    rules that do not apply to the kind of the field they are attached to."""

    _status = Status.SCHEMA_ERROR


class CompilationError(ProtoguardError, ValueError):
    """A constraint expression could not be compiled against the variables
    available to it."""

    _status = Status.COMPILATION_ERROR

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class RecursionError(ProtoguardError, _RecursionError):
    """Nested messages exceeded the maximum validation depth."""

    _status = Status.RECURSION_ERROR


class RuntimeEvaluationError(ProtoguardError, RuntimeError):
    """A compiled expression failed while executing against the values of a
    message. Unlike a violation, this means the rule could not be evaluated
    at all."""

    _status = Status.RUNTIME_ERROR


class ViolationsError(ProtoguardError, ValueError):
    """A message violated one or more of its constraints."""

    _status = Status.INVALID

    def __init__(self, result: "ValidationResult"):
        count = len(result.violations)
        super().__init__(
            f"message has {count} constraint violation{'s' if count != 1 else ''}: "
            + "; ".join(str(v) for v in result.violations)
        )
        self.result = result

    @property
    def violations(self):
        return self.result.violations


def protoguard_error_status(error: Exception) -> Status:
    return cast(ProtoguardError, error)._status


register_error_type(ProtoguardError, protoguard_error_status)
