"""Declarative validation of protobuf messages.

Constraints are declared on message types with the protoguard.v1 options,
then checked against instances:

    import protoguard

    result = protoguard.check(message)
    for violation in result:
        print(violation)
"""

from datetime import datetime
from typing import Optional

from google.protobuf.message import Message

from protoguard.config import Config
from protoguard.constraints import CompiledConstraintSet, ConstraintResolver
from protoguard.errors import (
    CompilationError,
    ProtoguardError,
    RecursionError,
    RuntimeEvaluationError,
    SchemaError,
    ViolationsError,
)
from protoguard.expression import ProgramCache
from protoguard.result import Index, Key, Source, ValidationResult, Violation
from protoguard.status import Status
from protoguard.validator import Validator, default_validator, set_default_validator

__all__ = [
    "CompilationError",
    "CompiledConstraintSet",
    "Config",
    "ConstraintResolver",
    "Index",
    "Key",
    "ProgramCache",
    "ProtoguardError",
    "RecursionError",
    "RuntimeEvaluationError",
    "SchemaError",
    "Source",
    "Status",
    "ValidationResult",
    "Validator",
    "Violation",
    "ViolationsError",
    "check",
    "default_validator",
    "set_default_validator",
    "validate",
]


def validate(
    message: Message, fail_fast: Optional[bool] = None, now: Optional[datetime] = None
) -> ValidationResult:
    """Validate a message with the default validator.

    See Validator.validate.
    """
    return default_validator().validate(message, fail_fast, now)


def check(
    message: Message, fail_fast: Optional[bool] = None, now: Optional[datetime] = None
) -> ValidationResult:
    """Validate a message with the default validator, reporting errors in
    the result instead of raising them.

    See Validator.check.
    """
    return default_validator().check(message, fail_fast, now)
