from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from typing_extensions import TypeAlias

from protoguard.errors import ViolationsError
from protoguard.status import Status, status_for_error
from protoguard.v1 import validate_pb2 as validate_pb


@dataclass(frozen=True)
class Index:
    """Subscript of a repeated field element."""

    index: int

    def __str__(self):
        return f"[{self.index}]"


@dataclass(frozen=True)
class Key:
    """Subscript of a map field entry."""

    key: Any

    def __str__(self):
        if isinstance(self.key, str):
            return f"[{json.dumps(self.key)}]"
        if isinstance(self.key, bool):
            return "[true]" if self.key else "[false]"
        return f"[{self.key}]"


PathElement: TypeAlias = Union[str, Index, Key]
FieldPath: TypeAlias = Tuple[PathElement, ...]


def format_path(path: FieldPath) -> str:
    """Renders a field path, for example `items[0].tags["a"]`."""
    parts = []
    for element in path:
        if isinstance(element, str):
            if parts:
                parts.append(".")
            parts.append(element)
        else:
            parts.append(str(element))
    return "".join(parts)


class Source(str, enum.Enum):
    """Origin of the rule that produced a violation."""

    STANDARD = "standard"
    CUSTOM = "custom"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Violation:
    """A rule that was evaluated against a value and not satisfied.

    Attributes:
        field_path: Location of the value, relative to the validated message.
            Empty for rules attached to the message itself.
        rule_id: Identifier of the rule, like `string.min_len` or the id of
            a custom rule.
        message: Human-readable description of the violation.
        source: Whether the rule is a standard rule or a custom expression.
        for_key: The violation applies to a map key rather than its value.
    """

    field_path: FieldPath
    rule_id: str
    message: str
    source: Source = Source.STANDARD
    for_key: bool = False

    @property
    def path(self) -> str:
        return format_path(self.field_path)

    def __str__(self):
        if self.field_path:
            return f"{self.path}: {self.message} [{self.rule_id}]"
        return f"{self.message} [{self.rule_id}]"

    def _as_proto(self) -> validate_pb.Violation:
        return validate_pb.Violation(
            field_path=self.path,
            constraint_id=self.rule_id,
            message=self.message,
            for_key=self.for_key,
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a message.

    A result either lists the violations found (none when the message is
    valid), or, when the constraints could not be evaluated, carries the
    error that prevented it.
    """

    violations: Tuple[Violation, ...] = ()
    error: Optional[Exception] = field(default=None, compare=False)

    @classmethod
    def from_exception(cls, error: Exception) -> ValidationResult:
        return cls(error=error)

    @property
    def status(self) -> Status:
        if self.error is not None:
            return status_for_error(self.error)
        return Status.INVALID if self.violations else Status.VALID

    @property
    def valid(self) -> bool:
        return self.error is None and not self.violations

    @property
    def invalid(self) -> bool:
        return bool(self.violations)

    def __iter__(self):
        return iter(self.violations)

    def raise_for_status(self):
        """Raise the error that prevented evaluation, or a ViolationsError if
        the message is invalid. Does nothing if the message is valid."""
        if self.error is not None:
            raise self.error
        if self.violations:
            raise ViolationsError(self)

    def _as_proto(self) -> validate_pb.Result:
        return validate_pb.Result(
            status=self.status._proto,
            violations=[v._as_proto() for v in self.violations],
            error=str(self.error) if self.error is not None else "",
        )

