"""Evaluation of compiled constraints against message instances.

The evaluator walks a message in field declaration order. For each field it
runs the standard rules, then the custom rules, recursing into nested
messages with their own compiled constraints. Required oneofs and the
message-level rules come last. This order is part of the contract: the
violations of a given message always come out in the same order.
"""

import builtins
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from google.protobuf import duration_pb2, timestamp_pb2
from google.protobuf.message import Message

from protoguard import kinds
from protoguard.config import DEFAULT_MAX_DEPTH
from protoguard.constraints import (
    Check,
    CompiledConstraintSet,
    ConstraintResolver,
    FieldConstraintSet,
    ValueConstraintSet,
)
from protoguard.errors import RecursionError, RuntimeEvaluationError
from protoguard.result import FieldPath, Index, Key, Violation, format_path

logger = logging.getLogger(__name__)


class MessageEvaluator:
    """Evaluates messages against the constraints of their type.

    Evaluators hold no state between calls, a single instance can be used
    concurrently from any number of threads.
    """

    def __init__(
        self, resolver: ConstraintResolver, max_depth: int = DEFAULT_MAX_DEPTH
    ):
        """Initialize an evaluator.

        Args:
            resolver: Resolver providing the compiled constraints of nested
                message types.
            max_depth: Maximum number of nested message levels below the
                evaluated message.
        """
        self.resolver = resolver
        self.max_depth = max_depth

    def evaluate(
        self,
        message: Message,
        compiled: Optional[CompiledConstraintSet] = None,
        fail_fast: bool = False,
        now: Optional[datetime] = None,
    ) -> Tuple[Violation, ...]:
        """Evaluate a message.

        Args:
            message: The message to evaluate.
            compiled: Compiled constraints of the message type. Resolved
                from the message descriptor if omitted.
            fail_fast: Stop at the first violation.
            now: Time bound to the `now` variable of expressions. Defaults
                to the current UTC time.

        Returns:
            The violations found, in evaluation order.

        Raises:
            RecursionError: If nested messages exceed the maximum depth.
            RuntimeEvaluationError: If an expression could not be evaluated.
        """
        if compiled is None:
            compiled = self.resolver.resolve(message.DESCRIPTOR)
        walk = _Walk(
            self.resolver,
            fail_fast=fail_fast,
            max_depth=self.max_depth,
            now=now if now is not None else datetime.now(timezone.utc),
        )
        try:
            walk.message(message, compiled, (), 0)
        except _Stop:
            logger.debug(
                "stopped validating %s at the first violation",
                message.DESCRIPTOR.full_name,
            )
        except RecursionError:
            raise
        except builtins.RecursionError:
            # max_depth is above what the interpreter stack can hold.
            raise RecursionError(
                f"{message.DESCRIPTOR.full_name} is nested too deeply to be "
                f"validated with a maximum depth of {self.max_depth}"
            ) from None
        return tuple(walk.violations)


class _Stop(Exception):
    """Unwinds the walk at the first violation in fail-fast mode."""


class _Walk:
    __slots__ = ("resolver", "fail_fast", "max_depth", "now", "violations")

    def __init__(
        self,
        resolver: ConstraintResolver,
        fail_fast: bool,
        max_depth: int,
        now: datetime,
    ):
        self.resolver = resolver
        self.fail_fast = fail_fast
        self.max_depth = max_depth
        self.now = now
        self.violations: List[Violation] = []

    def add(self, violation: Violation):
        self.violations.append(violation)
        if self.fail_fast:
            raise _Stop

    def message(
        self, message: Message, compiled: CompiledConstraintSet, path: FieldPath, depth: int
    ):
        if depth > self.max_depth:
            raise RecursionError(
                f"{compiled.descriptor.full_name} at {format_path(path)} exceeds "
                f"the maximum validation depth of {self.max_depth}"
            )
        if compiled.disabled:
            return

        for field in compiled.fields:
            self.field(message, field, path, depth)

        for oneof in compiled.oneofs:
            if oneof.required and message.WhichOneof(oneof.name) is None:
                self.add(
                    Violation(
                        path + (oneof.name,),
                        "oneof.required",
                        "exactly one field is required in oneof",
                    )
                )

        for check in compiled.message_rules:
            self.run(check, message, path)

    def field(
        self, message: Message, field: FieldConstraintSet, path: FieldPath, depth: int
    ):
        path = path + (field.name,)
        value = getattr(message, field.name)

        match field.kind:
            case kinds.Repeated():
                if not self.present(field, len(value) > 0, path):
                    return
                self.value([_bind(v) for v in value], field.value, path, depth)
                assert field.items is not None
                for index, item in enumerate(value):
                    self.value(item, field.items, path + (Index(index),), depth)

            case kinds.Map():
                if not self.present(field, len(value) > 0, path):
                    return
                self.value(
                    {k: _bind(v) for k, v in value.items()}, field.value, path, depth
                )
                assert field.keys is not None and field.values is not None
                # Map iteration order is unspecified, keys are sorted to
                # keep violations in a stable order.
                for key in sorted(value):
                    entry_path = path + (Key(key),)
                    self.value(key, field.keys, entry_path, depth, for_key=True)
                    self.value(value[key], field.values, entry_path, depth)

            case kinds.Scalar() | kinds.Enum() | kinds.Message() | kinds.OneofMember():
                if field.has_presence:
                    is_set = message.HasField(field.name)
                else:
                    is_set = value != field.descriptor.default_value
                if not self.present(field, is_set, path):
                    return
                self.value(value, field.value, path, depth)

    def present(self, field: FieldConstraintSet, is_set: bool, path: FieldPath) -> bool:
        """Reports whether the rules of a field apply, adding a violation if
        the field is required and not set."""
        if is_set:
            return True
        if field.required:
            self.add(Violation(path, "required", "value is required"))
            return False
        # Unset fields with presence are skipped, fields without presence
        # are validated with their zero value unless ignore_empty is set.
        return not (field.has_presence or field.ignore_empty)

    def value(
        self,
        value: Any,
        constraints: ValueConstraintSet,
        path: FieldPath,
        depth: int,
        for_key: bool = False,
    ):
        if constraints.ignore_empty and _is_zero(value):
            return

        if constraints.standard or constraints.custom:
            bound = _bind(value.value if constraints.wrapper else value)
            for check in constraints.standard:
                self.run(check, bound, path, for_key)
            for check in constraints.custom:
                self.run(check, bound, path, for_key)

        if constraints.nested is not None:
            compiled = self.resolver.resolve(constraints.nested)
            self.message(value, compiled, path, depth + 1)

    def run(self, check: Check, value: Any, path: FieldPath, for_key: bool = False):
        try:
            message = check.run(value, self.now)
        except RuntimeEvaluationError as e:
            where = format_path(path) or "message"
            raise RuntimeEvaluationError(f"{where}: {check.rule_id or 'rule'}: {e}") from e
        if message is not None:
            self.add(Violation(path, check.rule_id, message, check.source, for_key))


def _bind(value: Any) -> Any:
    """Converts a value to the form bound to expression variables."""
    if isinstance(value, timestamp_pb2.Timestamp):
        return value.ToDatetime(tzinfo=timezone.utc)
    if isinstance(value, duration_pb2.Duration):
        return value.ToTimedelta()
    return value


def _is_zero(value: Any) -> bool:
    if isinstance(value, Message):
        return not value.ListFields()
    return not value
