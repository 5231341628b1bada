"""Resolution of the constraints declared on message schemas.

The resolver reads the protoguard.v1 options attached to a message
descriptor, its fields and its oneofs, binds the standard rules they
activate, compiles their expressions, and produces a CompiledConstraintSet.
Compiled sets are immutable and cached per descriptor for the lifetime of
the resolver.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from google.protobuf import duration_pb2, timestamp_pb2
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import Message
from typing_extensions import TypeAlias

from protoguard import kinds
from protoguard.errors import CompilationError, ProtoguardError, SchemaError
from protoguard.expression import (
    FIELD_VARIABLES,
    MESSAGE_VARIABLES,
    NOW,
    RULE,
    STANDARD_VARIABLES,
    THIS,
    Program,
    ProgramCache,
)
from protoguard.result import Source
from protoguard.rules import (
    BOUNDS,
    RANGE_KINDS,
    RANGE_RULES,
    STANDARD_RULES,
    ExpressionRule,
    NativeRule,
    StandardRule,
    render,
)
from protoguard.v1 import validate_pb2 as validate_pb

logger = logging.getLogger(__name__)

# Message types that are validated through their own rules, never by
# recursing into their fields.
_OPAQUE = frozenset([kinds.ANY, kinds.DURATION, kinds.TIMESTAMP, *kinds.WRAPPERS])


@dataclass(frozen=True)
class Check:
    """One resolved rule, ready to run against a value.

    Standard rules are either native checks called with the value and the
    rule parameter, or programs evaluated with `this`, `rule` and `now`.
    Custom rules are programs evaluated with `this` and `now`.
    """

    rule_id: str
    message: str
    source: Source
    native: Optional[Callable[[Any, Any], bool]] = None
    program: Optional[Program] = None
    param: Any = None

    def run(self, value: Any, now: Any) -> Optional[str]:
        """Runs the rule against value.

        Returns:
            None if the value satisfies the rule, otherwise the violation
            message.

        Raises:
            RuntimeEvaluationError: If a program could not be evaluated.
        """
        if self.native is not None:
            return None if self.native(value, self.param) else self.message

        assert self.program is not None
        if self.source is Source.STANDARD:
            bindings = {THIS: value, RULE: self.param, NOW: now}
        else:
            bindings = {THIS: value, NOW: now}
        result = self.program.evaluate(bindings)
        if result is True or result == "":
            return None
        if isinstance(result, str):
            return result
        return self.message or f"expression {self.program.source!r} evaluated to false"


@dataclass(frozen=True)
class ValueConstraintSet:
    """Rules applying to one value: a singular field, an element of a
    repeated field, a map key or a map value, or a repeated or map field as
    a whole.

    Attributes:
        kind: Kind of the value.
        standard: Standard rules, in declaration order.
        custom: Custom expression rules, in declaration order.
        ignore_empty: Skip the rules when the value is the zero value.
        nested: Message type to recurse into, if any.
        wrapper: Standard rules apply to the `value` field of a wrapper
            message rather than to the message itself.
    """

    kind: kinds.Kind
    standard: Tuple[Check, ...] = ()
    custom: Tuple[Check, ...] = ()
    ignore_empty: bool = False
    nested: Optional[Descriptor] = None
    wrapper: bool = False


@dataclass(frozen=True)
class FieldConstraintSet:
    """Resolved constraints of one field.

    For repeated and map fields, `value` holds the rules applying to the
    collection as a whole, while `items`, `keys` and `values` hold the rules
    applying to each element.
    """

    descriptor: FieldDescriptor
    kind: kinds.Kind
    value: ValueConstraintSet
    required: bool = False
    ignore_empty: bool = False
    items: Optional[ValueConstraintSet] = None
    keys: Optional[ValueConstraintSet] = None
    values: Optional[ValueConstraintSet] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def has_presence(self) -> bool:
        return not self.descriptor.is_repeated and self.descriptor.has_presence


@dataclass(frozen=True)
class OneofConstraintSet:
    name: str
    required: bool = False


@dataclass(frozen=True)
class CompiledConstraintSet:
    """All resolved constraints of one message type.

    Attributes:
        descriptor: The message type.
        disabled: Validation is disabled for the type; nothing else is set.
        fields: Field constraints, in field declaration order.
        oneofs: Constraints of the oneof groups with required members.
        message_rules: Custom rules over the message as a whole.
    """

    descriptor: Descriptor
    disabled: bool = False
    fields: Tuple[FieldConstraintSet, ...] = ()
    oneofs: Tuple[OneofConstraintSet, ...] = ()
    message_rules: Tuple[Check, ...] = ()

    @property
    def dependencies(self) -> List[Descriptor]:
        """Message types that instances of this type may recurse into."""
        nested = []
        for field in self.fields:
            for value in (field.value, field.items, field.keys, field.values):
                if value is not None and value.nested is not None:
                    nested.append(value.nested)
        return nested


_Entry: TypeAlias = Union[CompiledConstraintSet, ProtoguardError]


class ConstraintResolver:
    """Build-through cache of compiled constraint sets keyed by message
    descriptor.

    Resolving a message type also resolves every message type reachable from
    its fields, so that malformed constraints anywhere in the graph are
    reported on first use of the root type. Failures are cached: resolving
    the same type again raises the same error without redoing the work.

    Lookups do not lock. Concurrent first resolutions of the same type may
    each do the work, but the cache publishes complete entries only and
    every caller ends up with the first entry stored.
    """

    def __init__(self, programs: Optional[ProgramCache] = None):
        self.programs = programs if programs is not None else ProgramCache()
        self._entries: Dict[Descriptor, _Entry] = {}
        self._lock = threading.Lock()

    def resolve(self, descriptor: Descriptor) -> CompiledConstraintSet:
        """Returns the compiled constraints of a message type.

        Raises:
            SchemaError: If constraint metadata of the type, or of a type it
                references, is malformed.
            CompilationError: If an expression does not compile.
        """
        entry = self._entries.get(descriptor)
        if entry is None:
            entry = self._populate(descriptor)
        if isinstance(entry, ProtoguardError):
            raise entry.with_traceback(None)
        return entry

    def invalidate(self, descriptor: Optional[Descriptor] = None):
        """Drops the cached entry of one message type, or of all of them.
        Compiled expressions are kept by the program cache."""
        with self._lock:
            if descriptor is None:
                self._entries.clear()
            else:
                self._entries.pop(descriptor, None)

    def __contains__(self, descriptor: Descriptor) -> bool:
        return descriptor in self._entries

    def _populate(self, root: Descriptor) -> _Entry:
        logger.debug("resolving constraints of %s", root.full_name)
        built: Dict[Descriptor, CompiledConstraintSet] = {}
        try:
            self._build(root, built)
        except (SchemaError, CompilationError) as e:
            logger.debug("constraints of %s failed to resolve: %s", root.full_name, e)
            with self._lock:
                return self._entries.setdefault(root, e)

        with self._lock:
            for descriptor, compiled in built.items():
                self._entries.setdefault(descriptor, compiled)
            return self._entries[root]

    def _build(self, descriptor: Descriptor, built: Dict[Descriptor, CompiledConstraintSet]):
        if descriptor in built:
            return
        entry = self._entries.get(descriptor)
        if isinstance(entry, ProtoguardError):
            raise entry.with_traceback(None)
        if entry is not None:
            return
        compiled = self._compile_message(descriptor)
        built[descriptor] = compiled
        for nested in compiled.dependencies:
            self._build(nested, built)

    def _compile_message(self, descriptor: Descriptor) -> CompiledConstraintSet:
        constraints = _extension(descriptor.GetOptions(), validate_pb.message)
        if constraints is not None and constraints.disabled:
            logger.debug("validation of %s is disabled", descriptor.full_name)
            return CompiledConstraintSet(descriptor, disabled=True)

        message_rules: Tuple[Check, ...] = ()
        if constraints is not None:
            message_rules = tuple(
                self._custom(c, MESSAGE_VARIABLES) for c in constraints.cel
            )

        oneofs = []
        for oneof in descriptor.oneofs:
            if kinds.is_synthetic_oneof(oneof):
                continue
            oneof_constraints = _extension(oneof.GetOptions(), validate_pb.oneof)
            if oneof_constraints is not None and oneof_constraints.required:
                oneofs.append(OneofConstraintSet(oneof.name, required=True))

        fields = tuple(self._compile_field(field) for field in descriptor.fields)
        return CompiledConstraintSet(
            descriptor,
            fields=fields,
            oneofs=tuple(oneofs),
            message_rules=message_rules,
        )

    def _compile_field(self, field: FieldDescriptor) -> FieldConstraintSet:
        constraints = _extension(field.GetOptions(), validate_pb.field)
        if constraints is None:
            constraints = validate_pb.FieldConstraints()
        kind = kinds.kind_of(field)
        rules_kind = constraints.WhichOneof("type")
        where = field.full_name

        match kind:
            case kinds.Map(key=key, value=value):
                if rules_kind not in (None, "map"):
                    raise SchemaError(
                        f"{where}: {rules_kind} rules cannot apply to a map field, use map.keys or map.values"
                    )
                rules = constraints.map
                return FieldConstraintSet(
                    field,
                    kind,
                    value=self._collection(constraints, kind, "map", rules, where),
                    required=constraints.required,
                    ignore_empty=constraints.ignore_empty,
                    keys=self._element(_nested(rules, "keys"), key, f"{where} key"),
                    values=self._element(
                        _nested(rules, "values"), value, f"{where} value"
                    ),
                )

            case kinds.Repeated(element=element):
                if rules_kind not in (None, "repeated"):
                    raise SchemaError(
                        f"{where}: {rules_kind} rules cannot apply to a repeated field, use repeated.items"
                    )
                rules = constraints.repeated
                return FieldConstraintSet(
                    field,
                    kind,
                    value=self._collection(constraints, kind, "repeated", rules, where),
                    required=constraints.required,
                    ignore_empty=constraints.ignore_empty,
                    items=self._element(
                        _nested(rules, "items"), element, f"{where} item"
                    ),
                )

            case kinds.OneofMember(member=member):
                return FieldConstraintSet(
                    field,
                    kind,
                    value=self._value(constraints, member, where),
                    required=constraints.required,
                    ignore_empty=constraints.ignore_empty,
                )

            case kinds.Scalar() | kinds.Enum() | kinds.Message():
                return FieldConstraintSet(
                    field,
                    kind,
                    value=self._value(constraints, kind, where),
                    required=constraints.required,
                    ignore_empty=constraints.ignore_empty,
                )

        raise AssertionError(f"unhandled field kind {kind!r}")

    def _collection(self, constraints, kind, rules_kind, rules, where) -> ValueConstraintSet:
        """Rules of a repeated or map field taken as a whole."""
        standard: Tuple[Check, ...] = ()
        if constraints.WhichOneof("type") == rules_kind:
            standard = self._standard(rules_kind, rules, kind, where)
        return ValueConstraintSet(
            kind,
            standard=standard,
            custom=tuple(self._custom(c, FIELD_VARIABLES) for c in constraints.cel),
        )

    def _element(self, constraints, kind: kinds.ValueKind, where: str) -> ValueConstraintSet:
        if constraints is None:
            constraints = validate_pb.FieldConstraints()
        if constraints.required:
            raise SchemaError(f"{where}: required does not apply to collection elements")
        return self._value(constraints, kind, where)

    def _value(self, constraints, kind: kinds.ValueKind, where: str) -> ValueConstraintSet:
        rules_kind = constraints.WhichOneof("type")
        standard: Tuple[Check, ...] = ()
        wrapper = False
        if rules_kind is not None:
            wrapper = _check_applies(rules_kind, kind, where)
            standard = self._standard(
                rules_kind, getattr(constraints, rules_kind), kind, where
            )

        nested = None
        if (
            isinstance(kind, kinds.Message)
            and kind.descriptor.full_name not in _OPAQUE
            and not constraints.skipped
        ):
            nested = kind.descriptor

        return ValueConstraintSet(
            kind,
            standard=standard,
            custom=tuple(self._custom(c, FIELD_VARIABLES) for c in constraints.cel),
            ignore_empty=constraints.ignore_empty,
            nested=nested,
            wrapper=wrapper,
        )

    def _standard(self, rules_kind: str, rules: Message, kind, where: str) -> Tuple[Check, ...]:
        active: Dict[str, Tuple[StandardRule, Any]] = {}
        # ListFields order depends on the protobuf backend.
        for field, value in sorted(rules.ListFields(), key=lambda fv: fv[0].number):
            rule = STANDARD_RULES.get((rules_kind, field.name))
            if rule is None:
                continue  # nested constraints, like repeated.items
            param = _param(field, value)
            if rule.flag and not param:
                continue
            active[field.name] = (rule, param)
        _check_bounds(rules_kind, {name: param for name, (_, param) in active.items()}, where)

        lower = upper = None
        if rules_kind in RANGE_KINDS:
            lower = next((name for name in ("gt", "gte") if name in active), None)
            upper = next((name for name in ("lt", "lte") if name in active), None)
        if lower is None or upper is None:
            return tuple(
                self._standard_check(rules_kind, name, rule, param, kind, where)
                for name, (rule, param) in active.items()
            )

        # The range rule takes the place of its lower bound, the upper bound
        # does not run on its own.
        checks = []
        for name, (rule, param) in active.items():
            if name == lower:
                checks.append(_range_check(rules_kind, lower, upper, param, active[upper][1]))
            elif name != upper:
                checks.append(self._standard_check(rules_kind, name, rule, param, kind, where))
        return tuple(checks)

    def _standard_check(
        self,
        rules_kind: str,
        name: str,
        rule: StandardRule,
        param: Any,
        kind,
        where: str,
    ) -> Check:
        rule_id = f"{rules_kind}.{name}"
        message = rule.message.format(rule=render(param))
        match rule:
            case NativeRule(check=check, prepare=prepare):
                if prepare is not None:
                    try:
                        param = prepare(param, _unwrap(kind))
                    except ValueError as e:
                        raise SchemaError(f"{where}: {rule_id}: {e}") from None
                return Check(rule_id, message, Source.STANDARD, native=check, param=param)
            case ExpressionRule(source=source):
                program = self.programs.compile(source, STANDARD_VARIABLES)
                return Check(rule_id, message, Source.STANDARD, program=program, param=param)
        raise AssertionError(f"unhandled rule {rule!r}")

    def _custom(self, constraint, variables) -> Check:
        program = self.programs.compile(constraint.expression, variables)
        return Check(
            rule_id=constraint.id,
            message=constraint.message,
            source=Source.CUSTOM,
            program=program,
        )


def _range_check(rules_kind: str, lower: str, upper: str, low: Any, high: Any) -> Check:
    exclusive = high < low
    rule = RANGE_RULES[(lower, upper, exclusive)]
    name = f"{lower}_{upper}_exclusive" if exclusive else f"{lower}_{upper}"
    return Check(
        f"{rules_kind}.{name}",
        rule.message.format(low=render(low), high=render(high)),
        Source.STANDARD,
        native=rule.check,
        param=(low, high),
    )


def _extension(options, extension):
    """Returns the extension set on descriptor options, or None."""
    if options.HasExtension(extension):
        return options.Extensions[extension]
    # Options parsed before the extension was loaded hold it as an unknown
    # field; parsing them again resolves it.
    reparsed = type(options).FromString(options.SerializeToString())
    if reparsed.HasExtension(extension):
        return reparsed.Extensions[extension]
    return None


def _nested(rules: Message, name: str):
    return getattr(rules, name) if rules.HasField(name) else None


def _param(field: FieldDescriptor, value: Any) -> Any:
    if field.is_repeated:
        return tuple(_literal(v) for v in value)
    return _literal(value)


def _literal(value: Any) -> Any:
    if isinstance(value, duration_pb2.Duration):
        return value.ToTimedelta()
    if isinstance(value, timestamp_pb2.Timestamp):
        return value.ToDatetime(tzinfo=timezone.utc)
    return value


def _unwrap(kind):
    """Kind of the value the standard rules of a value of this kind see."""
    if isinstance(kind, kinds.Message) and kind.descriptor.full_name in kinds.WRAPPERS:
        return kinds.value_kind(kind.descriptor.fields_by_name["value"])
    return kind


def _check_applies(rules_kind: str, kind, where: str) -> bool:
    """Checks that typed rules apply to a value kind. Returns whether the
    value is a wrapper message whose wrapped value the rules apply to.

    Raises:
        SchemaError: If the rules do not apply.
    """
    match kind:
        case kinds.Scalar() if kind.name == rules_kind:
            return False
        case kinds.Enum() if rules_kind == "enum":
            return False
        case kinds.Message(descriptor=descriptor):
            full_name = descriptor.full_name
            if kinds.WRAPPERS.get(full_name) == rules_kind:
                return True
            if (full_name, rules_kind) in (
                (kinds.ANY, "any"),
                (kinds.DURATION, "duration"),
                (kinds.TIMESTAMP, "timestamp"),
            ):
                return False
    raise SchemaError(f"{where}: {rules_kind} rules cannot apply to a {kind.name} value")


def _check_bounds(rules_kind: str, params: Dict[str, Any], where: str):
    for lower, upper in BOUNDS.get(rules_kind, ()):
        if lower not in params or upper not in params:
            continue
        low, high = params[lower], params[upper]
        if low > high or (low == high and (lower == "gt" or upper == "lt")):
            raise SchemaError(
                f"{where}: {rules_kind}.{lower} ({render(low)}) and "
                f"{rules_kind}.{upper} ({render(high)}) admit no value"
            )
