"""The standard rule library.

STANDARD_RULES maps a (rules kind, rule name) pair, as declared in the
typed rule messages of protoguard.v1 (for example ("string", "min_len")), to
the implementation of that rule. Rules with a closed-form definition are
native Python checks. Well-known formats and time-based rules are
expressions compiled through the same program cache as custom rules, so
both paths share one semantics.

The table is built once at import time and is read-only. RANGE_RULES holds
the rules that replace a lower and an upper bound declared together.
"""

import math
import operator
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from typing_extensions import TypeAlias

from protoguard import formats, kinds


@dataclass(frozen=True)
class NativeRule:
    """A rule checked by a Python function of the field value and the rule
    parameter, returning True when the value satisfies the rule.

    Attributes:
        check: The check function.
        message: Template of the violation message, formatted with the rule
            parameter as `rule`.
        flag: The rule is activated by a boolean parameter, and only when
            that parameter is true.
        prepare: Converts the literal parameter to the form passed to check.
            It receives the parameter and the kind of the field value, and
            raises ValueError when the parameter cannot apply.
    """

    check: Callable[[Any, Any], bool]
    message: str
    flag: bool = False
    prepare: Optional[Callable[[Any, kinds.ValueKind], Any]] = None


@dataclass(frozen=True)
class ExpressionRule:
    """A rule defined by an expression over `this` (the field value), `rule`
    (the rule parameter) and `now`."""

    source: str
    message: str
    flag: bool = False


StandardRule: TypeAlias = Union[NativeRule, ExpressionRule]


def _pattern(param: str, kind: kinds.ValueKind) -> "re.Pattern[str]":
    try:
        return re.compile(param)
    except re.error as e:
        raise ValueError(f"invalid regular expression {param!r}: {e}") from None


def _defined_values(param: bool, kind: kinds.ValueKind) -> frozenset:
    if not isinstance(kind, kinds.Enum):
        raise ValueError("defined_only applies to enum values only")
    return frozenset(value.number for value in kind.descriptor.values)


def _utf8_len(value: str) -> int:
    return len(value.encode("utf-8"))


def _search(value: Union[str, bytes], pattern: "re.Pattern[str]") -> bool:
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return False
    return pattern.search(value) is not None


def _numeric_rules(kind: str):
    rules = {
        (kind, "const"): NativeRule(lambda v, p: v == p, "value must equal {rule}"),
        (kind, "lt"): NativeRule(lambda v, p: v < p, "value must be less than {rule}"),
        (kind, "lte"): NativeRule(
            lambda v, p: v <= p, "value must be less than or equal to {rule}"
        ),
        (kind, "gt"): NativeRule(
            lambda v, p: v > p, "value must be greater than {rule}"
        ),
        (kind, "gte"): NativeRule(
            lambda v, p: v >= p, "value must be greater than or equal to {rule}"
        ),
        (kind, "in"): NativeRule(lambda v, p: v in p, "value must be in list {rule}"),
        (kind, "not_in"): NativeRule(
            lambda v, p: v not in p, "value must not be in list {rule}"
        ),
    }
    if kind in ("float", "double"):
        rules[(kind, "finite")] = NativeRule(
            lambda v, p: math.isfinite(v), "value must be finite", flag=True
        )
    return rules


def _string_rules():
    return {
        ("string", "const"): NativeRule(
            lambda v, p: v == p, "value must equal `{rule}`"
        ),
        ("string", "min_len"): NativeRule(
            lambda v, p: len(v) >= p,
            "value length must be at least {rule} characters",
        ),
        ("string", "max_len"): NativeRule(
            lambda v, p: len(v) <= p,
            "value length must be at most {rule} characters",
        ),
        ("string", "min_bytes"): NativeRule(
            lambda v, p: _utf8_len(v) >= p,
            "value length must be at least {rule} bytes",
        ),
        ("string", "max_bytes"): NativeRule(
            lambda v, p: _utf8_len(v) <= p,
            "value length must be at most {rule} bytes",
        ),
        ("string", "pattern"): NativeRule(
            _search,
            "value does not match regex pattern `{rule}`",
            prepare=_pattern,
        ),
        ("string", "prefix"): NativeRule(
            lambda v, p: v.startswith(p), "value does not have prefix `{rule}`"
        ),
        ("string", "suffix"): NativeRule(
            lambda v, p: v.endswith(p), "value does not have suffix `{rule}`"
        ),
        ("string", "contains"): NativeRule(
            lambda v, p: p in v, "value does not contain substring `{rule}`"
        ),
        ("string", "in"): NativeRule(
            lambda v, p: v in p, "value must be in list {rule}"
        ),
        ("string", "not_in"): NativeRule(
            lambda v, p: v not in p, "value must not be in list {rule}"
        ),
        ("string", "email"): ExpressionRule(
            "is_email(this)", "value must be a valid email address", flag=True
        ),
        ("string", "hostname"): ExpressionRule(
            "is_hostname(this)", "value must be a valid hostname", flag=True
        ),
        ("string", "ip"): ExpressionRule(
            "is_ip(this)", "value must be a valid IP address", flag=True
        ),
        ("string", "ipv4"): ExpressionRule(
            "is_ip(this, 4)", "value must be a valid IPv4 address", flag=True
        ),
        ("string", "ipv6"): ExpressionRule(
            "is_ip(this, 6)", "value must be a valid IPv6 address", flag=True
        ),
        ("string", "uri"): ExpressionRule(
            "is_uri(this)", "value must be a valid URI", flag=True
        ),
        ("string", "uri_ref"): ExpressionRule(
            "is_uri_ref(this)", "value must be a valid URI reference", flag=True
        ),
        ("string", "len"): NativeRule(
            lambda v, p: len(v) == p, "value length must be {rule} characters"
        ),
        ("string", "len_bytes"): NativeRule(
            lambda v, p: _utf8_len(v) == p, "value length must be {rule} bytes"
        ),
        ("string", "address"): ExpressionRule(
            "is_address(this)",
            "value must be a valid hostname or IP address",
            flag=True,
        ),
        ("string", "uuid"): ExpressionRule(
            "is_uuid(this)", "value must be a valid UUID", flag=True
        ),
        ("string", "not_contains"): NativeRule(
            lambda v, p: p not in v, "value contains substring `{rule}`"
        ),
        ("string", "ip_prefix"): ExpressionRule(
            "is_ip_prefix(this)", "value must be a valid IP prefix", flag=True
        ),
        ("string", "host_and_port"): ExpressionRule(
            "is_host_and_port(this, True)",
            "value must be a valid host (hostname or IP address) and port pair",
            flag=True,
        ),
    }


def _bytes_rules():
    return {
        ("bytes", "const"): NativeRule(lambda v, p: v == p, "value must be {rule}"),
        ("bytes", "min_len"): NativeRule(
            lambda v, p: len(v) >= p, "value length must be at least {rule} bytes"
        ),
        ("bytes", "max_len"): NativeRule(
            lambda v, p: len(v) <= p, "value length must be at most {rule} bytes"
        ),
        ("bytes", "pattern"): NativeRule(
            _search,
            "value must match regex pattern `{rule}`",
            prepare=_pattern,
        ),
        ("bytes", "prefix"): NativeRule(
            lambda v, p: v.startswith(p), "value does not have prefix {rule}"
        ),
        ("bytes", "suffix"): NativeRule(
            lambda v, p: v.endswith(p), "value does not have suffix {rule}"
        ),
        ("bytes", "contains"): NativeRule(
            lambda v, p: p in v, "value does not contain {rule}"
        ),
        ("bytes", "in"): NativeRule(
            lambda v, p: v in p, "value must be in list {rule}"
        ),
        ("bytes", "not_in"): NativeRule(
            lambda v, p: v not in p, "value must not be in list {rule}"
        ),
        ("bytes", "ip"): ExpressionRule(
            "size(this) in (4, 16)",
            "value must be a valid IP address",
            flag=True,
        ),
        ("bytes", "ipv4"): ExpressionRule(
            "size(this) == 4", "value must be a valid IPv4 address", flag=True
        ),
        ("bytes", "ipv6"): ExpressionRule(
            "size(this) == 16", "value must be a valid IPv6 address", flag=True
        ),
        ("bytes", "len"): NativeRule(
            lambda v, p: len(v) == p, "value length must be {rule} bytes"
        ),
    }


def _enum_rules():
    return {
        ("enum", "const"): NativeRule(lambda v, p: v == p, "value must equal {rule}"),
        ("enum", "defined_only"): NativeRule(
            lambda v, p: v in p,
            "value must be one of the defined enum values",
            flag=True,
            prepare=_defined_values,
        ),
        ("enum", "in"): NativeRule(lambda v, p: v in p, "value must be in list {rule}"),
        ("enum", "not_in"): NativeRule(
            lambda v, p: v not in p, "value must not be in list {rule}"
        ),
    }


def _collection_rules():
    return {
        ("bool", "const"): NativeRule(lambda v, p: v == p, "value must equal {rule}"),
        ("repeated", "min_items"): NativeRule(
            lambda v, p: len(v) >= p, "value must contain at least {rule} item(s)"
        ),
        ("repeated", "max_items"): NativeRule(
            lambda v, p: len(v) <= p, "value must contain no more than {rule} item(s)"
        ),
        ("repeated", "unique"): NativeRule(
            lambda v, p: formats.unique(v),
            "repeated value must contain unique items",
            flag=True,
        ),
        ("map", "min_pairs"): NativeRule(
            lambda v, p: len(v) >= p, "map must be at least {rule} entries"
        ),
        ("map", "max_pairs"): NativeRule(
            lambda v, p: len(v) <= p, "map must be at most {rule} entries"
        ),
        ("any", "in"): NativeRule(
            lambda v, p: v.type_url in p, "type URL must be in the allow list"
        ),
        ("any", "not_in"): NativeRule(
            lambda v, p: v.type_url not in p, "type URL must not be in the block list"
        ),
    }


def _time_rules():
    rules = {}
    for kind in ("duration", "timestamp"):
        rules.update(
            {
                (kind, "const"): ExpressionRule("this == rule", "value must equal {rule}"),
                (kind, "lt"): ExpressionRule("this < rule", "value must be less than {rule}"),
                (kind, "lte"): ExpressionRule(
                    "this <= rule", "value must be less than or equal to {rule}"
                ),
                (kind, "gt"): ExpressionRule(
                    "this > rule", "value must be greater than {rule}"
                ),
                (kind, "gte"): ExpressionRule(
                    "this >= rule", "value must be greater than or equal to {rule}"
                ),
            }
        )
    rules.update(
        {
            ("duration", "in"): ExpressionRule(
                "this in rule", "value must be in list {rule}"
            ),
            ("duration", "not_in"): ExpressionRule(
                "this not in rule", "value must not be in list {rule}"
            ),
            ("timestamp", "lt_now"): ExpressionRule(
                "this < now", "value must be less than now", flag=True
            ),
            ("timestamp", "gt_now"): ExpressionRule(
                "this > now", "value must be greater than now", flag=True
            ),
            ("timestamp", "within"): ExpressionRule(
                "abs(this - now) <= rule", "value must be within {rule} of now"
            ),
        }
    )
    return rules


def _build():
    rules = {}
    for kind in kinds.NUMERIC:
        rules.update(_numeric_rules(kind))
    rules.update(_string_rules())
    rules.update(_bytes_rules())
    rules.update(_enum_rules())
    rules.update(_collection_rules())
    rules.update(_time_rules())
    return MappingProxyType(rules)


STANDARD_RULES: Mapping[Tuple[str, str], StandardRule] = _build()

# Lower and upper bounds of lengths and counts that must not cross, per
# rules kind.
BOUNDS = {
    "string": [("min_len", "max_len"), ("min_bytes", "max_bytes")],
    "bytes": [("min_len", "max_len")],
    "repeated": [("min_items", "max_items")],
    "map": [("min_pairs", "max_pairs")],
}

# Rules kinds where a lower bound (gt, gte) and an upper bound (lt, lte)
# declared together form a single range rule.
RANGE_KINDS = frozenset([*kinds.NUMERIC, "duration", "timestamp"])

_LOWER = {
    "gt": (operator.gt, "greater than"),
    "gte": (operator.ge, "greater than or equal to"),
}
_UPPER = {
    "lt": (operator.lt, "less than"),
    "lte": (operator.le, "less than or equal to"),
}


def _range(lower: str, upper: str, exclusive: bool) -> NativeRule:
    above, above_text = _LOWER[lower]
    below, below_text = _UPPER[upper]
    if exclusive:
        return NativeRule(
            lambda v, p: above(v, p[0]) or below(v, p[1]),
            f"value must be {above_text} {{low}} or {below_text} {{high}}",
        )
    return NativeRule(
        lambda v, p: above(v, p[0]) and below(v, p[1]),
        f"value must be {above_text} {{low}} and {below_text} {{high}}",
    )


# Range rules keyed by (lower bound, upper bound, exclusive). The parameter
# of a range rule is the (lower, upper) pair. A range is exclusive when its
# upper bound is below its lower bound: values must then lie outside of it.
RANGE_RULES: Mapping[Tuple[str, str, bool], NativeRule] = MappingProxyType(
    {
        (lower, upper, exclusive): _range(lower, upper, exclusive)
        for lower in _LOWER
        for upper in _UPPER
        for exclusive in (False, True)
    }
)


def render(param: Any) -> str:
    """Formats a rule parameter for use in a violation message."""
    if isinstance(param, (tuple, list, frozenset)):
        return "[" + ", ".join(render(p) for p in param) + "]"
    if isinstance(param, bool):
        return "true" if param else "false"
    if isinstance(param, timedelta):
        return f"{param.total_seconds():g}s"
    if isinstance(param, datetime):
        return param.isoformat()
    if isinstance(param, re.Pattern):
        return param.pattern
    return str(param)
