"""Descriptors and message classes of the protoguard.v1 package.

The package declares the custom options that attach constraints to message
schemas, and the wire form of validation results. Its source is
proto/protoguard/v1/validate.proto. The file descriptor is assembled from
descriptor_pb2 objects and added to the default descriptor pool, so that
options of any other file loaded in that pool can carry the extensions
declared here. The module then exposes its symbols the same way protoc
output does.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, duration_pb2, message_factory
from google.protobuf import timestamp_pb2
from google.protobuf.internal import enum_type_wrapper

_F = descriptor_pb2.FieldDescriptorProto

_FILE_NAME = "protoguard/v1/validate.proto"
_PACKAGE = "protoguard.v1"

# Numeric rule messages share a layout, the value type is the only variation.
_NUMERIC_RULES = {
    "float": (_F.TYPE_FLOAT, "FloatRules"),
    "double": (_F.TYPE_DOUBLE, "DoubleRules"),
    "int32": (_F.TYPE_INT32, "Int32Rules"),
    "int64": (_F.TYPE_INT64, "Int64Rules"),
    "uint32": (_F.TYPE_UINT32, "UInt32Rules"),
    "uint64": (_F.TYPE_UINT64, "UInt64Rules"),
    "sint32": (_F.TYPE_SINT32, "SInt32Rules"),
    "sint64": (_F.TYPE_SINT64, "SInt64Rules"),
    "fixed32": (_F.TYPE_FIXED32, "Fixed32Rules"),
    "fixed64": (_F.TYPE_FIXED64, "Fixed64Rules"),
    "sfixed32": (_F.TYPE_SFIXED32, "SFixed32Rules"),
    "sfixed64": (_F.TYPE_SFIXED64, "SFixed64Rules"),
}

# Extension numbers in the range reserved for in-house options.
MESSAGE_FIELD_NUMBER = 51071
ONEOF_FIELD_NUMBER = 51072
FIELD_FIELD_NUMBER = 51073


def _ref(name):
    return f".{_PACKAGE}.{name}"


def _add_field(
    message,
    name,
    number,
    type,
    type_name=None,
    repeated=False,
    oneof_index=None,
):
    field = message.field.add(
        name=name,
        number=number,
        type=type,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def _numeric_rules(file, type, name):
    message = file.message_type.add(name=name)
    _add_field(message, "const", 1, type)
    _add_field(message, "lt", 2, type)
    _add_field(message, "lte", 3, type)
    _add_field(message, "gt", 4, type)
    _add_field(message, "gte", 5, type)
    _add_field(message, "in", 6, type, repeated=True)
    _add_field(message, "not_in", 7, type, repeated=True)
    if type in (_F.TYPE_FLOAT, _F.TYPE_DOUBLE):
        _add_field(message, "finite", 8, _F.TYPE_BOOL)


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file = descriptor_pb2.FileDescriptorProto(
        name=_FILE_NAME,
        package=_PACKAGE,
        syntax="proto2",
        dependency=[
            descriptor_pb2.DESCRIPTOR.name,
            duration_pb2.DESCRIPTOR.name,
            timestamp_pb2.DESCRIPTOR.name,
        ],
    )

    constraint = file.message_type.add(name="Constraint")
    _add_field(constraint, "id", 1, _F.TYPE_STRING)
    _add_field(constraint, "message", 2, _F.TYPE_STRING)
    _add_field(constraint, "expression", 3, _F.TYPE_STRING)

    message_constraints = file.message_type.add(name="MessageConstraints")
    _add_field(message_constraints, "disabled", 1, _F.TYPE_BOOL)
    _add_field(
        message_constraints,
        "cel",
        3,
        _F.TYPE_MESSAGE,
        _ref("Constraint"),
        repeated=True,
    )

    oneof_constraints = file.message_type.add(name="OneofConstraints")
    _add_field(oneof_constraints, "required", 1, _F.TYPE_BOOL)

    field_constraints = file.message_type.add(name="FieldConstraints")
    field_constraints.oneof_decl.add(name="type")
    for number, (kind, (_, rules)) in enumerate(_NUMERIC_RULES.items(), start=1):
        _add_field(
            field_constraints,
            kind,
            number,
            _F.TYPE_MESSAGE,
            _ref(rules),
            oneof_index=0,
        )
    for kind, number, rules in [
        ("bool", 13, "BoolRules"),
        ("string", 14, "StringRules"),
        ("bytes", 15, "BytesRules"),
        ("enum", 16, "EnumRules"),
        ("repeated", 18, "RepeatedRules"),
        ("map", 19, "MapRules"),
        ("any", 20, "AnyRules"),
        ("duration", 21, "DurationRules"),
        ("timestamp", 22, "TimestampRules"),
    ]:
        _add_field(
            field_constraints,
            kind,
            number,
            _F.TYPE_MESSAGE,
            _ref(rules),
            oneof_index=0,
        )
    _add_field(
        field_constraints,
        "cel",
        23,
        _F.TYPE_MESSAGE,
        _ref("Constraint"),
        repeated=True,
    )
    _add_field(field_constraints, "skipped", 24, _F.TYPE_BOOL)
    _add_field(field_constraints, "required", 25, _F.TYPE_BOOL)
    _add_field(field_constraints, "ignore_empty", 26, _F.TYPE_BOOL)

    for kind, (type, name) in _NUMERIC_RULES.items():
        _numeric_rules(file, type, name)

    bool_rules = file.message_type.add(name="BoolRules")
    _add_field(bool_rules, "const", 1, _F.TYPE_BOOL)

    string_rules = file.message_type.add(name="StringRules")
    _add_field(string_rules, "const", 1, _F.TYPE_STRING)
    _add_field(string_rules, "min_len", 2, _F.TYPE_UINT64)
    _add_field(string_rules, "max_len", 3, _F.TYPE_UINT64)
    _add_field(string_rules, "min_bytes", 4, _F.TYPE_UINT64)
    _add_field(string_rules, "max_bytes", 5, _F.TYPE_UINT64)
    _add_field(string_rules, "pattern", 6, _F.TYPE_STRING)
    _add_field(string_rules, "prefix", 7, _F.TYPE_STRING)
    _add_field(string_rules, "suffix", 8, _F.TYPE_STRING)
    _add_field(string_rules, "contains", 9, _F.TYPE_STRING)
    _add_field(string_rules, "in", 10, _F.TYPE_STRING, repeated=True)
    _add_field(string_rules, "not_in", 11, _F.TYPE_STRING, repeated=True)
    _add_field(string_rules, "email", 12, _F.TYPE_BOOL)
    _add_field(string_rules, "hostname", 13, _F.TYPE_BOOL)
    _add_field(string_rules, "ip", 14, _F.TYPE_BOOL)
    _add_field(string_rules, "ipv4", 15, _F.TYPE_BOOL)
    _add_field(string_rules, "ipv6", 16, _F.TYPE_BOOL)
    _add_field(string_rules, "uri", 17, _F.TYPE_BOOL)
    _add_field(string_rules, "uri_ref", 18, _F.TYPE_BOOL)
    _add_field(string_rules, "len", 19, _F.TYPE_UINT64)
    _add_field(string_rules, "len_bytes", 20, _F.TYPE_UINT64)
    _add_field(string_rules, "address", 21, _F.TYPE_BOOL)
    _add_field(string_rules, "uuid", 22, _F.TYPE_BOOL)
    _add_field(string_rules, "not_contains", 23, _F.TYPE_STRING)
    _add_field(string_rules, "ip_prefix", 26, _F.TYPE_BOOL)
    _add_field(string_rules, "host_and_port", 32, _F.TYPE_BOOL)

    bytes_rules = file.message_type.add(name="BytesRules")
    _add_field(bytes_rules, "const", 1, _F.TYPE_BYTES)
    _add_field(bytes_rules, "min_len", 2, _F.TYPE_UINT64)
    _add_field(bytes_rules, "max_len", 3, _F.TYPE_UINT64)
    _add_field(bytes_rules, "pattern", 4, _F.TYPE_STRING)
    _add_field(bytes_rules, "prefix", 5, _F.TYPE_BYTES)
    _add_field(bytes_rules, "suffix", 6, _F.TYPE_BYTES)
    _add_field(bytes_rules, "contains", 7, _F.TYPE_BYTES)
    _add_field(bytes_rules, "in", 8, _F.TYPE_BYTES, repeated=True)
    _add_field(bytes_rules, "not_in", 9, _F.TYPE_BYTES, repeated=True)
    _add_field(bytes_rules, "ip", 10, _F.TYPE_BOOL)
    _add_field(bytes_rules, "ipv4", 11, _F.TYPE_BOOL)
    _add_field(bytes_rules, "ipv6", 12, _F.TYPE_BOOL)
    _add_field(bytes_rules, "len", 13, _F.TYPE_UINT64)

    enum_rules = file.message_type.add(name="EnumRules")
    _add_field(enum_rules, "const", 1, _F.TYPE_INT32)
    _add_field(enum_rules, "defined_only", 2, _F.TYPE_BOOL)
    _add_field(enum_rules, "in", 3, _F.TYPE_INT32, repeated=True)
    _add_field(enum_rules, "not_in", 4, _F.TYPE_INT32, repeated=True)

    repeated_rules = file.message_type.add(name="RepeatedRules")
    _add_field(repeated_rules, "min_items", 1, _F.TYPE_UINT64)
    _add_field(repeated_rules, "max_items", 2, _F.TYPE_UINT64)
    _add_field(repeated_rules, "unique", 3, _F.TYPE_BOOL)
    _add_field(
        repeated_rules, "items", 4, _F.TYPE_MESSAGE, _ref("FieldConstraints")
    )

    map_rules = file.message_type.add(name="MapRules")
    _add_field(map_rules, "min_pairs", 1, _F.TYPE_UINT64)
    _add_field(map_rules, "max_pairs", 2, _F.TYPE_UINT64)
    _add_field(map_rules, "keys", 4, _F.TYPE_MESSAGE, _ref("FieldConstraints"))
    _add_field(map_rules, "values", 5, _F.TYPE_MESSAGE, _ref("FieldConstraints"))

    any_rules = file.message_type.add(name="AnyRules")
    _add_field(any_rules, "in", 2, _F.TYPE_STRING, repeated=True)
    _add_field(any_rules, "not_in", 3, _F.TYPE_STRING, repeated=True)

    duration = ".google.protobuf.Duration"
    duration_rules = file.message_type.add(name="DurationRules")
    _add_field(duration_rules, "const", 2, _F.TYPE_MESSAGE, duration)
    _add_field(duration_rules, "lt", 3, _F.TYPE_MESSAGE, duration)
    _add_field(duration_rules, "lte", 4, _F.TYPE_MESSAGE, duration)
    _add_field(duration_rules, "gt", 5, _F.TYPE_MESSAGE, duration)
    _add_field(duration_rules, "gte", 6, _F.TYPE_MESSAGE, duration)
    _add_field(duration_rules, "in", 7, _F.TYPE_MESSAGE, duration, repeated=True)
    _add_field(
        duration_rules, "not_in", 8, _F.TYPE_MESSAGE, duration, repeated=True
    )

    timestamp = ".google.protobuf.Timestamp"
    timestamp_rules = file.message_type.add(name="TimestampRules")
    _add_field(timestamp_rules, "const", 2, _F.TYPE_MESSAGE, timestamp)
    _add_field(timestamp_rules, "lt", 3, _F.TYPE_MESSAGE, timestamp)
    _add_field(timestamp_rules, "lte", 4, _F.TYPE_MESSAGE, timestamp)
    _add_field(timestamp_rules, "gt", 5, _F.TYPE_MESSAGE, timestamp)
    _add_field(timestamp_rules, "gte", 6, _F.TYPE_MESSAGE, timestamp)
    _add_field(timestamp_rules, "lt_now", 7, _F.TYPE_BOOL)
    _add_field(timestamp_rules, "gt_now", 8, _F.TYPE_BOOL)
    _add_field(timestamp_rules, "within", 9, _F.TYPE_MESSAGE, duration)

    violation = file.message_type.add(name="Violation")
    _add_field(violation, "field_path", 1, _F.TYPE_STRING)
    _add_field(violation, "constraint_id", 2, _F.TYPE_STRING)
    _add_field(violation, "message", 3, _F.TYPE_STRING)
    _add_field(violation, "for_key", 4, _F.TYPE_BOOL)

    violations = file.message_type.add(name="Violations")
    _add_field(
        violations, "violations", 1, _F.TYPE_MESSAGE, _ref("Violation"), repeated=True
    )

    status = file.enum_type.add(name="Status")
    for number, name in enumerate(
        [
            "STATUS_UNSPECIFIED",
            "STATUS_VALID",
            "STATUS_INVALID",
            "STATUS_SCHEMA_ERROR",
            "STATUS_COMPILATION_ERROR",
            "STATUS_RECURSION_ERROR",
            "STATUS_RUNTIME_ERROR",
        ]
    ):
        status.value.add(name=name, number=number)

    result = file.message_type.add(name="Result")
    _add_field(result, "status", 1, _F.TYPE_ENUM, _ref("Status"))
    _add_field(
        result, "violations", 2, _F.TYPE_MESSAGE, _ref("Violation"), repeated=True
    )
    _add_field(result, "error", 3, _F.TYPE_STRING)

    for name, number, extendee, type_name in [
        (
            "message",
            MESSAGE_FIELD_NUMBER,
            ".google.protobuf.MessageOptions",
            "MessageConstraints",
        ),
        (
            "oneof",
            ONEOF_FIELD_NUMBER,
            ".google.protobuf.OneofOptions",
            "OneofConstraints",
        ),
        (
            "field",
            FIELD_FIELD_NUMBER,
            ".google.protobuf.FieldOptions",
            "FieldConstraints",
        ),
    ]:
        file.extension.add(
            name=name,
            number=number,
            label=_F.LABEL_OPTIONAL,
            type=_F.TYPE_MESSAGE,
            type_name=_ref(type_name),
            extendee=extendee,
        )

    return file


DESCRIPTOR = descriptor_pool.Default().AddSerializedFile(
    _build_file().SerializeToString()
)

_classes = message_factory.GetMessageClassesForFiles(
    [_FILE_NAME], descriptor_pool.Default()
)

Constraint = _classes["protoguard.v1.Constraint"]
MessageConstraints = _classes["protoguard.v1.MessageConstraints"]
OneofConstraints = _classes["protoguard.v1.OneofConstraints"]
FieldConstraints = _classes["protoguard.v1.FieldConstraints"]
FloatRules = _classes["protoguard.v1.FloatRules"]
DoubleRules = _classes["protoguard.v1.DoubleRules"]
Int32Rules = _classes["protoguard.v1.Int32Rules"]
Int64Rules = _classes["protoguard.v1.Int64Rules"]
UInt32Rules = _classes["protoguard.v1.UInt32Rules"]
UInt64Rules = _classes["protoguard.v1.UInt64Rules"]
SInt32Rules = _classes["protoguard.v1.SInt32Rules"]
SInt64Rules = _classes["protoguard.v1.SInt64Rules"]
Fixed32Rules = _classes["protoguard.v1.Fixed32Rules"]
Fixed64Rules = _classes["protoguard.v1.Fixed64Rules"]
SFixed32Rules = _classes["protoguard.v1.SFixed32Rules"]
SFixed64Rules = _classes["protoguard.v1.SFixed64Rules"]
BoolRules = _classes["protoguard.v1.BoolRules"]
StringRules = _classes["protoguard.v1.StringRules"]
BytesRules = _classes["protoguard.v1.BytesRules"]
EnumRules = _classes["protoguard.v1.EnumRules"]
RepeatedRules = _classes["protoguard.v1.RepeatedRules"]
MapRules = _classes["protoguard.v1.MapRules"]
AnyRules = _classes["protoguard.v1.AnyRules"]
DurationRules = _classes["protoguard.v1.DurationRules"]
TimestampRules = _classes["protoguard.v1.TimestampRules"]
Violation = _classes["protoguard.v1.Violation"]
Violations = _classes["protoguard.v1.Violations"]
Result = _classes["protoguard.v1.Result"]

Status = enum_type_wrapper.EnumTypeWrapper(DESCRIPTOR.enum_types_by_name["Status"])
STATUS_UNSPECIFIED = 0
STATUS_VALID = 1
STATUS_INVALID = 2
STATUS_SCHEMA_ERROR = 3
STATUS_COMPILATION_ERROR = 4
STATUS_RECURSION_ERROR = 5
STATUS_RUNTIME_ERROR = 6

message = DESCRIPTOR.extensions_by_name["message"]
oneof = DESCRIPTOR.extensions_by_name["oneof"]
field = DESCRIPTOR.extensions_by_name["field"]
