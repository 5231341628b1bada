"""Message types with constraints, shared by the test modules.

The types are declared in a file descriptor built here and added to the
default descriptor pool, with constraints attached as options the same way
protoc would encode them.
"""

from google.protobuf import (
    any_pb2,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    message_factory,
    timestamp_pb2,
    wrappers_pb2,
)

from protoguard.v1 import validate_pb2 as validate_pb

F = descriptor_pb2.FieldDescriptorProto

PACKAGE = "protoguard.tests"

RED = 1
GREEN = 2


def _field(
    message,
    name,
    number,
    type,
    label=F.LABEL_OPTIONAL,
    type_name=None,
    oneof_index=None,
    proto3_optional=False,
):
    field = message.field.add(name=name, number=number, type=type, label=label)
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    if proto3_optional:
        field.proto3_optional = True
    return field


def _constraints(field) -> validate_pb.FieldConstraints:
    return field.options.Extensions[validate_pb.field]


def _message_constraints(message) -> validate_pb.MessageConstraints:
    return message.options.Extensions[validate_pb.message]


def _ref(name):
    return f".{PACKAGE}.{name}"


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file = descriptor_pb2.FileDescriptorProto(
        name="protoguard/tests/cases.proto",
        package=PACKAGE,
        syntax="proto3",
        dependency=[
            "google/protobuf/any.proto",
            "google/protobuf/duration.proto",
            "google/protobuf/timestamp.proto",
            "google/protobuf/wrappers.proto",
            "protoguard/v1/validate.proto",
        ],
    )

    color = file.enum_type.add(name="Color")
    color.value.add(name="COLOR_UNSPECIFIED", number=0)
    color.value.add(name="RED", number=RED)
    color.value.add(name="GREEN", number=GREEN)

    # No constraints at all.
    plain = file.message_type.add(name="Plain")
    _field(plain, "name", 1, F.TYPE_STRING)
    _field(plain, "count", 2, F.TYPE_INT32)
    _field(plain, "child", 3, F.TYPE_MESSAGE, type_name=_ref("Plain"))
    _field(plain, "tags", 4, F.TYPE_STRING, F.LABEL_REPEATED)

    person = file.message_type.add(name="Person")
    c = _constraints(_field(person, "age", 1, F.TYPE_INT32))
    c.int32.gte = 0
    c.int32.lte = 150
    c = _constraints(_field(person, "name", 2, F.TYPE_STRING))
    c.string.min_len = 1
    c.string.max_len = 20
    c = _constraints(_field(person, "email", 3, F.TYPE_STRING))
    c.string.email = True
    c.ignore_empty = True
    c = _constraints(_field(person, "score", 4, F.TYPE_DOUBLE))
    c.double.finite = True
    c = _constraints(_field(person, "color", 5, F.TYPE_ENUM, type_name=_ref("Color")))
    c.enum.defined_only = True
    c = _constraints(_field(person, "code", 6, F.TYPE_STRING))
    c.string.pattern = "^[A-Z]{3}$"
    c.ignore_empty = True

    team = file.message_type.add(name="Team")
    _field(team, "members", 1, F.TYPE_MESSAGE, F.LABEL_REPEATED, _ref("Person"))
    _field(team, "lead", 2, F.TYPE_MESSAGE, type_name=_ref("Person"))

    account = file.message_type.add(name="Account")
    account.oneof_decl.add(name="_id")
    c = _constraints(
        _field(account, "id", 1, F.TYPE_STRING, oneof_index=0, proto3_optional=True)
    )
    c.required = True
    c = _constraints(_field(account, "nickname", 2, F.TYPE_STRING))
    c.cel.add(
        id="nickname.trimmed",
        expression="'' if this == this.strip() else 'nickname must not have surrounding spaces'",
    )
    c = _constraints(_field(account, "limit", 3, F.TYPE_INT32))
    c.cel.add(id="limit.even", message="limit must be even", expression="this % 2 == 0")
    _field(account, "min_balance", 4, F.TYPE_INT64)
    _field(account, "max_balance", 5, F.TYPE_INT64)
    _message_constraints(account).cel.add(
        id="account.balance",
        message="min_balance must not exceed max_balance",
        expression="this.min_balance <= this.max_balance",
    )

    tags = file.message_type.add(name="Tags")
    c = _constraints(_field(tags, "values", 1, F.TYPE_INT32, F.LABEL_REPEATED))
    c.repeated.items.int32.gte = 0
    c = _constraints(_field(tags, "names", 2, F.TYPE_STRING, F.LABEL_REPEATED))
    c.repeated.unique = True
    c.repeated.max_items = 2

    labels = file.message_type.add(name="Labels")
    entry = labels.nested_type.add(name="CountsEntry")
    entry.options.map_entry = True
    _field(entry, "key", 1, F.TYPE_STRING)
    _field(entry, "value", 2, F.TYPE_INT32)
    c = _constraints(
        _field(
            labels, "counts", 1, F.TYPE_MESSAGE, F.LABEL_REPEATED, _ref("Labels.CountsEntry")
        )
    )
    c.map.keys.string.min_len = 2
    c.map.values.int32.gt = 0

    choice = file.message_type.add(name="Choice")
    kind = choice.oneof_decl.add(name="kind")
    kind.options.Extensions[validate_pb.oneof].required = True
    c = _constraints(_field(choice, "email", 1, F.TYPE_STRING, oneof_index=0))
    c.string.email = True
    c = _constraints(_field(choice, "phone", 2, F.TYPE_INT64, oneof_index=0))
    c.int64.gt = 0

    node = file.message_type.add(name="Node")
    _field(node, "child", 1, F.TYPE_MESSAGE, type_name=_ref("Node"))
    c = _constraints(_field(node, "value", 2, F.TYPE_INT32))
    c.int32.gte = 0

    code = file.message_type.add(name="Code")
    c = _constraints(_field(code, "code", 1, F.TYPE_STRING))
    c.string.min_len = 5
    c.string.prefix = "x"
    c.string.contains = "z"

    disabled = file.message_type.add(name="Disabled")
    _message_constraints(disabled).disabled = True
    c = _constraints(_field(disabled, "value", 1, F.TYPE_INT32))
    c.int32.gte = 0

    skipped = file.message_type.add(name="Skipped")
    c = _constraints(_field(skipped, "node", 1, F.TYPE_MESSAGE, type_name=_ref("Node")))
    c.skipped = True

    times = file.message_type.add(name="Times")
    c = _constraints(
        _field(times, "created", 1, F.TYPE_MESSAGE, type_name=".google.protobuf.Timestamp")
    )
    c.timestamp.lt_now = True
    c = _constraints(
        _field(times, "ttl", 2, F.TYPE_MESSAGE, type_name=".google.protobuf.Duration")
    )
    c.duration.gte.seconds = 1
    c.duration.lte.seconds = 3600
    c = _constraints(
        _field(times, "limit", 3, F.TYPE_MESSAGE, type_name=".google.protobuf.Int32Value")
    )
    c.int32.gte = 1
    c = _constraints(
        _field(times, "payload", 4, F.TYPE_MESSAGE, type_name=".google.protobuf.Any")
    )
    getattr(c.any, "in").append("type.googleapis.com/google.protobuf.Int32Value")

    divider = file.message_type.add(name="Divider")
    c = _constraints(_field(divider, "divisor", 1, F.TYPE_INT32))
    c.cel.add(id="divisor.ratio", expression="10 // this > 1")

    bad_pattern = file.message_type.add(name="BadPattern")
    c = _constraints(_field(bad_pattern, "text", 1, F.TYPE_STRING))
    c.cel.add(id="text.pattern", expression="matches(this, '[')")

    ranges = file.message_type.add(name="Ranges")
    c = _constraints(_field(ranges, "inside", 1, F.TYPE_INT32))
    c.int32.gt = 0
    c.int32.lt = 10
    c = _constraints(_field(ranges, "outside", 2, F.TYPE_INT32))
    c.int32.gt = 10
    c.int32.lt = 5
    c = _constraints(_field(ranges, "around", 3, F.TYPE_DOUBLE))
    c.double.gte = 10
    c.double.lte = 5
    c = _constraints(
        _field(ranges, "window", 4, F.TYPE_MESSAGE, type_name=".google.protobuf.Duration")
    )
    c.duration.gt.seconds = 60
    c.duration.lt.seconds = 10

    # A real oneof named like a synthetic one, and a synthetic oneof named
    # the way protoc does when the usual name is taken.
    renamed = file.message_type.add(name="Renamed")
    renamed.oneof_decl.add(name="_label")
    renamed.oneof_decl.add(name="X_code")
    _field(renamed, "label", 1, F.TYPE_STRING, oneof_index=0)
    c = _constraints(
        _field(renamed, "code", 2, F.TYPE_STRING, oneof_index=1, proto3_optional=True)
    )
    c.required = True

    # Malformed constraints.

    mismatched = file.message_type.add(name="Mismatched")
    c = _constraints(_field(mismatched, "value", 1, F.TYPE_INT32))
    c.string.min_len = 1

    crossed = file.message_type.add(name="Crossed")
    c = _constraints(_field(crossed, "value", 1, F.TYPE_STRING))
    c.string.min_len = 5
    c.string.max_len = 2

    outer = file.message_type.add(name="Outer")
    _field(outer, "inner", 1, F.TYPE_MESSAGE, type_name=_ref("Mismatched"))

    for name in ("BrokenA", "BrokenB"):
        broken = file.message_type.add(name=name)
        c = _constraints(_field(broken, "value", 1, F.TYPE_INT32))
        c.cel.add(id="broken", expression="this +")

    return file


# Well-known types must be loaded in the pool before the file referencing
# them is added.
_DEPENDENCIES = (any_pb2, duration_pb2, timestamp_pb2, wrappers_pb2)

DESCRIPTOR = descriptor_pool.Default().AddSerializedFile(
    _build_file().SerializeToString()
)

_classes = message_factory.GetMessageClassesForFiles(
    [DESCRIPTOR.name], descriptor_pool.Default()
)

Plain = _classes["protoguard.tests.Plain"]
Person = _classes["protoguard.tests.Person"]
Team = _classes["protoguard.tests.Team"]
Account = _classes["protoguard.tests.Account"]
Tags = _classes["protoguard.tests.Tags"]
Labels = _classes["protoguard.tests.Labels"]
Choice = _classes["protoguard.tests.Choice"]
Node = _classes["protoguard.tests.Node"]
Code = _classes["protoguard.tests.Code"]
Disabled = _classes["protoguard.tests.Disabled"]
Skipped = _classes["protoguard.tests.Skipped"]
Times = _classes["protoguard.tests.Times"]
Divider = _classes["protoguard.tests.Divider"]
BadPattern = _classes["protoguard.tests.BadPattern"]
Ranges = _classes["protoguard.tests.Ranges"]
Renamed = _classes["protoguard.tests.Renamed"]
Mismatched = _classes["protoguard.tests.Mismatched"]
Crossed = _classes["protoguard.tests.Crossed"]
Outer = _classes["protoguard.tests.Outer"]
BrokenA = _classes["protoguard.tests.BrokenA"]
BrokenB = _classes["protoguard.tests.BrokenB"]


def valid_person(**kwargs) -> Person:
    fields = dict(age=30, name="Ada", email="ada@example.com", score=1.5, color=RED)
    fields.update(kwargs)
    return Person(**fields)


def chain(depth: int) -> Node:
    """Returns a Node with `depth` nested children."""
    root = Node(value=0)
    node = root
    for i in range(depth):
        node = node.child
        node.value = i + 1
    return root
