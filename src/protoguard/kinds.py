"""Closed set of field kinds the resolver and evaluator dispatch on."""

from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, Optional, Union

from google.protobuf import descriptor_pb2
from google.protobuf.descriptor import (
    Descriptor,
    EnumDescriptor,
    FieldDescriptor,
    FileDescriptor,
    OneofDescriptor,
)
from typing_extensions import TypeAlias

_SCALAR_NAMES = {
    FieldDescriptor.TYPE_DOUBLE: "double",
    FieldDescriptor.TYPE_FLOAT: "float",
    FieldDescriptor.TYPE_INT64: "int64",
    FieldDescriptor.TYPE_UINT64: "uint64",
    FieldDescriptor.TYPE_INT32: "int32",
    FieldDescriptor.TYPE_FIXED64: "fixed64",
    FieldDescriptor.TYPE_FIXED32: "fixed32",
    FieldDescriptor.TYPE_BOOL: "bool",
    FieldDescriptor.TYPE_STRING: "string",
    FieldDescriptor.TYPE_BYTES: "bytes",
    FieldDescriptor.TYPE_UINT32: "uint32",
    FieldDescriptor.TYPE_SFIXED32: "sfixed32",
    FieldDescriptor.TYPE_SFIXED64: "sfixed64",
    FieldDescriptor.TYPE_SINT32: "sint32",
    FieldDescriptor.TYPE_SINT64: "sint64",
}

# Scalar kinds sharing the numeric rule set.
NUMERIC = (
    "float",
    "double",
    "int32",
    "int64",
    "uint32",
    "uint64",
    "sint32",
    "sint64",
    "fixed32",
    "fixed64",
    "sfixed32",
    "sfixed64",
)

# Wrapper messages of google/protobuf/wrappers.proto, mapped to the scalar
# kind of their single value field.
WRAPPERS = {
    "google.protobuf.DoubleValue": "double",
    "google.protobuf.FloatValue": "float",
    "google.protobuf.Int64Value": "int64",
    "google.protobuf.UInt64Value": "uint64",
    "google.protobuf.Int32Value": "int32",
    "google.protobuf.UInt32Value": "uint32",
    "google.protobuf.BoolValue": "bool",
    "google.protobuf.StringValue": "string",
    "google.protobuf.BytesValue": "bytes",
}

ANY = "google.protobuf.Any"
DURATION = "google.protobuf.Duration"
TIMESTAMP = "google.protobuf.Timestamp"


@dataclass(frozen=True)
class Scalar:
    type: int

    @property
    def name(self) -> str:
        return _SCALAR_NAMES[self.type]


@dataclass(frozen=True)
class Enum:
    descriptor: EnumDescriptor

    @property
    def name(self) -> str:
        return "enum"


@dataclass(frozen=True)
class Message:
    descriptor: Descriptor

    @property
    def name(self) -> str:
        return self.descriptor.full_name


@dataclass(frozen=True)
class Repeated:
    element: "ValueKind"

    @property
    def name(self) -> str:
        return f"repeated {self.element.name}"


@dataclass(frozen=True)
class Map:
    key: "ValueKind"
    value: "ValueKind"

    @property
    def name(self) -> str:
        return f"map<{self.key.name}, {self.value.name}>"


@dataclass(frozen=True)
class OneofMember:
    group: str
    member: "ValueKind"

    @property
    def name(self) -> str:
        return self.member.name


ValueKind: TypeAlias = Union[Scalar, Enum, Message]
Kind: TypeAlias = Union[Scalar, Enum, Message, Repeated, Map, OneofMember]


def value_kind(field: FieldDescriptor) -> ValueKind:
    """Returns the kind of a single value of the field, ignoring whether the
    field is repeated."""
    if field.type in (FieldDescriptor.TYPE_MESSAGE, FieldDescriptor.TYPE_GROUP):
        return Message(field.message_type)
    if field.type == FieldDescriptor.TYPE_ENUM:
        return Enum(field.enum_type)
    return Scalar(field.type)


def is_map(field: FieldDescriptor) -> bool:
    return (
        field.is_repeated
        and field.message_type is not None
        and field.message_type.GetOptions().map_entry
    )


def kind_of(field: FieldDescriptor) -> Kind:
    """Returns the kind of the field."""
    if is_map(field):
        entry = field.message_type
        return Map(
            value_kind(entry.fields_by_name["key"]),
            value_kind(entry.fields_by_name["value"]),
        )
    if field.is_repeated:
        return Repeated(value_kind(field))
    oneof = field.containing_oneof
    # Synthetic oneofs of proto3 optional fields are not groups.
    if oneof is not None and not is_synthetic_oneof(oneof):
        return OneofMember(oneof.name, value_kind(field))
    return value_kind(field)


def is_synthetic_oneof(oneof: OneofDescriptor) -> bool:
    return oneof.name in synthetic_oneofs(oneof.containing_type)


@lru_cache(maxsize=None)
def synthetic_oneofs(descriptor: Descriptor) -> FrozenSet[str]:
    """Returns the names of the oneofs that protoc synthesized for the
    proto3 optional fields of a message type.

    Descriptors do not expose the proto3_optional flag, it is read from the
    serialized form of the file declaring the type.
    """
    proto = _message_proto(descriptor)
    return frozenset(
        proto.oneof_decl[field.oneof_index].name
        for field in proto.field
        if field.proto3_optional
    )


def _message_proto(descriptor: Descriptor) -> descriptor_pb2.DescriptorProto:
    names = []
    parent: Optional[Descriptor] = descriptor
    while parent is not None:
        names.append(parent.name)
        parent = parent.containing_type

    messages = _file_proto(descriptor.file).message_type
    for name in reversed(names):
        proto = next(m for m in messages if m.name == name)
        messages = proto.nested_type
    return proto


@lru_cache(maxsize=None)
def _file_proto(file: FileDescriptor) -> descriptor_pb2.FileDescriptorProto:
    return descriptor_pb2.FileDescriptorProto.FromString(file.serialized_pb)
