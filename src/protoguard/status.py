import enum
from typing import Callable, Dict, Type, Union

from protoguard.v1 import validate_pb2 as validate_pb


@enum.unique
class Status(int, enum.Enum):
    """Enumeration of the possible outcomes of validating a message."""

    UNSPECIFIED = validate_pb.STATUS_UNSPECIFIED
    VALID = validate_pb.STATUS_VALID
    INVALID = validate_pb.STATUS_INVALID
    SCHEMA_ERROR = validate_pb.STATUS_SCHEMA_ERROR
    COMPILATION_ERROR = validate_pb.STATUS_COMPILATION_ERROR
    RECURSION_ERROR = validate_pb.STATUS_RECURSION_ERROR
    RUNTIME_ERROR = validate_pb.STATUS_RUNTIME_ERROR

    _proto: int

    def __repr__(self):
        return self.name

    def __str__(self):
        return self.name

    @property
    def evaluated(self) -> bool:
        """True if the constraints could be evaluated against the message,
        whether or not they were satisfied."""
        return self in {Status.VALID, Status.INVALID}


# Documentation and wire values are attached after the class definition so
# that Mypy does not mistake them for enum members.

Status.UNSPECIFIED.__doc__ = "Status not specified (default)"
Status.UNSPECIFIED._proto = validate_pb.STATUS_UNSPECIFIED
Status.VALID.__doc__ = "Message satisfied all of its constraints"
Status.VALID._proto = validate_pb.STATUS_VALID
Status.INVALID.__doc__ = "Message violated one or more constraints"
Status.INVALID._proto = validate_pb.STATUS_INVALID
Status.SCHEMA_ERROR.__doc__ = "Constraint metadata of the schema is malformed"
Status.SCHEMA_ERROR._proto = validate_pb.STATUS_SCHEMA_ERROR
Status.COMPILATION_ERROR.__doc__ = "A constraint expression failed to compile"
Status.COMPILATION_ERROR._proto = validate_pb.STATUS_COMPILATION_ERROR
Status.RECURSION_ERROR.__doc__ = "Message nesting exceeded the maximum depth"
Status.RECURSION_ERROR._proto = validate_pb.STATUS_RECURSION_ERROR
Status.RUNTIME_ERROR.__doc__ = (
    "A constraint expression could not be evaluated against the message"
)
Status.RUNTIME_ERROR._proto = validate_pb.STATUS_RUNTIME_ERROR

_ERROR_TYPES: Dict[Type[Exception], Union[Status, Callable[[Exception], Status]]] = {}


def status_for_error(error: BaseException) -> Status:
    """Returns a Status that corresponds to the specified error."""
    status_or_handler = _find_status_or_handler(error, _ERROR_TYPES)
    if status_or_handler is not None:
        if isinstance(status_or_handler, Status):
            return status_or_handler
        return status_or_handler(error)
    return Status.UNSPECIFIED


def register_error_type(
    error_type: Type[Exception],
    status_or_handler: Union[Status, Callable[[Exception], Status]],
):
    """Register an error type to Status mapping.

    The caller can either register a base exception and a handler, which
    derives a Status from errors of this type. Or, if there's only one
    exception to Status mapping to register, the caller can simply pass
    the exception class and the associated Status.
    """
    _ERROR_TYPES[error_type] = status_or_handler


def _find_status_or_handler(obj, types):
    for cls in type(obj).__mro__:
        try:
            return types[cls]
        except KeyError:
            pass

    return None  # not found
