"""Functions available to constraint expressions.

Besides a handful of pure builtins, expressions can call format checks for
well-known string formats (email addresses, hostnames, IP addresses, URIs,
UUIDs) and a few helpers to inspect messages and collections.
"""

import ipaddress
import math
import re
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Mapping

import google.protobuf.message

_EMAIL = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_HOSTNAME_LABEL = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*$")
# RFC 3986 unreserved, sub-delims, gen-delims and the percent sign.
_URI_CHARS = re.compile(r"^[a-zA-Z0-9\-._~!$&'()*+,;=:@/?#\[\]%]*$")
_PERCENT = re.compile(r"%(?![0-9a-fA-F]{2})")
_PORT = re.compile(r"^(?:0|[1-9][0-9]{0,4})$")


def is_email(value: str) -> bool:
    """Reports whether value is an email address as described by the HTML
    specification, without a display name or angle brackets."""
    if len(value) > 254 or not _EMAIL.match(value):
        return False
    local, _, _ = value.partition("@")
    return len(local) <= 64


def is_hostname(value: str) -> bool:
    """Reports whether value is a valid hostname (RFC 1034), optionally
    fully qualified with a trailing dot."""
    if not value or len(value) > 253:
        return False
    if value.endswith("."):
        value = value[:-1]
    labels = value.split(".")
    for label in labels:
        if not _HOSTNAME_LABEL.match(label):
            return False
    # The top-level label must not be entirely numeric.
    return not labels[-1].isdigit()


def is_ip(value: str, version: int = 0) -> bool:
    """Reports whether value is an IP address. A version of 4 or 6 restricts
    the check to that address family."""
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return version == 0 or address.version == version


def is_ip_prefix(value: str, version: int = 0, strict: bool = False) -> bool:
    """Reports whether value is an IP address with a prefix length, such as
    192.168.0.0/16. When strict is set, host bits must be zero."""
    if "/" not in value:
        return False
    try:
        network = ipaddress.ip_network(value, strict=strict)
    except ValueError:
        return False
    return version == 0 or network.version == version


def is_uri(value: str) -> bool:
    """Reports whether value is an absolute URI (RFC 3986)."""
    scheme, sep, rest = value.partition(":")
    if not sep or not _SCHEME.match(scheme):
        return False
    return _valid_uri_chars(rest) and _valid_authority(rest)


def is_uri_ref(value: str) -> bool:
    """Reports whether value is a URI or a relative reference (RFC 3986)."""
    if is_uri(value):
        return True
    # A relative reference must not look like it starts with a scheme.
    first_segment = re.split(r"[/?#]", value, maxsplit=1)[0]
    if ":" in first_segment:
        return False
    return _valid_uri_chars(value) and _valid_authority(value)


def is_uuid(value: str) -> bool:
    """Reports whether value is a UUID in its canonical textual form."""
    return bool(_UUID.match(value))


def is_address(value: str) -> bool:
    """Reports whether value is either a hostname or an IP address."""
    return is_hostname(value) or is_ip(value)


def is_host_and_port(value: str, port_required: bool = False) -> bool:
    """Reports whether value is a host optionally followed by a port, like
    example.com:8080 or [::1]:443."""
    if value.startswith("["):
        end = value.find("]")
        if end < 0:
            return False
        host, rest = value[1:end], value[end + 1 :]
        if not is_ip(host, 6):
            return False
        if not rest:
            return not port_required
        return rest.startswith(":") and _valid_port(rest[1:])

    host, sep, port = value.rpartition(":")
    if not sep:
        return not port_required and (is_hostname(value) or is_ip(value, 4))
    return (is_hostname(host) or is_ip(host, 4)) and _valid_port(port)


def is_nan(value: float) -> bool:
    return math.isnan(value)


def is_inf(value: float, sign: int = 0) -> bool:
    if not math.isinf(value):
        return False
    return sign == 0 or (sign > 0) == (value > 0)


def matches(value: Any, pattern: str) -> bool:
    """Reports whether the pattern matches anywhere in value. Bytes values
    are matched against their UTF-8 decoding."""
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return False
    return _compile_pattern(pattern).search(value) is not None


def unique(values) -> bool:
    """Reports whether all elements of values are distinct."""
    seen = []
    for value in values:
        if value in seen:
            return False
        seen.append(value)
    return True


def size(value) -> int:
    return len(value)


def has(message: google.protobuf.message.Message, name: str) -> bool:
    """Reports whether the named field is set on the message. Repeated and
    map fields are set when they are not empty; fields without presence are
    set when they hold a non-default value."""
    field = message.DESCRIPTOR.fields_by_name.get(name)
    if field is None:
        raise ValueError(f"no field named {name!r} in {message.DESCRIPTOR.full_name}")
    if field.is_repeated:
        return len(getattr(message, name)) > 0
    if field.has_presence:
        return message.HasField(name)
    return getattr(message, name) != field.default_value


@lru_cache(maxsize=1024)
def _compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _valid_uri_chars(value: str) -> bool:
    return bool(_URI_CHARS.match(value)) and not _PERCENT.search(value)


def _valid_authority(value: str) -> bool:
    if not value.startswith("//"):
        return True
    authority = re.split(r"[/?#]", value[2:], maxsplit=1)[0]
    _, _, hostport = authority.rpartition("@")
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            return False
        if not is_ip(hostport[1:end], 6):
            return False
        port = hostport[end + 1 :]
        return not port or (port.startswith(":") and port[1:].isdigit())
    host, _, port = hostport.partition(":")
    return "[" not in host and "]" not in host and (not port or port.isdigit())


def _valid_port(port: str) -> bool:
    return bool(_PORT.match(port)) and int(port) <= 65535


FUNCTIONS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "abs": abs,
        "all": all,
        "any": any,
        "bool": bool,
        "float": float,
        "int": int,
        "len": len,
        "max": max,
        "min": min,
        "sorted": sorted,
        "str": str,
        "has": has,
        "is_address": is_address,
        "is_email": is_email,
        "is_host_and_port": is_host_and_port,
        "is_hostname": is_hostname,
        "is_inf": is_inf,
        "is_ip": is_ip,
        "is_ip_prefix": is_ip_prefix,
        "is_nan": is_nan,
        "is_uri": is_uri,
        "is_uri_ref": is_uri_ref,
        "is_uuid": is_uuid,
        "matches": matches,
        "size": size,
        "unique": unique,
    }
)
