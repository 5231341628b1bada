import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MAX_DEPTH = 32

FAIL_FAST_ENVVAR = "PROTOGUARD_FAIL_FAST"
MAX_DEPTH_ENVVAR = "PROTOGUARD_MAX_DEPTH"

_TRUE = frozenset(["1", "true", "yes", "on"])
_FALSE = frozenset(["", "0", "false", "no", "off"])


@dataclass
class EnvironmentValue:
    """A configuration value that is either preset or read from an
    environment variable."""

    _envvar: str
    _name: str
    _value: str
    _from_envvar: bool

    def __init__(
        self,
        envvar: str,
        name: str,
        value: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._envvar = envvar
        self._name = name
        self._from_envvar = False
        if value is None:
            self._value = (environ if environ is not None else os.environ).get(
                envvar
            ) or ""
            self._from_envvar = True
        else:
            self._value = value

    def __str__(self):
        return self.value

    @property
    def name(self) -> str:
        return self._envvar if self._from_envvar else self._name

    @property
    def value(self) -> str:
        return self._value

    def as_bool(self, default: bool) -> bool:
        value = self._value.strip().lower()
        if not value:
            return default
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        raise ValueError(f"invalid boolean value for {self.name}: {self._value!r}")

    def as_int(self, default: int) -> int:
        value = self._value.strip()
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(
                f"invalid integer value for {self.name}: {self._value!r}"
            ) from None


@dataclass(frozen=True)
class Config:
    """Options controlling how messages are evaluated.

    Attributes:
        fail_fast: Stop at the first violation instead of collecting all of
            them.
        max_depth: Maximum number of nested message levels below the
            validated message. Deeper instances fail with a RecursionError.
    """

    fail_fast: bool = False
    max_depth: int = DEFAULT_MAX_DEPTH

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError(f"max_depth must not be negative: {self.max_depth}")

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Builds a configuration from the PROTOGUARD_* environment variables.

        Args:
            environ: Mapping to read variables from. Defaults to os.environ.

        Raises:
            ValueError: If a variable holds a value that cannot be parsed.
        """
        fail_fast = EnvironmentValue(FAIL_FAST_ENVVAR, "fail_fast", environ=environ)
        max_depth = EnvironmentValue(MAX_DEPTH_ENVVAR, "max_depth", environ=environ)
        return cls(
            fail_fast=fail_fast.as_bool(False),
            max_depth=max_depth.as_int(DEFAULT_MAX_DEPTH),
        )
