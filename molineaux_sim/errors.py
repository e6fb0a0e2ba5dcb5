"""Domain-specific exceptions and setup results for molineaux-sim.

Configuration problems are fatal at setup. Setup routines report them as
a ``SetupResult`` carrying an ``ErrorKind``; lower-level APIs raise the
matching ``ConfigError`` subclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Category of a setup failure."""
    UNKNOWN_MODE = "unknown_mode"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"
    CONFIG_TABLE = "config_table"


class MolineauxError(Exception):
    """Base class for molineaux-sim errors."""


class ConfigError(MolineauxError, ValueError):
    """Raised when model or scenario configuration is invalid."""
    kind = ErrorKind.INVALID_PARAMETER


class UnknownModeError(ConfigError):
    """Raised when a variant mode name is not recognised."""
    kind = ErrorKind.UNKNOWN_MODE


class MissingParameterError(ConfigError):
    """Raised when a fitted constant is absent from the configuration."""
    kind = ErrorKind.MISSING_PARAMETER


class InvalidParameterError(ConfigError):
    """Raised when a fitted constant has an unusable value."""
    kind = ErrorKind.INVALID_PARAMETER


class DosageTableError(ConfigError):
    """Raised on a malformed dosage table or an out-of-range lookup."""
    kind = ErrorKind.CONFIG_TABLE


_ERROR_BY_KIND = {
    ErrorKind.UNKNOWN_MODE: UnknownModeError,
    ErrorKind.MISSING_PARAMETER: MissingParameterError,
    ErrorKind.INVALID_PARAMETER: InvalidParameterError,
    ErrorKind.CONFIG_TABLE: DosageTableError,
}


@dataclass(frozen=True)
class SetupResult(Generic[T]):
    """Outcome of a setup routine: either a value or an error kind."""
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, value: T) -> "SetupResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ConfigError) -> "SetupResult[T]":
        return cls(error_kind=error.kind, message=str(error))

    def unwrap(self) -> T:
        """Return the value, or raise the exception matching the error kind."""
        if self.error_kind is not None:
            raise _ERROR_BY_KIND[self.error_kind](self.message)
        return self.value


__all__ = [
    "ErrorKind",
    "MolineauxError",
    "ConfigError",
    "UnknownModeError",
    "MissingParameterError",
    "InvalidParameterError",
    "DosageTableError",
    "SetupResult",
]
