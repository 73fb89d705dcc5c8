"""
results.py — explicit success/failure values for the CPET pipeline
===================================================================
Every stage returns either ``Ok(value)`` or ``Err(kind, message, details)``.
Nothing raises across module boundaries; callers that prefer exceptions
(CLI, Streamlit page) call ``unwrap()`` and catch ``ValidationError``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, List, Tuple, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    EXTRACTION_FAILURE = "extraction_failure"
    VALIDATION_FAILURE = "validation_failure"


class ValidationError(ValueError):
    """Raised form of an ``Err``: message plus the full list of violations."""

    def __init__(self, message: str, details: List[str] = None,
                 kind: ErrorKind = ErrorKind.VALIDATION_FAILURE):
        super().__init__(message)
        self.message = message
        self.details = list(details or [])
        self.kind = kind


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    details: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return False

    def to_exception(self) -> ValidationError:
        return ValidationError(self.message, list(self.details), self.kind)

    def lines(self) -> List[str]:
        """Message followed by every detail, ready for a diagnostic list."""
        return [self.message] + list(self.details)


Result = Union[Ok, Err]


def unwrap(result: Result) -> Any:
    if isinstance(result, Err):
        raise result.to_exception()
    return result.value
