"""Error taxonomy for the AumOS Usage Engine.

Only `InvalidInputError` and `NotFoundError` ever reach a caller. The
numeric conditions (`InsufficientDataError`, `NumericDegeneracyError`) are
raised by the linear-algebra helpers and absorbed by the component that
called them, so a single bad update never interrupts the sample cadence.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by every EngineError."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INSUFFICIENT_DATA = "insufficient_data"
    NUMERIC_DEGENERACY = "numeric_degeneracy"


class EngineError(Exception):
    """Base class for all engine errors.

    Args:
        message: Human-readable description.
        error_code: Machine-readable code; subclasses supply a default.
    """

    default_code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, error_code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

    def to_dict(self) -> dict:
        """Serialise to a dict for API error responses."""
        return {"error_code": self.error_code.value, "message": self.message}


class InvalidInputError(EngineError, ValueError):
    """Wrong vector length, non-finite value, out-of-range label or malformed payload."""

    default_code = ErrorCode.INVALID_INPUT


class NotFoundError(EngineError, LookupError):
    """No engine is registered for the requested subject."""

    default_code = ErrorCode.NOT_FOUND


class InsufficientDataError(EngineError):
    """Too few samples for the requested computation."""

    default_code = ErrorCode.INSUFFICIENT_DATA


class NumericDegeneracyError(EngineError, ArithmeticError):
    """Matrix is not positive-definite (constant or collinear observations)."""

    default_code = ErrorCode.NUMERIC_DEGENERACY
