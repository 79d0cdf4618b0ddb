"""
Exception taxonomy for the shadow caster pipeline.

- DecodeError: the image could not be decoded
- InvalidParameter: a parameter violates a geometry invariant (names the field)
- ExportError: empty or inconsistent geometry reached the encoder

Write failures are left as the builtin OSError.
"""

from typing import Optional


class ShadowCasterError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(ShadowCasterError):
    """Raised when an input image cannot be decoded."""


class InvalidParameter(ShadowCasterError, ValueError):
    """
    Raised when a parameter violates an invariant.

    Attributes:
        field: Name of the offending parameter
    """

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or "invalid value")

    def __str__(self) -> str:
        return f"{self.field}: {self.args[0]}"


class ExportError(ShadowCasterError):
    """Raised when geometry cannot be encoded."""
