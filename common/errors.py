from __future__ import annotations


class InvalidInputError(ValueError):
    """Malformed arguments (empty buffers, bad sizes, unsupported channels, too few points)."""


class DecodeError(RuntimeError):
    """Encoded image bytes could not be turned into pixels."""

    def __init__(self, message: str, *, which: str = "image") -> None:
        super().__init__(message)
        self.which = which
