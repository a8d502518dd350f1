"""
Exception classes.

Two kinds of failure are distinguished:

- :class:`InputError` for malformed or mismatched inputs, detected where
  the input is first used.
- :class:`InvariantError` for internal consistency failures (numerical
  breakdown or a logic defect). These abort the whole computation.
"""


class EvoAlignError(Exception):
    """Base class for all errors raised by evoalign."""

    def __init__(self, message: str = "Unknown evoalign error") -> None:
        self.message = message
        super().__init__(self.message)


class InputError(EvoAlignError, ValueError):
    """Raised when inputs violate a precondition (bad file, mismatched sizes)."""


class InvariantError(EvoAlignError, RuntimeError):
    """Raised when an internal invariant fails (e.g. complex-valued probability)."""


def require(condition: bool, message: str, *args) -> None:
    """Raise :class:`InputError` with ``message % args`` unless condition holds."""
    if not condition:
        raise InputError(message % args if args else message)


def invariant(condition: bool, message: str, *args) -> None:
    """Raise :class:`InvariantError` with ``message % args`` unless condition holds."""
    if not condition:
        raise InvariantError(message % args if args else message)
