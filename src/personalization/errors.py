"""
Engine error types.

Missing or partial inputs are never errors: every resolver maps them to a
neutral default. Only logic bugs in the engine itself raise.
"""

from __future__ import annotations


class InvariantViolation(RuntimeError):
    """Raised when a resolver produces output that breaks its own contract."""

    def __init__(self, invariant: str, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"{invariant}: {detail}")
