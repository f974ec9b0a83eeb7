"""
Errors raised by the CAT engine.

Every error here is recoverable by the session host (for example by ending the
attempt early with an "insufficient items" report); none is process-fatal.
"""

from typing import Any, Dict, Optional


class CATEngineError(Exception):
    """Base exception for CAT engine errors."""

    def __init__(  # noqa: D107
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (context: {ctx_str})"
        return msg


class ConfigurationError(CATEngineError):
    """Invalid CATSettings, detected at session initialization."""


class NoCandidateItemsError(CATEngineError):
    """Item selection was requested against an empty candidate pool."""


class EstimationDegenerateError(CATEngineError):
    """The EAP posterior integral underflowed to (near) zero."""
