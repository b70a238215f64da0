"""
Error taxonomy for the assessment engine.

Every engine error carries a stable ``code`` so callers can map failures to
structured explanations without parsing messages. Reliability analysis below
its sample floor is not an error: it is reported through the
``INSUFFICIENT_DATA`` status value.

Hierarchy:
    EngineError
    ├── ConfigurationError
    │   └── AssemblyError
    ├── InvalidStateError
    ├── ScoringError
    └── DatabaseOperationError

``InventoryShortfallWarning`` is a ``UserWarning`` subclass. The assembler
returns instances alongside its result instead of raising them.
"""

from typing import Any, Dict, List, Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for logs and API layers."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ConfigurationError(EngineError):
    """Blueprint or scoring configuration is missing or malformed."""

    code = "CONFIGURATION_ERROR"


class AssemblyError(ConfigurationError):
    """
    Assembly could not produce a question list.

    ``completed_competencies`` lists the competencies already filled when the
    failure happened, so a caller can report partial progress.
    """

    code = "ASSEMBLY_ERROR"

    def __init__(
        self,
        message: str,
        *,
        completed_competencies: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.completed_competencies = list(completed_competencies or [])


class InvalidStateError(EngineError):
    """An operation was attempted from a state that does not allow it."""

    code = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        *,
        current_state: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.current_state = current_state


class ScoringError(EngineError):
    """
    Scoring could not run or failed part-way.

    ``category`` is a short machine-readable reason (``NO_ANSWERS``,
    ``INVALID_STATUS``, ``INVALID_ANSWER``, ``CALCULATION``).
    """

    code = "SCORING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        category: str = "CALCULATION",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.category = category


class DatabaseOperationError(EngineError):
    """A repository operation failed and its transaction was rolled back."""

    code = "DATABASE_ERROR"

    def __init__(self, operation_name: str, original_error: Exception):
        super().__init__(f"Failed to {operation_name}: {original_error}")
        self.operation_name = operation_name
        self.original_error = original_error


class InventoryShortfallWarning(UserWarning):
    """
    Not enough eligible questions exist to fill an allocation.

    Carried as a value in assembly results; assembly still succeeds with the
    questions that were available.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "INVENTORY_SHORTFALL",
        level: str = "WARNING",
        competency_id: Optional[str] = None,
        indicator_id: Optional[str] = None,
        required: int = 0,
        available: int = 0,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.level = level
        self.competency_id = competency_id
        self.indicator_id = indicator_id
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "level": self.level,
            "message": self.message,
            "competency_id": self.competency_id,
            "indicator_id": self.indicator_id,
            "required": self.required,
            "available": self.available,
            "shortfall": self.shortfall,
        }

    def __repr__(self) -> str:
        return (
            f"InventoryShortfallWarning(code={self.code!r}, "
            f"competency_id={self.competency_id!r}, "
            f"required={self.required}, available={self.available})"
        )
