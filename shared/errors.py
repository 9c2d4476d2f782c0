"""
Shared error handling for the ACL evaluator.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for the ACL evaluator."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class RoleResolutionError(AccessLayerException):
    """Role input could not be turned into role identifiers."""

    def __init__(self, message: str = "Unable to determine role", details: Optional[Dict[str, Any]] = None):
        super().__init__("ROLE_RESOLUTION_ERROR", message, details)


class CyclicHierarchyError(AccessLayerException):
    """A role or resource parent chain loops back on itself."""

    def __init__(self, kind: str, identifier: Any, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("kind", kind)
        details.setdefault("identifier", identifier)
        super().__init__(
            "CYCLIC_HIERARCHY_ERROR",
            f"Cyclic {kind} hierarchy detected at {identifier!r}",
            details
        )


class PredicateProtocolError(AccessLayerException):
    """A custom assertion invoked its continuations more than once."""

    def __init__(self, message: str = "Assertion continuation already used", details: Optional[Dict[str, Any]] = None):
        super().__init__("PREDICATE_PROTOCOL_ERROR", message, details)


class PendingDecisionError(AccessLayerException):
    """A synchronous check hit an assertion that suspended the query."""

    def __init__(self, message: str = "Decision is still pending", details: Optional[Dict[str, Any]] = None):
        super().__init__("PENDING_DECISION_ERROR", message, details)
