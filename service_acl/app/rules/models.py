"""
Rule data models for the ACL evaluator.
"""

from typing import Any, Callable, List, Optional, Union
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field


class PermissionType(str, Enum):
    """Polarity of a rule, or INHERIT when no rule decided."""
    ALLOW = "allow"
    DENY = "deny"
    INHERIT = "inherit"


# done(err, allowed, permission_type)
DoneCallback = Callable[[Optional[BaseException], bool, PermissionType], None]

# result(err, allowed)
ResultCallback = Callable[[Optional[BaseException], bool], None]

NextCallback = Callable[[], None]

# assertion(err, role, resource, action, result, next_)
Assertion = Callable[[Optional[BaseException], Any, Any, Any, ResultCallback, NextCallback], None]


@dataclass(frozen=True)
class Rule:
    """Single allow/deny permission.

    ``None`` in ``role``, ``resource`` or ``action`` matches anything.
    ``assertion`` is either a fixed outcome or a custom assertion that
    settles the query through ``result`` or hands it on through ``next_``.
    """
    role: Optional[str]
    resource: Optional[Any]
    action: Optional[str]
    permission_type: PermissionType
    assertion: Union[bool, Assertion]

    def matches(self, role: Optional[str], resource: Optional[Any], action: Optional[str]) -> bool:
        """Check the rule against one concrete role/resource/action triple."""
        if self.role is not None and self.role != role:
            return False
        if self.resource is not None and self.resource != resource:
            return False
        if self.action is not None and self.action != action:
            return False
        return True

    @property
    def is_custom(self) -> bool:
        return callable(self.assertion)

    def decide(self, role: Any, resource: Any, action: Any, done: DoneCallback, next_: NextCallback) -> None:
        """Produce a decision for a matched query."""
        if not self.is_custom:
            done(None, bool(self.assertion), self.permission_type)
            return

        def result(err: Optional[BaseException], allowed: bool) -> None:
            done(err, bool(allowed), self.permission_type)

        self.assertion(None, role, resource, action, result, next_)


@dataclass
class QueryContext:
    """Per-query scan state.

    ``cursor`` is the index of the next rule to consider; scanning walks
    it down towards zero. ``pending`` is the index of the rule currently
    deciding, or None once it defers.
    """
    role: Any
    resource: Any
    action: Optional[str]
    roles: List[Optional[str]]
    resources: List[Any]
    cursor: int
    done: DoneCallback
    query_id: str = ""
    pending: Optional[int] = None
    finished: bool = False
    deciding: bool = False
    deferred: bool = False


class QueryResult(BaseModel):
    """Outcome of a finished query."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    permission_type: PermissionType = Field(..., description="Polarity of the deciding rule, or inherit")
