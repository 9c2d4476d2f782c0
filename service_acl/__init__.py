"""
In-process ACL evaluator.
"""

from .app.rules.engine import Acl
from .app.rules.models import PermissionType, QueryResult, Rule

__all__ = ["Acl", "PermissionType", "QueryResult", "Rule"]
