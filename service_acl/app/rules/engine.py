"""
Rule store and evaluation engine for the ACL evaluator.

Rules are kept in insertion order and scanned newest first, so a later
``allow``/``deny`` overrides an earlier, broader one without removing it.
For every rule the resolved roles are tried closest first, and for each
role the resolved resources closest first. The first matching rule
decides; a custom assertion may hand the query on to the next older
matching rule instead.
"""

import asyncio
import uuid
from typing import Any, Dict, List, Optional, Tuple

from shared.config import AclSettings, get_settings
from shared.errors import (
    AccessLayerException, CyclicHierarchyError, PendingDecisionError,
    PredicateProtocolError, RoleResolutionError
)
from shared.logging import get_logger
from .hierarchy import HierarchyKind, HierarchyRegistry
from .models import (
    DoneCallback, NextCallback, PermissionType, QueryContext,
    QueryResult, Rule
)
from .subjects import extract_resource, extract_role


class Acl:
    """Access control list with LIFO rule evaluation."""

    def __init__(self, settings: Optional[AclSettings] = None):
        self.settings = settings if settings is not None else get_settings()
        self.logger = get_logger("acl.engine")
        self.hierarchy = HierarchyRegistry(detect_cycles=self.settings.detect_cycles)
        self._rules: List[Rule] = []

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return tuple(self._rules)

    def add_role(self, role: str, parent: Optional[str] = None) -> None:
        """Register a role, optionally inheriting from ``parent``."""
        self.hierarchy.register(HierarchyKind.ROLE, role, _or_none(parent))

    def add_resource(self, resource: Any, parent: Any = None) -> None:
        """Register a resource, optionally inheriting from ``parent``."""
        self.hierarchy.register(HierarchyKind.RESOURCE, resource, _or_none(parent))

    def allow(self, role: Optional[str] = None, resource: Any = None, actions: Any = None,
              assertion: Optional[Any] = None) -> List[Rule]:
        """Add allow rules. ``None`` or "" for role, resource or actions matches anything."""
        return self._add_rules(PermissionType.ALLOW, role, resource, actions, assertion)

    def deny(self, role: Optional[str] = None, resource: Any = None, actions: Any = None,
             assertion: Optional[Any] = None) -> List[Rule]:
        """Add deny rules. ``None`` or "" for role, resource or actions matches anything."""
        return self._add_rules(PermissionType.DENY, role, resource, actions, assertion)

    def _add_rules(self, permission_type: PermissionType, role: Optional[str], resource: Any,
                   actions: Any, assertion: Optional[Any]) -> List[Rule]:
        if assertion is None:
            assertion = permission_type == PermissionType.ALLOW
        if not isinstance(actions, (list, tuple)):
            actions = [actions]

        added = []
        for action in actions:
            rule = Rule(
                role=_or_none(role),
                resource=_or_none(resource),
                action=_or_none(action),
                permission_type=permission_type,
                assertion=assertion
            )
            self._rules.append(rule)
            added.append(rule)

        self.logger.info(
            "Rules added",
            permission_type=permission_type.value,
            role=role,
            resource=resource,
            actions=list(actions),
            custom=callable(assertion)
        )
        return added

    def query(self, role: Any, resource: Any, action: Optional[str], callback: DoneCallback) -> None:
        """Decide whether ``role`` may perform ``action`` on ``resource``.

        ``callback(err, allowed, permission_type)`` fires exactly once,
        possibly later than this call returns if a custom assertion
        suspends. When no rule decides the result is
        ``(None, False, PermissionType.INHERIT)``.
        """
        query_id = uuid.uuid4().hex
        try:
            roles = self._resolve_roles(role)
            resources = self.hierarchy.ancestor_chain(HierarchyKind.RESOURCE, extract_resource(resource))
        except (RoleResolutionError, CyclicHierarchyError) as e:
            self.logger.error("Unable to resolve query", query_id=query_id, code=e.code, error=e.message)
            callback(e, False, PermissionType.INHERIT)
            return

        context = QueryContext(
            role=role,
            resource=resource,
            action=action,
            roles=roles,
            resources=resources,
            cursor=len(self._rules) - 1,
            done=callback,
            query_id=query_id
        )
        self.logger.debug(
            "Query started",
            query_id=query_id,
            roles=roles,
            resources=resources,
            action=action
        )
        self._scan(context)

    async def query_async(self, role: Any, resource: Any, action: Optional[str]) -> QueryResult:
        """Awaitable form of :meth:`query`; errors are raised."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def settle(err: Any, allowed: bool, permission_type: PermissionType) -> None:
            if future.done():
                return
            if err is not None:
                future.set_exception(_as_exception(err))
            else:
                future.set_result(QueryResult(allowed=allowed, permission_type=permission_type))

        def callback(err: Any, allowed: bool, permission_type: PermissionType) -> None:
            loop.call_soon_threadsafe(settle, err, allowed, permission_type)

        self.query(role, resource, action, callback)
        return await future

    def is_allowed(self, role: Any, resource: Any, action: Optional[str]) -> QueryResult:
        """Synchronous check for policies whose assertions never suspend."""
        outcome: List[Tuple[Any, bool, PermissionType]] = []
        self.query(role, resource, action, lambda err, allowed, kind: outcome.append((err, allowed, kind)))

        if not outcome:
            raise PendingDecisionError(details={"role": repr(role), "resource": repr(resource), "action": action})

        err, allowed, permission_type = outcome[0]
        if err is not None:
            raise _as_exception(err)
        return QueryResult(allowed=allowed, permission_type=permission_type)

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "total_rules": len(self._rules),
            "allow_rules": len([r for r in self._rules if r.permission_type == PermissionType.ALLOW]),
            "deny_rules": len([r for r in self._rules if r.permission_type == PermissionType.DENY]),
            "custom_rules": len([r for r in self._rules if r.is_custom]),
            "roles": len(self.hierarchy.roles),
            "resources": len(self.hierarchy.resources)
        }

    def _resolve_roles(self, role: Any) -> List[Optional[str]]:
        extracted = extract_role(role)
        if isinstance(extracted, list):
            return self.hierarchy.ancestor_chain_for_multiple(HierarchyKind.ROLE, extracted)
        return self.hierarchy.ancestor_chain(HierarchyKind.ROLE, extracted)

    def _scan(self, context: QueryContext) -> None:
        # Assertions that defer synchronously set ``context.deferred`` and the
        # loop picks up the next rule; assertions that defer later re-enter here.
        violation: Optional[PredicateProtocolError] = None
        while not context.finished:
            match = self._next_match(context)
            if match is None:
                self.logger.debug("No rule matched", query_id=context.query_id)
                self._finish(context, None, False, PermissionType.INHERIT)
                break

            index, rule = match
            done, next_ = self._continuations(context, index)
            context.pending = index
            context.deferred = False
            context.deciding = True
            try:
                rule.decide(context.role, context.resource, context.action, done, next_)
            except PredicateProtocolError as e:
                # The first continuation call already settled or deferred the
                # query; finish the scan before reporting the second call.
                if not (context.deferred or context.finished):
                    raise
                violation = violation or e
            finally:
                context.deciding = False

            if not context.deferred:
                break

        if violation is not None:
            raise violation

    def _next_match(self, context: QueryContext) -> Optional[Tuple[int, Rule]]:
        while context.cursor >= 0:
            index = context.cursor
            rule = self._rules[index]
            context.cursor -= 1

            for role in context.roles:
                for resource in context.resources:
                    if rule.matches(role, resource, context.action):
                        self.logger.debug(
                            "Rule matched",
                            query_id=context.query_id,
                            rule_index=index,
                            permission_type=rule.permission_type.value,
                            role=role,
                            resource=resource
                        )
                        return index, rule
        return None

    def _continuations(self, context: QueryContext, index: int) -> Tuple[DoneCallback, NextCallback]:
        """One-shot ``done``/``next_`` pair bound to the rule at ``index``."""
        used: List[str] = []

        def claim(name: str) -> bool:
            if not used:
                used.append(name)
                return True

            self.logger.warning(
                "Assertion continuation invoked twice",
                query_id=context.query_id,
                rule_index=index,
                first=used[0],
                second=name
            )
            if self.settings.strict_continuations:
                raise PredicateProtocolError(details={"rule_index": index, "first": used[0], "second": name})
            return False

        def done(err: Any, allowed: bool, permission_type: PermissionType) -> None:
            if claim("result"):
                self._finish(context, err, allowed, permission_type)

        def next_() -> None:
            if not claim("next"):
                return
            self.logger.debug("Assertion deferred", query_id=context.query_id, rule_index=index)
            context.pending = None
            if context.deciding:
                context.deferred = True
            else:
                self._scan(context)

        return done, next_

    def _finish(self, context: QueryContext, err: Any, allowed: bool, permission_type: PermissionType) -> None:
        context.finished = True
        self.logger.debug(
            "Query finished",
            query_id=context.query_id,
            rule_index=context.pending,
            allowed=allowed,
            permission_type=permission_type.value,
            error=None if err is None else str(err)
        )
        context.done(err, allowed, permission_type)


def _or_none(value: Any) -> Any:
    # Empty identifiers mean "any", as None does.
    if isinstance(value, str) and not value:
        return None
    return value


def _as_exception(err: Any) -> BaseException:
    if isinstance(err, BaseException):
        return err
    return AccessLayerException("ASSERTION_ERROR", str(err), {"error": repr(err)})
