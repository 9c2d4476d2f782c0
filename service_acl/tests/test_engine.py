"""
Unit tests for the ACL store and evaluator.
"""

import json
import logging

import pytest

from service_acl.app.rules.engine import Acl
from service_acl.app.rules.models import PermissionType, QueryResult
from shared.config import AclSettings
from shared.errors import CyclicHierarchyError, RoleResolutionError


def run_query(acl, role, resource, action):
    """Run a query that is expected to finish synchronously."""
    calls = []
    acl.query(role, resource, action, lambda err, allowed, kind: calls.append((err, allowed, kind)))
    assert len(calls) == 1
    return calls[0]


class TestRuleStore:
    """Test cases for rule registration."""

    @pytest.fixture
    def acl(self):
        return Acl(settings=AclSettings())

    def test_allow_defaults(self, acl):
        rules = acl.allow()

        assert len(rules) == 1
        assert rules[0].role is None
        assert rules[0].resource is None
        assert rules[0].action is None
        assert rules[0].assertion is True
        assert rules[0].permission_type == PermissionType.ALLOW

    def test_deny_defaults(self, acl):
        rule = acl.deny("guest")[0]

        assert rule.role == "guest"
        assert rule.assertion is False
        assert rule.permission_type == PermissionType.DENY

    def test_action_list_expands(self, acl):
        acl.allow("foo", "bar", ["view", "comment", "list"])

        assert [rule.action for rule in acl.rules] == ["view", "comment", "list"]

    def test_explicit_false_on_allow_is_kept(self, acl):
        acl.allow("foo", "bar", "view", False)

        assert run_query(acl, "foo", "bar", "view") == (None, False, PermissionType.ALLOW)

    def test_empty_strings_are_wildcards(self, acl):
        rule = acl.allow("", "", ["", "view"])[0]

        assert (rule.role, rule.resource, rule.action) == (None, None, None)
        assert run_query(acl, "anyone", "anything", "edit") == (None, True, PermissionType.ALLOW)

    def test_empty_parent_is_no_parent(self, acl):
        acl.add_role("member", "")
        acl.add_resource("blog", "")

        assert acl.hierarchy.parent_of("role", "member") is None
        assert acl.hierarchy.ancestor_chain("resource", "blog") == ["blog"]

    def test_engine_stats(self, acl):
        acl.add_role("guest")
        acl.add_role("member", "guest")
        acl.add_resource("blog")
        acl.allow("member", "blog", ["view", "edit"])
        acl.deny("guest", "blog", "edit", lambda *args: None)

        stats = acl.get_engine_stats()

        assert stats == {
            "total_rules": 3,
            "allow_rules": 2,
            "deny_rules": 1,
            "custom_rules": 1,
            "roles": 2,
            "resources": 1
        }


class TestQuery:
    """Test cases for Acl.query."""

    @pytest.fixture
    def acl(self):
        return Acl(settings=AclSettings())

    def test_no_rules_inherits(self, acl):
        assert run_query(acl, "x", "y", "z") == (None, False, PermissionType.INHERIT)

    def test_lifo_deny_wins(self, acl):
        acl.allow("foo", "bar", "derp")
        acl.deny("foo", "bar", "derp")

        assert run_query(acl, "foo", "bar", "derp") == (None, False, PermissionType.DENY)

    def test_lifo_allow_wins(self, acl):
        acl.deny("foo", "bar", "derp")
        acl.allow("foo", "bar", "derp")

        assert run_query(acl, "foo", "bar", "derp") == (None, True, PermissionType.ALLOW)

    def test_null_role(self, acl):
        acl.allow(None, "foo", "bar")

        assert run_query(acl, None, "foo", "bar")[1] is True

    def test_null_resource(self, acl):
        acl.allow("foo", None, "bar")

        assert run_query(acl, "foo", None, "bar")[1] is True

    def test_role_inheritance(self, acl):
        acl.add_role("parent")
        acl.add_role("child", "parent")
        acl.allow("parent", "resource", "action")

        assert run_query(acl, "child", "resource", "action") == (None, True, PermissionType.ALLOW)

    def test_role_inheritance_without_rule(self, acl):
        acl.add_role("parent")
        acl.add_role("child", "parent")

        assert run_query(acl, "child", "resource", "action") == (None, False, PermissionType.INHERIT)

    def test_resource_inheritance(self, acl):
        acl.add_resource("parent")
        acl.add_resource("child", "parent")
        acl.allow("role", "parent", "action")

        assert run_query(acl, "role", "child", "action")[1] is True
        assert run_query(acl, "role", "other", "action")[1] is False

    def test_wildcard_action(self, acl):
        acl.allow("derp", "doo")

        assert run_query(acl, "derp", "doo", "anything")[1] is True

    def test_action_lists(self, acl):
        acl.allow("foo", "bar", ["view", "comment", "list"])
        acl.deny("foo", "bar", ["delete", "edit", "publish"])

        for action in ["view", "comment", "list"]:
            assert run_query(acl, "foo", "bar", action)[1] is True
        for action in ["delete", "edit", "publish"]:
            assert run_query(acl, "foo", "bar", action) == (None, False, PermissionType.DENY)

    def test_multiple_roles_later_deny_wins(self, acl):
        acl.allow("user", "X", "action")
        acl.deny("admin", "X", "action")

        assert run_query(acl, ["user", "admin"], "X", "action") == (None, False, PermissionType.DENY)

    def test_multiple_roles_later_allow_wins(self, acl):
        acl.deny("admin", "X", "action")
        acl.allow("user", "X", "action")

        assert run_query(acl, ["user", "admin"], "X", "action") == (None, True, PermissionType.ALLOW)

    def test_multiple_roles_ancestor_deny(self, acl):
        acl.add_role("staff")
        acl.add_role("r2", "staff")
        acl.allow("r1", "X", "action")
        acl.deny("staff", "X", "action")

        assert run_query(acl, ["r1", "r2"], "X", "action") == (None, False, PermissionType.DENY)

    def test_empty_role_list_inherits(self, acl):
        acl.allow()

        assert run_query(acl, [], "X", "action") == (None, False, PermissionType.INHERIT)

    def test_unresolvable_role_fails_fast(self, acl):
        acl.allow()

        err, allowed, kind = run_query(acl, 42, "X", "action")

        assert isinstance(err, RoleResolutionError)
        assert allowed is False

    def test_cyclic_roles_reported_through_callback(self, acl):
        acl.add_role("a", "b")
        acl.add_role("b", "a")

        err, allowed, kind = run_query(acl, "a", "X", "action")

        assert isinstance(err, CyclicHierarchyError)
        assert allowed is False

    def test_rich_subject_and_object(self, acl):
        class User:
            def get_role_id(self):
                return ["blog-admin", "product-admin"]

        class Resource:
            resource_id = "resource"

        acl.allow("product-admin", "resource", "action")

        assert run_query(acl, User(), Resource(), "action")[1] is True

    def test_rules_added_after_query_start_are_ignored(self, acl):
        acl.allow("foo", "bar", "view", lambda err, role, resource, action, result, next_: pending.append(next_))
        pending = []
        calls = []

        acl.query("foo", "bar", "view", lambda *args: calls.append(args))
        acl.deny("foo", "bar", "view")
        pending[0]()

        assert calls == [(None, False, PermissionType.INHERIT)]


class TestIsAllowed:
    """Test cases for the synchronous helper."""

    @pytest.fixture
    def acl(self):
        return Acl(settings=AclSettings())

    def test_returns_query_result(self, acl):
        acl.allow("member", "page", "view")

        result = acl.is_allowed("member", "page", "view")

        assert result == QueryResult(allowed=True, permission_type=PermissionType.ALLOW)

    def test_raises_structural_error(self, acl):
        with pytest.raises(RoleResolutionError):
            acl.is_allowed(object(), "page", "view")


class TestQueryLogging:
    """Test cases for query debug events."""

    @pytest.fixture
    def acl(self):
        return Acl(settings=AclSettings())

    def finished_events(self, caplog):
        events = [json.loads(record.getMessage()) for record in caplog.records if record.name == "acl.engine"]
        return [event for event in events if event["event"] == "Query finished"]

    def test_finished_event_names_deciding_rule(self, acl, caplog):
        acl.allow("foo", "bar", "view")
        acl.deny("foo", "bar", "edit")
        caplog.set_level(logging.DEBUG)

        run_query(acl, "foo", "bar", "view")

        event = self.finished_events(caplog)[-1]
        assert event["rule_index"] == 0
        assert event["permission_type"] == "allow"

    def test_finished_event_after_deferral(self, acl, caplog):
        acl.allow("foo", "bar", "view", lambda err, role, resource, action, result, next_: next_())
        caplog.set_level(logging.DEBUG)

        run_query(acl, "foo", "bar", "view")

        event = self.finished_events(caplog)[-1]
        assert event["rule_index"] is None
        assert event["permission_type"] == "inherit"
