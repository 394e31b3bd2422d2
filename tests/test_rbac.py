import pytest

from borderdesk.errors import PermissionDeniedError
from borderdesk.models import Actor, UserRole
from borderdesk.rbac import (
    ADMIN_ONLY_ACTIONS,
    ADMIN_REQUIRED_MESSAGE,
    AUTHENTICATION_REQUIRED_MESSAGE,
    PERMISSION_DENIED_MESSAGE,
    ROLE_PERMISSIONS,
    Action,
    Permission,
    RBACEvaluator,
    Resource,
    can_perform_action,
    get_allowed_actions,
    get_blocked_reason,
    has_permission,
    is_admin_only_action,
)


class TestPermissionTable:
    def test_admin_can_override_verification(self):
        assert has_permission(UserRole.ADMIN, "override", "verification")

    def test_staff_cannot_override_verification(self):
        assert not has_permission(UserRole.STAFF, "override", "verification")

    def test_staff_can_approve_and_reject_verification(self):
        assert has_permission(UserRole.STAFF, Action.APPROVE, Resource.VERIFICATION)
        assert has_permission(UserRole.STAFF, Action.REJECT, Resource.VERIFICATION)

    def test_staff_cannot_approve_applications(self):
        assert not has_permission(UserRole.STAFF, Action.APPROVE, Resource.APPLICATIONS)

    def test_role_given_as_string(self):
        assert has_permission("admin", "refund", "payments")
        assert not has_permission("staff", "refund", "payments")

    def test_unknown_role_has_no_permissions(self):
        assert not has_permission("customer", "view", "applications")
        assert get_allowed_actions("customer", "applications") == frozenset()

    def test_none_role_has_no_permissions(self):
        assert not has_permission(None, "view", "applications")

    def test_every_admin_only_action_is_granted_to_admin_and_not_staff(self):
        for permission in ADMIN_ONLY_ACTIONS:
            assert permission in ROLE_PERMISSIONS[UserRole.ADMIN]
            assert permission not in ROLE_PERMISSIONS[UserRole.STAFF]

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            ROLE_PERMISSIONS[UserRole.STAFF] = frozenset()

    def test_can_perform_action_matches_has_permission(self):
        for role in UserRole:
            for action in Action:
                for resource in Resource:
                    assert can_perform_action(role, action, resource) == has_permission(role, action, resource)


class TestNoInheritance:
    def test_adding_staff_permission_does_not_grant_admin(self):
        extra = Permission("download", "logs")
        table = {
            UserRole.ADMIN: ROLE_PERMISSIONS[UserRole.ADMIN],
            UserRole.STAFF: ROLE_PERMISSIONS[UserRole.STAFF] | {extra},
        }
        evaluator = RBACEvaluator(permissions=table)

        assert evaluator.has_permission(UserRole.STAFF, "download", "logs")
        assert not evaluator.has_permission(UserRole.ADMIN, "download", "logs")

    def test_removing_admin_permission_leaves_staff_untouched(self):
        table = {
            UserRole.ADMIN: frozenset(),
            UserRole.STAFF: ROLE_PERMISSIONS[UserRole.STAFF],
        }
        evaluator = RBACEvaluator(permissions=table)

        assert not evaluator.has_permission(UserRole.ADMIN, "view", "applications")
        assert evaluator.has_permission(UserRole.STAFF, "view", "applications")

    def test_custom_table_does_not_touch_default(self):
        RBACEvaluator(permissions={UserRole.STAFF: frozenset()})
        assert has_permission(UserRole.STAFF, "view", "applications")


class TestBlockedReason:
    def test_staff_override_gets_admin_required_message(self):
        assert get_blocked_reason(UserRole.STAFF, "override", "verification") == ADMIN_REQUIRED_MESSAGE

    def test_staff_on_non_admin_only_action_gets_generic_message(self):
        # nobody has delete on anything; not an admin-only action either
        assert get_blocked_reason(UserRole.STAFF, "delete", "applications") == PERMISSION_DENIED_MESSAGE

    def test_missing_role_gets_login_message(self):
        assert get_blocked_reason(None, "view", "applications") == AUTHENTICATION_REQUIRED_MESSAGE

    def test_allowed_action_has_no_reason(self):
        assert get_blocked_reason(UserRole.ADMIN, "override", "verification") is None

    def test_is_admin_only_action(self):
        assert is_admin_only_action("override", "verification")
        assert not is_admin_only_action("approve", "verification")


class TestAllowedActions:
    def test_staff_verification_actions(self):
        assert get_allowed_actions(UserRole.STAFF, Resource.VERIFICATION) == frozenset({"view", "approve", "reject"})

    def test_admin_payment_actions(self):
        assert get_allowed_actions(UserRole.ADMIN, "payments") == frozenset({"view", "update", "refund"})


class TestRequire:
    def test_require_returns_actor(self):
        actor = Actor("a-1", "Admin", UserRole.ADMIN)
        assert RBACEvaluator().require(actor, "override", "verification") is actor

    def test_require_raises_with_reason(self):
        actor = Actor("s-1", "Staff", UserRole.STAFF)
        with pytest.raises(PermissionDeniedError) as exc_info:
            RBACEvaluator().require(actor, "override", "verification")
        assert exc_info.value.message == ADMIN_REQUIRED_MESSAGE
        assert exc_info.value.action == "override"
        assert exc_info.value.resource == "verification"

    def test_require_without_actor(self):
        with pytest.raises(PermissionDeniedError) as exc_info:
            RBACEvaluator().require(None, "view", "applications")
        assert exc_info.value.message == AUTHENTICATION_REQUIRED_MESSAGE
