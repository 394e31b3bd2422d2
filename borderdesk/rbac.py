"""Role-based access control for every mutating action in the dashboard.

The permission table is a fixed mapping role -> set of (action, resource)
pairs. Each role's set is listed in full; there is no inheritance between
roles, so editing one list never grants anything to the other.
"""
import logging
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, NamedTuple, Optional, Union

from .errors import PermissionDeniedError
from .models.user import Actor, UserRole

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW = "view"
    APPROVE = "approve"
    REJECT = "reject"
    UPDATE = "update"
    OVERRIDE = "override"
    REFUND = "refund"
    GENERATE = "generate"
    DOWNLOAD = "download"
    MANAGE = "manage"


class Resource(str, Enum):
    APPLICATIONS = "applications"
    VERIFICATION = "verification"
    PAYMENTS = "payments"
    TRACKING = "tracking"
    ADDONS = "addons"
    ANALYTICS = "analytics"
    REPORTS = "reports"
    LOGS = "logs"
    AUDIT = "audit"
    SETTINGS = "settings"
    TEAM = "team"


class Permission(NamedTuple):
    action: str
    resource: str


def _perm(action: Action, resource: Resource) -> Permission:
    return Permission(action.value, resource.value)


PermissionTable = Mapping[UserRole, FrozenSet[Permission]]


ROLE_PERMISSIONS: PermissionTable = MappingProxyType({
    UserRole.ADMIN: frozenset({
        # Applications
        _perm(Action.VIEW, Resource.APPLICATIONS),
        _perm(Action.APPROVE, Resource.APPLICATIONS),
        _perm(Action.REJECT, Resource.APPLICATIONS),
        _perm(Action.UPDATE, Resource.APPLICATIONS),
        # AI verification
        _perm(Action.VIEW, Resource.VERIFICATION),
        _perm(Action.APPROVE, Resource.VERIFICATION),
        _perm(Action.REJECT, Resource.VERIFICATION),
        _perm(Action.OVERRIDE, Resource.VERIFICATION),
        # Payments
        _perm(Action.VIEW, Resource.PAYMENTS),
        _perm(Action.UPDATE, Resource.PAYMENTS),
        _perm(Action.REFUND, Resource.PAYMENTS),
        # Tracking
        _perm(Action.VIEW, Resource.TRACKING),
        _perm(Action.UPDATE, Resource.TRACKING),
        # Add-ons
        _perm(Action.VIEW, Resource.ADDONS),
        _perm(Action.UPDATE, Resource.ADDONS),
        # Analytics
        _perm(Action.VIEW, Resource.ANALYTICS),
        # Reports
        _perm(Action.VIEW, Resource.REPORTS),
        _perm(Action.GENERATE, Resource.REPORTS),
        _perm(Action.DOWNLOAD, Resource.REPORTS),
        # Logs
        _perm(Action.VIEW, Resource.LOGS),
        # Audit
        _perm(Action.VIEW, Resource.AUDIT),
        # Settings
        _perm(Action.VIEW, Resource.SETTINGS),
        _perm(Action.UPDATE, Resource.SETTINGS),
        # Team
        _perm(Action.VIEW, Resource.TEAM),
        _perm(Action.MANAGE, Resource.TEAM),
    }),
    UserRole.STAFF: frozenset({
        _perm(Action.VIEW, Resource.APPLICATIONS),
        # Can review documents but not override a decision
        _perm(Action.VIEW, Resource.VERIFICATION),
        _perm(Action.APPROVE, Resource.VERIFICATION),
        _perm(Action.REJECT, Resource.VERIFICATION),
        _perm(Action.VIEW, Resource.PAYMENTS),
        _perm(Action.VIEW, Resource.TRACKING),
        _perm(Action.UPDATE, Resource.TRACKING),
        _perm(Action.VIEW, Resource.ADDONS),
        _perm(Action.VIEW, Resource.ANALYTICS),
        _perm(Action.VIEW, Resource.LOGS),
    }),
})

ADMIN_ONLY_ACTIONS: FrozenSet[Permission] = frozenset({
    _perm(Action.APPROVE, Resource.APPLICATIONS),
    _perm(Action.REJECT, Resource.APPLICATIONS),
    _perm(Action.UPDATE, Resource.APPLICATIONS),
    _perm(Action.OVERRIDE, Resource.VERIFICATION),
    _perm(Action.UPDATE, Resource.PAYMENTS),
    _perm(Action.REFUND, Resource.PAYMENTS),
    _perm(Action.GENERATE, Resource.REPORTS),
    _perm(Action.DOWNLOAD, Resource.REPORTS),
    _perm(Action.VIEW, Resource.AUDIT),
    _perm(Action.VIEW, Resource.SETTINGS),
    _perm(Action.UPDATE, Resource.SETTINGS),
    _perm(Action.MANAGE, Resource.TEAM),
})

AUTHENTICATION_REQUIRED_MESSAGE = "You must be logged in to perform this action."
ADMIN_REQUIRED_MESSAGE = "This action requires admin privileges."
PERMISSION_DENIED_MESSAGE = "You don't have permission to perform this action."

RoleLike = Union[UserRole, str, None]


def _value(item) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def _coerce_role(role: RoleLike) -> Optional[UserRole]:
    if role is None or isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


class RBACEvaluator:
    """Answers "can role R do action A on resource Re?" against one permission table."""

    def __init__(
        self,
        permissions: PermissionTable = ROLE_PERMISSIONS,
        admin_only_actions: FrozenSet[Permission] = ADMIN_ONLY_ACTIONS,
    ):
        self._permissions = MappingProxyType({role: frozenset(perms) for role, perms in permissions.items()})
        self._admin_only_actions = frozenset(admin_only_actions)

    def _permissions_for(self, role: RoleLike) -> FrozenSet[Permission]:
        coerced = _coerce_role(role)
        if coerced is None:
            return frozenset()
        return self._permissions.get(coerced, frozenset())

    def has_permission(self, role: RoleLike, action, resource) -> bool:
        return Permission(_value(action), _value(resource)) in self._permissions_for(role)

    def is_admin_only_action(self, action, resource) -> bool:
        return Permission(_value(action), _value(resource)) in self._admin_only_actions

    def get_blocked_reason(self, role: RoleLike, action, resource) -> Optional[str]:
        if role is None:
            return AUTHENTICATION_REQUIRED_MESSAGE
        if self.has_permission(role, action, resource):
            return None
        if self.is_admin_only_action(action, resource):
            return ADMIN_REQUIRED_MESSAGE
        return PERMISSION_DENIED_MESSAGE

    def get_allowed_actions(self, role: RoleLike, resource) -> FrozenSet[str]:
        resource_value = _value(resource)
        return frozenset(p.action for p in self._permissions_for(role) if p.resource == resource_value)

    def require(self, actor: Optional[Actor], action, resource) -> Actor:
        """Raise PermissionDeniedError unless the actor may perform the action."""
        role = actor.role if actor is not None else None
        reason = self.get_blocked_reason(role, action, resource)
        if reason is not None:
            logger.warning(
                "Permission denied",
                extra={
                    "user_id": actor.user_id if actor else None,
                    "role": _value(role) if role else None,
                    "action": _value(action),
                    "resource": _value(resource),
                },
            )
            raise PermissionDeniedError(reason, action=_value(action), resource=_value(resource))
        return actor


default_evaluator = RBACEvaluator()


def has_permission(role: RoleLike, action, resource) -> bool:
    return default_evaluator.has_permission(role, action, resource)


def can_perform_action(role: RoleLike, action, resource) -> bool:
    return default_evaluator.has_permission(role, action, resource)


def is_admin_only_action(action, resource) -> bool:
    return default_evaluator.is_admin_only_action(action, resource)


def get_blocked_reason(role: RoleLike, action, resource) -> Optional[str]:
    return default_evaluator.get_blocked_reason(role, action, resource)


def get_allowed_actions(role: RoleLike, resource) -> FrozenSet[str]:
    return default_evaluator.get_allowed_actions(role, resource)
