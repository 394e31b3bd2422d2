"""Application status workflow.

    pending -> verified -> approved -> completed
       |          |           |
       +----------+-----------+--> rejected -> pending (resubmission)

validate_transition() is a pure validator: it never mutates anything, so the
same call answers both "can this button be shown" and "perform this
transition". Callers mutate and write the audit entry only after it passes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from .errors import InvalidTransitionError, MissingRequirementError
from .models.application import ApplicationStatus
from .models.user import UserRole


class Requirement(str, Enum):
    DOCUMENT_VERIFIED = "document_verified"
    PAYMENT_CONFIRMED = "payment_confirmed"
    DELIVERY_COMPLETED = "delivery_completed"
    REJECTION_REASON = "rejection_reason"


REQUIREMENT_MESSAGES = {
    Requirement.DOCUMENT_VERIFIED: "Documents must be verified before this action",
    Requirement.PAYMENT_CONFIRMED: "Payment must be confirmed before marking as completed",
    Requirement.DELIVERY_COMPLETED: "Delivery must be completed before marking as completed",
    Requirement.REJECTION_REASON: "A rejection reason must be provided",
}

# Requirements are always reported in this order
REQUIREMENT_ORDER = (
    Requirement.DOCUMENT_VERIFIED,
    Requirement.PAYMENT_CONFIRMED,
    Requirement.DELIVERY_COMPLETED,
    Requirement.REJECTION_REASON,
)


@dataclass(frozen=True)
class TransitionRule:
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    allowed_roles: FrozenSet[UserRole]
    requires: FrozenSet[Requirement] = frozenset()


@dataclass(frozen=True)
class WorkflowContext:
    document_verified: bool = False
    payment_confirmed: bool = False
    delivery_completed: bool = False
    has_rejection_reason: bool = False
    user_role: Optional[UserRole] = None

    def __post_init__(self):
        if self.user_role is not None and not isinstance(self.user_role, UserRole):
            try:
                role = UserRole(self.user_role)
            except ValueError:
                role = None
            object.__setattr__(self, "user_role", role)

    def satisfies(self, requirement: Requirement) -> bool:
        if requirement == Requirement.DOCUMENT_VERIFIED:
            return self.document_verified
        if requirement == Requirement.PAYMENT_CONFIRMED:
            return self.payment_confirmed
        if requirement == Requirement.DELIVERY_COMPLETED:
            return self.delivery_completed
        if requirement == Requirement.REJECTION_REASON:
            return self.has_rejection_reason
        raise ValueError(f"Unknown requirement: {requirement}")


@dataclass(frozen=True)
class WorkflowValidation:
    from_status: str
    to_status: str
    is_valid: bool
    blocked_reason: Optional[str] = None
    missing_requirements: Tuple[str, ...] = field(default_factory=tuple)

    def raise_for_failure(self) -> None:
        if self.is_valid:
            return
        if self.missing_requirements:
            raise MissingRequirementError(
                self.from_status, self.to_status, self.blocked_reason, self.missing_requirements
            )
        raise InvalidTransitionError(self.from_status, self.to_status, self.blocked_reason)


_ADMIN = frozenset({UserRole.ADMIN})
_ADMIN_OR_STAFF = frozenset({UserRole.ADMIN, UserRole.STAFF})

APPLICATION_WORKFLOW_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(ApplicationStatus.PENDING, ApplicationStatus.VERIFIED, _ADMIN_OR_STAFF,
                   frozenset({Requirement.DOCUMENT_VERIFIED})),
    TransitionRule(ApplicationStatus.PENDING, ApplicationStatus.REJECTED, _ADMIN,
                   frozenset({Requirement.REJECTION_REASON})),
    TransitionRule(ApplicationStatus.VERIFIED, ApplicationStatus.APPROVED, _ADMIN),
    TransitionRule(ApplicationStatus.VERIFIED, ApplicationStatus.REJECTED, _ADMIN,
                   frozenset({Requirement.REJECTION_REASON})),
    TransitionRule(ApplicationStatus.APPROVED, ApplicationStatus.COMPLETED, _ADMIN,
                   frozenset({Requirement.PAYMENT_CONFIRMED, Requirement.DELIVERY_COMPLETED})),
    TransitionRule(ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, _ADMIN,
                   frozenset({Requirement.REJECTION_REASON})),
    TransitionRule(ApplicationStatus.REJECTED, ApplicationStatus.PENDING, _ADMIN),
)

STATUS_LABELS = {
    ApplicationStatus.PENDING: "Submitted",
    ApplicationStatus.VERIFIED: "Documents Verified",
    ApplicationStatus.APPROVED: "Approved",
    ApplicationStatus.REJECTED: "Rejected",
    ApplicationStatus.COMPLETED: "Completed",
}

STATUS_DESCRIPTIONS = {
    ApplicationStatus.PENDING: "Application submitted, awaiting document verification",
    ApplicationStatus.VERIFIED: "Documents have been verified, awaiting admin approval",
    ApplicationStatus.APPROVED: "Application approved, awaiting payment and delivery",
    ApplicationStatus.REJECTED: "Application has been rejected",
    ApplicationStatus.COMPLETED: "Application fully completed",
}

WORKFLOW_STAGES = {
    ApplicationStatus.REJECTED: 0,
    ApplicationStatus.PENDING: 1,
    ApplicationStatus.VERIFIED: 2,
    ApplicationStatus.APPROVED: 3,
    ApplicationStatus.COMPLETED: 4,
}

for _name, _table in (("label", STATUS_LABELS), ("description", STATUS_DESCRIPTIONS), ("stage", WORKFLOW_STAGES)):
    _missing = set(ApplicationStatus) - set(_table)
    if _missing:
        raise RuntimeError(f"Application statuses without a {_name}: {sorted(s.value for s in _missing)}")


def _role_list(roles: FrozenSet[UserRole]) -> str:
    ordered = [r.value for r in UserRole if r in roles]
    return " or ".join(ordered)


class WorkflowEngine:
    def __init__(self, rules: Tuple[TransitionRule, ...] = APPLICATION_WORKFLOW_RULES):
        self._rules = tuple(rules)

    @property
    def rules(self) -> Tuple[TransitionRule, ...]:
        return self._rules

    def find_rule(self, from_status: ApplicationStatus, to_status: ApplicationStatus) -> Optional[TransitionRule]:
        for rule in self._rules:
            if rule.from_status == from_status and rule.to_status == to_status:
                return rule
        return None

    def validate_transition(self, from_status, to_status, context: WorkflowContext) -> WorkflowValidation:
        try:
            from_status = ApplicationStatus(from_status)
            to_status = ApplicationStatus(to_status)
        except ValueError:
            frm = str(getattr(from_status, "value", from_status))
            to = str(getattr(to_status, "value", to_status))
            return WorkflowValidation(
                frm,
                to,
                is_valid=False,
                blocked_reason=f'Cannot transition from "{frm}" to "{to}". Unknown application status.',
            )
        rule = self.find_rule(from_status, to_status)

        if rule is None:
            return WorkflowValidation(
                from_status.value,
                to_status.value,
                is_valid=False,
                blocked_reason=(
                    f'Cannot transition from "{from_status.value}" to "{to_status.value}". '
                    f"This transition is not allowed."
                ),
            )

        if context.user_role not in rule.allowed_roles:
            return WorkflowValidation(
                from_status.value,
                to_status.value,
                is_valid=False,
                blocked_reason=f"Only {_role_list(rule.allowed_roles)} can perform this action.",
            )

        missing: List[str] = [
            REQUIREMENT_MESSAGES[req]
            for req in REQUIREMENT_ORDER
            if req in rule.requires and not context.satisfies(req)
        ]
        if missing:
            return WorkflowValidation(
                from_status.value,
                to_status.value,
                is_valid=False,
                blocked_reason="Cannot complete this action due to missing requirements.",
                missing_requirements=tuple(missing),
            )

        return WorkflowValidation(from_status.value, to_status.value, is_valid=True)

    def can_transition(self, from_status, to_status, context: WorkflowContext) -> bool:
        return self.validate_transition(from_status, to_status, context).is_valid

    def get_next_allowed_statuses(self, current_status, user_role: Optional[UserRole]) -> List[ApplicationStatus]:
        current_status = ApplicationStatus(current_status)
        return [
            rule.to_status
            for rule in self._rules
            if rule.from_status == current_status and user_role in rule.allowed_roles
        ]


default_engine = WorkflowEngine()


def validate_transition(from_status, to_status, context: WorkflowContext) -> WorkflowValidation:
    return default_engine.validate_transition(from_status, to_status, context)


def get_next_allowed_statuses(current_status, user_role: Optional[UserRole]) -> List[ApplicationStatus]:
    return default_engine.get_next_allowed_statuses(current_status, user_role)


def get_workflow_stage(status) -> int:
    return WORKFLOW_STAGES[ApplicationStatus(status)]


def get_status_label(status) -> str:
    return STATUS_LABELS[ApplicationStatus(status)]


def get_status_description(status) -> str:
    return STATUS_DESCRIPTIONS[ApplicationStatus(status)]


def can_approve_application(document_verified: bool, user_role: Optional[UserRole]) -> WorkflowValidation:
    frm, to = ApplicationStatus.VERIFIED.value, ApplicationStatus.APPROVED.value
    if user_role != UserRole.ADMIN:
        return WorkflowValidation(frm, to, is_valid=False, blocked_reason="Only admin can approve applications")
    if not document_verified:
        return WorkflowValidation(frm, to, is_valid=False, blocked_reason="Documents must be verified before approval")
    return WorkflowValidation(frm, to, is_valid=True)


def can_complete_application(payment_confirmed: bool, delivery_completed: bool) -> WorkflowValidation:
    frm, to = ApplicationStatus.APPROVED.value, ApplicationStatus.COMPLETED.value
    missing = []
    if not payment_confirmed:
        missing.append("Payment confirmation required")
    if not delivery_completed:
        missing.append("Delivery must be marked as delivered")
    if missing:
        return WorkflowValidation(
            frm, to, is_valid=False, blocked_reason="Cannot mark as completed", missing_requirements=tuple(missing)
        )
    return WorkflowValidation(frm, to, is_valid=True)


def can_issue_policy(payment_confirmed: bool) -> WorkflowValidation:
    frm, to = ApplicationStatus.APPROVED.value, ApplicationStatus.COMPLETED.value
    if not payment_confirmed:
        return WorkflowValidation(
            frm, to, is_valid=False, blocked_reason="Cannot issue policy before payment is confirmed"
        )
    return WorkflowValidation(frm, to, is_valid=True)


def validate_status_transition(transitions, current_status, target_status, subject: str) -> None:
    """Check a simple status machine (delivery, payment, add-on) given as {status: frozenset(targets)}."""
    current_value = getattr(current_status, "value", current_status)
    target_value = getattr(target_status, "value", target_status)

    if current_value == target_value:
        raise InvalidTransitionError(
            current_value,
            target_value,
            f"{subject} is already in '{current_value}' status."
        )

    by_value = {getattr(k, "value", k): v for k, v in transitions.items()}
    valid_targets = {getattr(s, "value", s) for s in by_value.get(current_value, frozenset())}
    if target_value not in valid_targets:
        valid_list = ", ".join(f"'{s}'" for s in sorted(valid_targets)) if valid_targets else "none"
        raise InvalidTransitionError(
            current_value,
            target_value,
            f"Cannot transition {subject.lower()} from '{current_value}' to '{target_value}'. "
            f"Valid transitions from '{current_value}': {valid_list}."
        )
