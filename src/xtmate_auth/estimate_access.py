"""
Estimate Access Levels

While permissions.py defines what each role may do in general, this module
decides what a caller may do with ONE estimate, based on how they relate to
it (owner, assigned PM, assigned estimator) and where it is in the PM to
estimator workflow.

Levels, most to least restrictive:
    none            - Not visible
    read_only       - Visible, no writes
    limited_update  - Only LimitedUpdateField fields may change
    full            - Any field may change

Resolution order (first match wins):
    1. Global bypass permission                       -> full
    2. Unrecognized role                              -> none
       Different (or missing) organization            -> none
    3. Assigned PM while the estimate is in PM phase  -> limited_update
    4. Assigned estimator / organization-wide manage  -> full
       Owner with estimates.update_own                -> full
    5. Organization-wide read                         -> read_only
       Assigned or owner with matching read grant     -> read_only
    6. Anything else                                  -> none

The resolver never raises; missing or ambiguous data resolves to none.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional

from .context import AuthContext
from .permissions import Permission

logger = logging.getLogger(__name__)


class EstimateAccessLevel(str, Enum):
    """Coarse access classification for one (caller, estimate) pair."""
    NONE = "none"
    READ_ONLY = "read_only"
    LIMITED_UPDATE = "limited_update"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def at_least(self, other: "EstimateAccessLevel") -> bool:
        return self.rank >= other.rank


_LEVEL_RANK = {
    EstimateAccessLevel.NONE: 0,
    EstimateAccessLevel.READ_ONLY: 1,
    EstimateAccessLevel.LIMITED_UPDATE: 2,
    EstimateAccessLevel.FULL: 3,
}


class WorkflowStatus(str, Enum):
    """
    Where an estimate is in the PM -> estimator workflow.

    Maps to estimates.workflow_status.
    """
    DRAFT = "draft"                          # Initial creation
    PM_ASSIGNED = "pm_assigned"              # PM has been assigned
    PM_IN_PROGRESS = "pm_in_progress"        # PM is at site capturing data
    PM_COMPLETED = "pm_completed"            # PM has finished site capture
    ESTIMATOR_REVIEW = "estimator_review"    # Estimator is building the estimate
    READY_FOR_EXPORT = "ready_for_export"    # Complete, ready for ESX export
    EXPORTED = "exported"                    # ESX has been generated
    SUBMITTED = "submitted"                  # Submitted to carrier


PM_ACTIVE_STATUSES = frozenset({
    WorkflowStatus.PM_ASSIGNED,
    WorkflowStatus.PM_IN_PROGRESS,
})


def is_pm_active(workflow_status: Any) -> bool:
    """Is the estimate in the phase where the assigned PM is capturing data?"""
    if workflow_status is None:
        return False
    raw = workflow_status.value if hasattr(workflow_status, "value") else workflow_status
    try:
        return WorkflowStatus(raw) in PM_ACTIVE_STATUSES
    except ValueError:
        return False


class LimitedUpdateField(str, Enum):
    """
    Estimate fields a limited_update holder may change.

    Values are the field names used in API payloads.
    """
    NOTES = "notes"
    INSURED_NAME = "insuredName"
    INSURED_PHONE = "insuredPhone"
    INSURED_EMAIL = "insuredEmail"
    ADJUSTER_NAME = "adjusterName"
    ADJUSTER_PHONE = "adjusterPhone"
    ADJUSTER_EMAIL = "adjusterEmail"
    STATUS = "status"


LIMITED_UPDATE_FIELDS = frozenset(f.value for f in LimitedUpdateField)

# Fields only a full access holder may change
FULL_ACCESS_FIELDS = frozenset({
    "name",
    "jobType",
    "propertyAddress",
    "propertyCity",
    "propertyState",
    "propertyZip",
    "claimNumber",
    "policyNumber",
    "carrierId",
    "dateOfLoss",
    "workflowStatus",
    "assignedPmId",
    "assignedEstimatorId",
})

if LIMITED_UPDATE_FIELDS & FULL_ACCESS_FIELDS:
    raise RuntimeError(
        "Limited-update fields overlap full-access fields: "
        f"{', '.join(sorted(LIMITED_UPDATE_FIELDS & FULL_ACCESS_FIELDS))}"
    )


@dataclass(frozen=True)
class EstimateRecord:
    """The estimate columns authorization decisions depend on."""
    id: str
    organization_id: Optional[str]
    owner_id: Optional[str] = None
    assigned_pm_id: Optional[str] = None
    assigned_estimator_id: Optional[str] = None
    workflow_status: Optional[str] = None


class EstimateAction(str, Enum):
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class UpdateCheck:
    """Outcome of checking a multi-field update. All fields pass or none do."""
    allowed: bool
    access_level: EstimateAccessLevel
    disallowed_fields: tuple[str, ...] = ()


def _same_user(left: Any, right: Any) -> bool:
    if not left or not right:
        return False
    return str(left) == str(right)


def get_estimate_access_level(
    context: Optional[AuthContext],
    estimate: Optional[EstimateRecord],
) -> EstimateAccessLevel:
    """
    Compute the caller's access level for an estimate.

    Args:
        context: Resolved auth context (None = unauthenticated)
        estimate: Estimate record (None = not found)

    Returns:
        EstimateAccessLevel, never raises.

    Examples:
        >>> get_estimate_access_level(None, None)
        <EstimateAccessLevel.NONE: 'none'>
    """
    if context is None or estimate is None:
        return EstimateAccessLevel.NONE

    # 1. Platform support can see and fix anything
    if context.has_permission(Permission.PLATFORM_FULL_ACCESS):
        return EstimateAccessLevel.FULL

    # 2. Unrecognized roles get nothing, not even through assignment
    if context.role is None:
        return EstimateAccessLevel.NONE

    # Strict tenant isolation, regardless of role
    if not estimate.organization_id or str(estimate.organization_id) != str(context.organization_id):
        return EstimateAccessLevel.NONE

    user_id = context.user_id
    is_assigned_pm = _same_user(estimate.assigned_pm_id, user_id)
    is_assigned_estimator = _same_user(estimate.assigned_estimator_id, user_id)
    is_owner = _same_user(estimate.owner_id, user_id)

    # 3. Assigned PM during capture only touches capture fields
    if is_assigned_pm and is_pm_active(estimate.workflow_status):
        return EstimateAccessLevel.LIMITED_UPDATE

    # 4. Full edit
    if is_assigned_estimator:
        return EstimateAccessLevel.FULL
    if context.has_permission(Permission.ESTIMATES_UPDATE_ANY):
        return EstimateAccessLevel.FULL
    if is_owner and context.has_permission(Permission.ESTIMATES_UPDATE_OWN):
        return EstimateAccessLevel.FULL

    # 5. Read
    if context.has_permission(Permission.ESTIMATES_READ_TEAM):
        return EstimateAccessLevel.READ_ONLY
    if is_assigned_pm and context.has_permission(Permission.ESTIMATES_READ_ASSIGNED):
        return EstimateAccessLevel.READ_ONLY
    if is_owner and context.has_permission(Permission.ESTIMATES_READ_OWN):
        return EstimateAccessLevel.READ_ONLY

    return EstimateAccessLevel.NONE


def _field_allowed(access_level: EstimateAccessLevel, field_name: Any) -> bool:
    if access_level == EstimateAccessLevel.FULL:
        return True
    if access_level == EstimateAccessLevel.LIMITED_UPDATE:
        raw = field_name.value if hasattr(field_name, "value") else field_name
        return raw in LIMITED_UPDATE_FIELDS
    return False


def can_perform_limited_update(
    context: Optional[AuthContext],
    estimate: Optional[EstimateRecord],
    field_name: Any,
) -> bool:
    """
    Can the caller change this one field?

    True for full access, or for limited_update access when the field is a
    LimitedUpdateField. Everything else is False.
    """
    return _field_allowed(get_estimate_access_level(context, estimate), field_name)


def check_estimate_update(
    context: Optional[AuthContext],
    estimate: Optional[EstimateRecord],
    fields: Iterable[Any],
) -> UpdateCheck:
    """
    Check every field of a multi-field update.

    The update is allowed only if every field passes; one bad field rejects
    the whole update. An empty update still needs write access.
    """
    access_level = get_estimate_access_level(context, estimate)
    if isinstance(fields, (str, Enum)):
        fields = [fields]
    field_names = [f.value if hasattr(f, "value") else str(f) for f in fields]

    if not access_level.at_least(EstimateAccessLevel.LIMITED_UPDATE):
        return UpdateCheck(
            allowed=False,
            access_level=access_level,
            disallowed_fields=tuple(field_names),
        )

    disallowed = tuple(name for name in field_names if not _field_allowed(access_level, name))
    if disallowed:
        logger.info(
            f"Rejected update of estimate {estimate.id} by user {context.user_id}: "
            f"fields not allowed at {access_level.value}: {', '.join(disallowed)}"
        )
    return UpdateCheck(
        allowed=not disallowed,
        access_level=access_level,
        disallowed_fields=disallowed,
    )


def get_updatable_fields(access_level: EstimateAccessLevel) -> frozenset[str]:
    """Field names a holder of this access level may change."""
    if access_level == EstimateAccessLevel.FULL:
        return LIMITED_UPDATE_FIELDS | FULL_ACCESS_FIELDS
    if access_level == EstimateAccessLevel.LIMITED_UPDATE:
        return LIMITED_UPDATE_FIELDS
    return frozenset()


def can_access_estimate(
    context: Optional[AuthContext],
    estimate: Optional[EstimateRecord],
    action: EstimateAction,
) -> bool:
    """
    Coarse read/update/delete check for an estimate.

    Deleting additionally needs a delete grant: estimates.delete_any, or
    estimates.delete_own on an estimate the caller created.
    """
    access_level = get_estimate_access_level(context, estimate)

    if action == EstimateAction.READ:
        return access_level.at_least(EstimateAccessLevel.READ_ONLY)

    if action == EstimateAction.UPDATE:
        return access_level == EstimateAccessLevel.FULL

    if action == EstimateAction.DELETE:
        if access_level != EstimateAccessLevel.FULL:
            return False
        if context.has_permission(Permission.PLATFORM_FULL_ACCESS):
            return True
        if context.has_permission(Permission.ESTIMATES_DELETE_ANY):
            return True
        return _same_user(estimate.owner_id, context.user_id) and context.has_permission(
            Permission.ESTIMATES_DELETE_OWN
        )

    # Unknown action: deny by default
    return False
