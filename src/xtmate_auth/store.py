"""Persistence collaborator for authorization.

Implements AuthorizationStore using SQLAlchemy async sessions over the
organization_members and estimates tables. Any database failure surfaces as
DependencyUnavailable so the caller answers 503, never 403.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from .context import AuthContext, MembershipRecord
from .errors import DependencyUnavailable
from .estimate_access import PM_ACTIVE_STATUSES, EstimateRecord
from .models import EstimateRecordModel, OrganizationMemberRecord
from .permissions import Permission

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"


@runtime_checkable
class AuthorizationStore(Protocol):
    """Read access to memberships and estimates."""

    async def get_membership(
        self,
        user_id: str,
        organization_id: Optional[str] = None,
    ) -> Optional[MembershipRecord]:
        ...

    async def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        ...


class SQLAlchemyAuthorizationStore:
    """
    AuthorizationStore backed by SQLAlchemy.

    Each lookup opens its own short-lived session from the factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_membership(
        self,
        user_id: str,
        organization_id: Optional[str] = None,
    ) -> Optional[MembershipRecord]:
        """
        Get the caller's active membership.

        Args:
            user_id: Identity provider user ID.
            organization_id: Organization selected in the session. If None,
                the earliest-joined active membership is used.

        Returns:
            MembershipRecord or None if the user has no active membership.

        Raises:
            DependencyUnavailable: If the database cannot be queried.
        """
        query = select(OrganizationMemberRecord).where(
            OrganizationMemberRecord.user_id == str(user_id),
            OrganizationMemberRecord.status == ACTIVE_STATUS,
        )
        if organization_id:
            query = query.where(OrganizationMemberRecord.organization_id == str(organization_id))
        query = query.order_by(OrganizationMemberRecord.joined_at.asc()).limit(1)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                row = result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Membership lookup failed for user {user_id}: {e}")
            raise DependencyUnavailable("Membership lookup failed") from e

        if row is None:
            return None
        return self._row_to_membership(row)

    async def get_estimate(self, estimate_id: str) -> Optional[EstimateRecord]:
        """
        Get the authorization-relevant columns of an estimate.

        Raises:
            DependencyUnavailable: If the database cannot be queried.
        """
        query = select(EstimateRecordModel).where(EstimateRecordModel.id == str(estimate_id))
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                row = result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Estimate lookup failed for {estimate_id}: {e}")
            raise DependencyUnavailable("Estimate lookup failed") from e

        if row is None:
            return None
        return self._row_to_estimate(row)

    @staticmethod
    def _row_to_membership(row: OrganizationMemberRecord) -> MembershipRecord:
        return MembershipRecord(
            user_id=row.user_id,
            organization_id=row.organization_id,
            role=row.role,
            status=row.status,
            display_name=row.display_name,
            email=row.email,
            permission_overrides=row.permission_overrides,
            joined_at=row.joined_at,
        )

    @staticmethod
    def _row_to_estimate(row: EstimateRecordModel) -> EstimateRecord:
        return EstimateRecord(
            id=row.id,
            organization_id=row.organization_id,
            owner_id=row.user_id,
            assigned_pm_id=row.assigned_pm_id,
            assigned_estimator_id=row.assigned_estimator_id,
            workflow_status=row.workflow_status,
        )


def estimate_visibility_clause(context: Optional[AuthContext]) -> ColumnElement[bool]:
    """
    Where-clause restricting an estimate list query to what the caller may see.

    Usage:
        query = select(EstimateRecordModel).where(estimate_visibility_clause(ctx))

    Matches exactly the estimates get_estimate_access_level resolves to
    read_only or better, so lists never show what a detail view would refuse.
    """
    if context is None:
        return false()

    if context.has_permission(Permission.PLATFORM_FULL_ACCESS):
        return true()

    if context.role is None:
        return false()

    in_organization = EstimateRecordModel.organization_id == context.organization_id

    if context.has_any_permission([Permission.ESTIMATES_READ_TEAM, Permission.ESTIMATES_UPDATE_ANY]):
        return in_organization

    user_id = context.user_id
    conditions = [
        EstimateRecordModel.assigned_estimator_id == user_id,
        and_(
            EstimateRecordModel.assigned_pm_id == user_id,
            EstimateRecordModel.workflow_status.in_([s.value for s in PM_ACTIVE_STATUSES]),
        ),
    ]
    if context.has_any_permission([Permission.ESTIMATES_READ_OWN, Permission.ESTIMATES_UPDATE_OWN]):
        conditions.append(EstimateRecordModel.user_id == user_id)
    if context.has_permission(Permission.ESTIMATES_READ_ASSIGNED):
        conditions.append(EstimateRecordModel.assigned_pm_id == user_id)

    return and_(in_organization, or_(*conditions))
