"""
SQLAlchemy ORM models for the tables authorization reads.

Only the columns authorization decisions depend on are mapped; the full
estimate schema (rooms, line items, photos...) lives elsewhere.
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


class OrganizationMemberRecord(Base):
    """A user's membership (and role) in one organization."""
    __tablename__ = "organization_members"

    id = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(32), nullable=False, default="viewer")
    status = Column(String(16), nullable=False, default="active")  # active, invited, suspended
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)

    # {"add": [...], "remove": [...]} applied on top of the role defaults
    permission_overrides = Column(JSONB, nullable=True)

    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_organization_members_user_org", "user_id", "organization_id", unique=True),
    )


class EstimateRecordModel(Base):
    """Ownership, assignment and workflow columns of an estimate."""
    __tablename__ = "estimates"

    id = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)  # creator / owner
    name = Column(String(255), nullable=True)
    assigned_pm_id = Column(String(64), nullable=True, index=True)
    assigned_estimator_id = Column(String(64), nullable=True, index=True)
    workflow_status = Column(String(32), nullable=True, default="draft")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VendorRecordModel(Base):
    """An external vendor invited to the vendor portal."""
    __tablename__ = "vendors"

    id = Column(String(64), primary_key=True)
    organization_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    access_token = Column(String(128), nullable=True, unique=True)
    token_expires_at = Column(DateTime, nullable=True)
    last_access_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
