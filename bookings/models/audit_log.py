"""
Audit trail model.
Entries reference entities by type and id only, so they outlive hard-deleted bookings.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON, Index
from enum import Enum as PyEnum

from bookings.models.booking import Base, utc_now


class AuditAction(str, PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    READ = "READ"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    OTHER = "OTHER"


class AuditEntityType(str, PyEnum):
    USER = "USER"
    EVENT = "EVENT"
    BOOKING = "BOOKING"
    CATEGORY = "CATEGORY"
    VENUE = "VENUE"
    TAG = "TAG"
    SETTING = "SETTING"
    OTHER = "OTHER"


class AuditLog(Base):
    """Who did what to which entity, and when."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    action = Column(Enum(AuditAction), nullable=False)
    entity_type = Column(Enum(AuditEntityType), nullable=False)
    entity_id = Column(String(64), nullable=False)
    user_id = Column(Integer, nullable=True)  # NULL for system actions
    details = Column(JSON, nullable=False, default=dict)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_action_date', 'action', 'created_at'),
        Index('idx_audit_user', 'user_id'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
