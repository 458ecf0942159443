"""
Audit sink for the Bookings Service.
Records who did what to which entity, and answers queries over the trail.
"""

from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
import logging

from bookings.core.exceptions import NotFoundError
from bookings.db.database import db_manager
from bookings.models.audit_log import AuditLog, AuditAction, AuditEntityType
from bookings.schemas.audit_log import AuditLogFilter

logger = logging.getLogger(__name__)


class AuditService:
    """Append-only audit trail."""

    def _build_entry(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id,
        user_id: Optional[int],
        details: Optional[Dict[str, Any]],
        ip_address: Optional[str],
        user_agent: Optional[str]
    ) -> AuditLog:
        return AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            user_id=user_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent
        )

    def record(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id,
        user_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session: Optional[Session] = None
    ) -> AuditLog:
        """
        Record an audit entry.

        When a session is given the entry joins that session's transaction and
        is committed (or rolled back) with it. Otherwise it is written in its own
        session and committed immediately.
        """
        entry = self._build_entry(action, entity_type, entity_id, user_id, details, ip_address, user_agent)

        if session is not None:
            session.add(entry)
            session.flush()
            return entry

        with db_manager.get_session() as own_session:
            own_session.add(entry)
            own_session.flush()

        logger.debug(f"Audit {action.value} recorded for {entity_type.value}:{entity_id}")
        return entry

    def find_all(self, filters: AuditLogFilter) -> Tuple[List[AuditLog], int]:
        """Return one page of matching entries and the total match count."""
        with db_manager.get_session() as session:
            query = session.query(AuditLog)

            if filters.action:
                query = query.filter(AuditLog.action == filters.action)
            if filters.entity_type:
                query = query.filter(AuditLog.entity_type == filters.entity_type)
            if filters.entity_id:
                query = query.filter(AuditLog.entity_id == filters.entity_id)
            if filters.user_id:
                query = query.filter(AuditLog.user_id == filters.user_id)
            if filters.start_date:
                query = query.filter(AuditLog.created_at >= filters.start_date)
            if filters.end_date:
                query = query.filter(AuditLog.created_at <= filters.end_date)

            total = query.count()

            if filters.sort_order == "asc":
                query = query.order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            else:
                query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

            items = query.offset((filters.page - 1) * filters.limit).limit(filters.limit).all()
            return items, total

    def find_by_id(self, log_id: int) -> AuditLog:
        """Return one entry; NotFoundError if absent."""
        with db_manager.get_session() as session:
            entry = session.query(AuditLog).filter(AuditLog.id == log_id).first()

        if not entry:
            raise NotFoundError(f"Audit log with ID {log_id} not found")
        return entry

    def find_by_user(self, user_id: int) -> List[AuditLog]:
        """Return every entry recorded for actions by one user, newest first."""
        with db_manager.get_session() as session:
            return session.query(AuditLog).filter(
                AuditLog.user_id == user_id
            ).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()

    def find_by_entity(self, entity_type: AuditEntityType, entity_id) -> List[AuditLog]:
        """Return every entry for one entity, newest first."""
        with db_manager.get_session() as session:
            return session.query(AuditLog).filter(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == str(entity_id)
            ).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).all()


# Global audit service instance
audit_service = AuditService()
