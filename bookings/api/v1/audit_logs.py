"""
Audit log endpoints available to every authenticated user.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from bookings.api.dependencies import get_current_identity, get_audit_service
from bookings.schemas.auth import Identity
from bookings.schemas.audit_log import AuditLogResponse
from bookings.services.audit_service import AuditService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("/me", response_model=List[AuditLogResponse])
async def get_my_audit_logs(
    identity: Identity = Depends(get_current_identity),
    audit: AuditService = Depends(get_audit_service)
):
    """Get the audit entries for the caller's own actions, newest first."""
    try:
        entries = audit.find_by_user(identity.user_id)
        return [AuditLogResponse.model_validate(entry) for entry in entries]

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get audit logs for user {identity.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve audit logs"
        )
