"""
Audit log query and response schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from bookings.models.audit_log import AuditAction, AuditEntityType


class AuditLogResponse(BaseModel):
    """Schema for a single audit entry."""

    id: int
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: str
    user_id: Optional[int]
    details: Dict[str, Any] = {}
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogFilter(BaseModel):
    """Schema for audit log query parameters."""

    action: Optional[AuditAction] = Field(None, description="Filter by action")
    entity_type: Optional[AuditEntityType] = Field(None, description="Filter by entity type")
    entity_id: Optional[str] = Field(None, description="Filter by entity ID")
    user_id: Optional[int] = Field(None, gt=0, description="Filter by acting user")
    start_date: Optional[datetime] = Field(None, description="Entries created at or after")
    end_date: Optional[datetime] = Field(None, description="Entries created at or before")
    page: int = Field(1, ge=1, description="Page number")
    limit: int = Field(10, ge=1, le=100, description="Number of items per page")
    sort_order: str = Field("desc", pattern="^(asc|desc)$", description="Sort order by created_at")


class AuditLogListResponse(BaseModel):
    """Schema for a paginated audit log list."""

    items: List[AuditLogResponse] = Field(..., description="List of audit entries")
    total: int = Field(..., description="Total number of matching entries")
    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Number of items per page")
    total_pages: int = Field(..., description="Total number of pages")
