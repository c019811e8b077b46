"""Scheduling access schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class GrantSchedulingAccessRequest(BaseModel):
    professional_id: int
    expires_at: datetime
    reason: Optional[str] = None


class RevokeSchedulingAccessRequest(BaseModel):
    professional_id: int


class SchedulingAccessResponse(BaseModel):
    id: int
    professional_id: int
    granted_by: Optional[int] = None
    starts_at: Optional[datetime] = None
    expires_at: datetime
    reason: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SchedulingAccessChangeResponse(BaseModel):
    message: str
    access: SchedulingAccessResponse


class ProfessionalSchedulingAccess(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    category_name: Optional[str] = None
    has_scheduling_access: bool
    access_expires_at: Optional[datetime] = None
    access_reason: Optional[str] = None
    access_granted_at: Optional[datetime] = None
    access_granted_by: Optional[str] = None


class SchedulingAccessStatus(BaseModel):
    has_scheduling_access: bool
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None
