"""Consultation domain schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


class PatientSelection(BaseModel):
    """Exactly one of the three identifiers is expected; checked by the resolver"""

    user_id: Optional[int] = None
    dependent_id: Optional[int] = None
    private_patient_id: Optional[int] = None


class ConsultationCreate(PatientSelection):
    service_id: int
    location_id: Optional[int] = None
    value: Decimal
    date: datetime
    notes: Optional[str] = None


class ConsultationUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied"""

    service_id: Optional[int] = None
    location_id: Optional[int] = None
    value: Optional[Decimal] = None
    date: Optional[datetime] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower() if v is not None else v


class ConsultationStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v):
        return v.strip().lower()


class RecurringConsultationCreate(PatientSelection):
    service_id: int
    location_id: Optional[int] = None
    value: Decimal
    start_date: date
    start_time: time
    timezone_offset: int = -180  # minutes east of UTC
    recurrence_type: str
    recurrence_interval: int = 1
    end_date: Optional[date] = None
    occurrences: Optional[int] = None
    notes: Optional[str] = None


class ConsultationResponse(BaseModel):
    id: int
    date: datetime
    status: str
    value: Decimal
    notes: Optional[str] = None
    professional_id: int
    professional_name: Optional[str] = None
    service_id: int
    service_name: Optional[str] = None
    location_id: Optional[int] = None
    location_name: Optional[str] = None
    user_id: Optional[int] = None
    dependent_id: Optional[int] = None
    private_patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    patient_type: str  # private | convenio
    is_dependent: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OccurrenceFailure(BaseModel):
    date: datetime
    detail: str


class RecurringConsultationResponse(BaseModel):
    created_count: int
    consultations: list[ConsultationResponse]
    failed_count: int
    failures: list[OccurrenceFailure]


class WhatsAppLinkResponse(BaseModel):
    whatsapp_url: str
