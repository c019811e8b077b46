"""Consultation Lifecycle Manager and Recurrence Generator"""

from .recurrence import RecurrenceGenerator, RecurrenceRequest, RecurrenceResult
from .service import ConsultationService
from .transitions import ALLOWED_TRANSITIONS, is_transition_allowed

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ConsultationService",
    "RecurrenceGenerator",
    "RecurrenceRequest",
    "RecurrenceResult",
    "is_transition_allowed",
]
