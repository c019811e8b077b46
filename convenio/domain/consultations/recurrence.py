"""
Recurring consultation generator

Expands a daily or weekly series into individual consultations. Each
occurrence is created in its own transaction, so a failure on one date is
recorded and the rest of the series still goes through.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import ConvenioError, InvalidInput
from ...models import Consultation
from ...shared.time_utils import is_valid_offset, local_to_utc, utc_to_local_date
from .service import ConsultationService

logger = logging.getLogger(__name__)

RECURRENCE_TYPES = ("daily", "weekly")
MAX_OCCURRENCES = 365
MAX_RECURRENCE_INTERVAL = 365
DEFAULT_TIMEZONE_OFFSET_MINUTES = -180  # Brasília


@dataclass
class RecurrenceRequest:
    service_id: int
    value: Decimal
    start_date: date
    start_time: time
    recurrence_type: str
    member_id: Optional[int] = None
    dependent_id: Optional[int] = None
    private_patient_id: Optional[int] = None
    location_id: Optional[int] = None
    timezone_offset_minutes: int = DEFAULT_TIMEZONE_OFFSET_MINUTES
    recurrence_interval: int = 1
    end_date: Optional[date] = None
    occurrences: Optional[int] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.recurrence_type not in RECURRENCE_TYPES:
            raise InvalidInput(
                f"recurrence_type must be one of: {', '.join(RECURRENCE_TYPES)}",
                field="recurrence_type",
            )
        interval = self.recurrence_interval
        if interval is None or not 1 <= interval <= MAX_RECURRENCE_INTERVAL:
            raise InvalidInput(
                f"recurrence_interval must be between 1 and {MAX_RECURRENCE_INTERVAL}",
                field="recurrence_interval",
            )
        if self.occurrences is None and self.end_date is None:
            raise InvalidInput(
                "Either occurrences or end_date must be provided", field="occurrences"
            )
        if self.occurrences is not None and not 1 <= self.occurrences <= MAX_OCCURRENCES:
            raise InvalidInput(
                f"occurrences must be between 1 and {MAX_OCCURRENCES}", field="occurrences"
            )
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidInput("end_date cannot be before start_date", field="end_date")
        if not is_valid_offset(self.timezone_offset_minutes):
            raise InvalidInput("timezone_offset is out of range", field="timezone_offset")

    @property
    def step(self) -> timedelta:
        days = self.recurrence_interval * (7 if self.recurrence_type == "weekly" else 1)
        return timedelta(days=days)


@dataclass
class OccurrenceFailure:
    date: datetime
    detail: str


@dataclass
class RecurrenceResult:
    consultations: list[Consultation] = field(default_factory=list)
    failures: list[OccurrenceFailure] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.consultations)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def occurrence_dates(request: RecurrenceRequest) -> list[datetime]:
    """UTC instants of the series, honoring occurrences and the local end_date"""
    limit = request.occurrences or MAX_OCCURRENCES
    offset = request.timezone_offset_minutes
    try:
        current = local_to_utc(request.start_date, request.start_time, offset)
    except OverflowError:
        raise InvalidInput("start_date is out of range", field="start_date")

    dates = []
    try:
        while len(dates) < limit:
            if request.end_date is not None and utc_to_local_date(current, offset) > request.end_date:
                break
            dates.append(current)
            current += request.step
    except OverflowError:
        # Series runs past the last representable date; keep what fits
        logger.warning(f"Recurring series truncated after {current.isoformat()}: date out of range")
    return dates


class RecurrenceGenerator:
    def __init__(self, db: Session):
        self.db = db
        self.consultations = ConsultationService(db)

    def generate(self, professional_id: int, request: RecurrenceRequest) -> RecurrenceResult:
        request.validate()
        patient = self.consultations.patients.resolve(
            member_id=request.member_id,
            dependent_id=request.dependent_id,
            private_patient_id=request.private_patient_id,
        )
        self.consultations.check_patient(professional_id, patient)

        result = RecurrenceResult()
        for when in occurrence_dates(request):
            try:
                consultation = self.consultations.create(
                    professional_id,
                    patient,
                    service_id=request.service_id,
                    value=request.value,
                    when=when,
                    location_id=request.location_id,
                    notes=request.notes,
                )
            except (ConvenioError, SQLAlchemyError) as e:
                detail = e.message if isinstance(e, ConvenioError) else str(e)
                logger.error(
                    f"Recurring occurrence at {when.isoformat()} failed for professional "
                    f"{professional_id}: {detail}"
                )
                result.failures.append(OccurrenceFailure(date=when, detail=detail))
                continue
            result.consultations.append(consultation)

        logger.info(
            f"Recurring series for professional {professional_id}: "
            f"{result.created_count} created, {result.failed_count} failed"
        )
        return result
