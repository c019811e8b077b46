"""
Correlation tokens tie a gateway payment back to the record that issued it.

Format: {purpose}_{entityId}_{issuedAtMillis}; agenda tokens embed the
duration: agenda_{professionalId}_{durationDays}_{issuedAtMillis}.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PaymentPurpose(str, Enum):
    SUBSCRIPTION = "subscription"
    DEPENDENT = "dependent"
    PROFESSIONAL = "professional"
    AGENDA = "agenda"


@dataclass(frozen=True)
class CorrelationToken:
    purpose: PaymentPurpose
    entity_id: int
    issued_at_ms: int
    duration_days: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.purpose.value, str(self.entity_id)]
        if self.purpose is PaymentPurpose.AGENDA:
            parts.append(str(self.duration_days))
        parts.append(str(self.issued_at_ms))
        return "_".join(parts)


def now_millis() -> int:
    return int(time.time() * 1000)


def build_token(
    purpose: PaymentPurpose,
    entity_id: int,
    duration_days: Optional[int] = None,
    issued_at_ms: Optional[int] = None,
) -> str:
    """Generate a token once; the same string goes to the gateway and the record"""
    if purpose is PaymentPurpose.AGENDA and duration_days is None:
        raise ValueError("Agenda tokens require duration_days")
    token = CorrelationToken(
        purpose=purpose,
        entity_id=entity_id,
        issued_at_ms=issued_at_ms if issued_at_ms is not None else now_millis(),
        duration_days=duration_days if purpose is PaymentPurpose.AGENDA else None,
    )
    return str(token)


def parse_token(value: Optional[str]) -> Optional[CorrelationToken]:
    """Parse an external_reference; None when it is not one of ours"""
    if not value:
        return None

    parts = value.split("_")
    try:
        purpose = PaymentPurpose(parts[0])
    except ValueError:
        return None

    expected = 4 if purpose is PaymentPurpose.AGENDA else 3
    if len(parts) != expected or not all(p.isdigit() for p in parts[1:]):
        return None

    numbers = [int(p) for p in parts[1:]]
    if purpose is PaymentPurpose.AGENDA:
        entity_id, duration_days, issued_at_ms = numbers
        return CorrelationToken(purpose, entity_id, issued_at_ms, duration_days)
    entity_id, issued_at_ms = numbers
    return CorrelationToken(purpose, entity_id, issued_at_ms)
