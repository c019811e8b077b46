"""Patient Reference Resolver"""

from .resolver import (
    DEPENDENT,
    MEMBER,
    PRIVATE,
    PatientReference,
    PatientReferenceResolver,
    effective_subscription_status,
)

__all__ = [
    "DEPENDENT",
    "MEMBER",
    "PRIVATE",
    "PatientReference",
    "PatientReferenceResolver",
    "effective_subscription_status",
]
