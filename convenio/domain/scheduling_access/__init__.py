"""Scheduling Access Ledger"""

from .service import SchedulingAccessService, grant_is_effective

__all__ = ["SchedulingAccessService", "grant_is_effective"]
