"""Domain error taxonomy, rendered to HTTP by the handler in main.py"""

from typing import Optional


class ConvenioError(Exception):
    """Base class for every business error raised by the engine"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


class InvalidInput(ConvenioError):
    status_code = 400
    code = "invalid_input"


class InvalidPatientSelection(InvalidInput):
    code = "invalid_patient_selection"

    def __init__(self, message: str = "Exactly one patient must be specified"):
        super().__init__(message, field="patient")


class NotFound(ConvenioError):
    """Missing or not owned by the caller; both look the same from outside"""

    status_code = 404
    code = "not_found"


class NoActiveGrant(NotFound):
    code = "no_active_grant"


class SubscriptionInactive(ConvenioError):
    status_code = 400
    code = "subscription_inactive"


class SubscriptionAlreadyActive(ConvenioError):
    status_code = 400
    code = "subscription_already_active"


class InvalidTransition(ConvenioError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change consultation status from '{current}' to '{requested}'",
            field="status",
        )
        self.current = current
        self.requested = requested


class GatewayUnavailable(ConvenioError):
    status_code = 503
    code = "gateway_unavailable"


class SettlementConflict(ConvenioError):
    """Payment already settled; callers treat it as a successful no-op"""

    status_code = 200
    code = "already_settled"
