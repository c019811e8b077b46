"""
Webhook reconciler

Turns a MercadoPago payment notification into exactly one settlement. Each
notification moves through received -> fetched -> classified -> applied ->
acknowledged; a gateway lookup error fails it at fetched and a store error
fails it at applied, and both are answered with a non-2xx so the gateway
redelivers.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import ConvenioError, InvalidInput, NotFound, SettlementConflict
from ...services.notification_service import queue_notification
from ...shared.time_utils import utcnow
from ..scheduling_access.service import SchedulingAccessService
from .correlation import CorrelationToken, PaymentPurpose, parse_token
from .mercadopago_service import MercadoPagoService
from .repository import PAYMENT_MODELS, BillingRepository

logger = logging.getLogger(__name__)

SUBSCRIPTION_PERIOD = timedelta(days=365)


class ReconciliationStage(str, Enum):
    RECEIVED = "received"
    FETCHED = "fetched"
    CLASSIFIED = "classified"
    APPLIED = "applied"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


class ReconciliationResult(str, Enum):
    IGNORED = "ignored"  # not a payment notification
    NOT_APPROVED = "not_approved"
    UNKNOWN_PURPOSE = "unknown_purpose"
    NO_RECORD = "no_record"
    MISSING_TARGET = "missing_target"
    ALREADY_SETTLED = "already_settled"
    SETTLED = "settled"


@dataclass
class WebhookNotification:
    type: str
    data_id: Optional[str] = None


@dataclass
class ReconciliationOutcome:
    notification: WebhookNotification
    stage: ReconciliationStage = ReconciliationStage.RECEIVED
    result: Optional[ReconciliationResult] = None
    payment_status: Optional[str] = None
    token: Optional[str] = None
    purpose: Optional[PaymentPurpose] = None

    def advance(self, stage: ReconciliationStage) -> None:
        logger.debug(
            f"Notification {self.notification.data_id}: {self.stage.value} -> {stage.value}"
        )
        self.stage = stage

    def acknowledge(self, result: ReconciliationResult) -> "ReconciliationOutcome":
        self.result = result
        self.advance(ReconciliationStage.ACKNOWLEDGED)
        return self


def parse_notification(body: Any, query: Mapping) -> WebhookNotification:
    """
    Accept the JSON body form {"type": "payment", "data": {"id": ...}} or the
    legacy query forms ?topic=payment&id=... and ?type=payment&data.id=...

    Raises:
        InvalidInput: when no notification type can be found, or a payment
            notification carries a missing or non-numeric id
    """
    notification_type = None
    data_id = None

    if isinstance(body, dict) and (body.get("type") or body.get("topic")):
        notification_type = body.get("type") or body.get("topic")
        data = body.get("data")
        if isinstance(data, dict):
            data_id = data.get("id")
        data_id = data_id or query.get("data.id") or query.get("id")
    elif query.get("topic"):
        notification_type = query.get("topic")
        data_id = query.get("id")
    elif query.get("type"):
        notification_type = query.get("type")
        data_id = query.get("data.id")

    if not notification_type or not isinstance(notification_type, str):
        raise InvalidInput("Notification type is missing", field="type")
    if notification_type == "payment":
        if not data_id:
            raise InvalidInput("Payment id is missing", field="data.id")
        # Interpolated into the gateway lookup path
        if not (str(data_id).isascii() and str(data_id).isdigit()):
            raise InvalidInput("Payment id must be numeric", field="data.id")

    return WebhookNotification(
        type=notification_type, data_id=str(data_id) if data_id is not None else None
    )


class WebhookReconciler:
    """Fetches, classifies and settles gateway payment notifications"""

    def __init__(self, db: Session, gateway: MercadoPagoService):
        self.db = db
        self.gateway = gateway
        self._handlers = {
            PaymentPurpose.SUBSCRIPTION: self._activate_subscription,
            PaymentPurpose.DEPENDENT: self._activate_dependent,
            PaymentPurpose.PROFESSIONAL: self._confirm_professional_settlement,
            PaymentPurpose.AGENDA: self._grant_agenda_access,
        }

    async def handle(self, notification: WebhookNotification) -> ReconciliationOutcome:
        outcome = ReconciliationOutcome(notification=notification)

        if notification.type != "payment":
            logger.info(f"Ignoring MercadoPago notification of type '{notification.type}'")
            return outcome.acknowledge(ReconciliationResult.IGNORED)

        try:
            payment = await self.gateway.get_payment(notification.data_id)
        except ConvenioError:
            outcome.advance(ReconciliationStage.FAILED)
            logger.error(f"Could not fetch MercadoPago payment {notification.data_id}")
            raise
        outcome.advance(ReconciliationStage.FETCHED)

        outcome.payment_status = payment.get("status")
        outcome.token = payment.get("external_reference")
        if outcome.payment_status != "approved":
            logger.info(
                f"Payment {notification.data_id} ({outcome.token}) not approved: "
                f"{outcome.payment_status}"
            )
            return outcome.acknowledge(ReconciliationResult.NOT_APPROVED)

        parsed = parse_token(outcome.token)
        outcome.advance(ReconciliationStage.CLASSIFIED)
        if parsed is None:
            logger.warning(
                f"Approved payment {notification.data_id} has unrecognized "
                f"external_reference {outcome.token!r}"
            )
            return outcome.acknowledge(ReconciliationResult.UNKNOWN_PURPOSE)
        outcome.purpose = parsed.purpose

        try:
            result = self.settle(outcome.token, parsed, payment)
        except SQLAlchemyError:
            outcome.advance(ReconciliationStage.FAILED)
            raise
        outcome.advance(ReconciliationStage.APPLIED)
        return outcome.acknowledge(result)

    def settle(self, token: str, parsed: CorrelationToken, payment: dict) -> ReconciliationResult:
        """
        Settle one approved payment in a single transaction.

        The conditional update on the pending record is the first statement;
        whoever flips it wins and applies the side effects, every later
        delivery sees zero affected rows and becomes a no-op.
        """
        purpose = parsed.purpose
        mp_payment_id = str(payment.get("id"))
        payment_method = payment.get("payment_type_id") or payment.get("payment_method_id")

        try:
            claimed = BillingRepository.claim_pending_payment(
                self.db, purpose, token, mp_payment_id, payment_method, utcnow()
            )
            record = BillingRepository.get_payment_by_token(self.db, purpose, token)
            if record is None:
                self.db.rollback()
                logger.error(
                    f"No payment record for approved payment {mp_payment_id} "
                    f"with token {token}; needs operator investigation"
                )
                return ReconciliationResult.NO_RECORD
            if claimed == 0:
                raise SettlementConflict(f"Payment {token} already settled")

            model = PAYMENT_MODELS[purpose]
            owner_id = getattr(record, model.owner_column)
            self._handlers[purpose](owner_id, record)
            self.db.commit()

        except SettlementConflict:
            self.db.rollback()
            logger.info(f"Redelivered payment {mp_payment_id} ({token}) already settled; skipping")
            return ReconciliationResult.ALREADY_SETTLED
        except NotFound as e:
            self.db.rollback()
            logger.error(f"Settlement target for {token} missing: {e.message}")
            return ReconciliationResult.MISSING_TARGET
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Settlement of payment {mp_payment_id} ({token}) failed: {str(e)}")
            raise

        logger.info(f"Payment {mp_payment_id} settled for {purpose.value} token {token}")
        return ReconciliationResult.SETTLED

    def _activate_subscription(self, user_id: int, record) -> None:
        user = BillingRepository.get_user_by_id(self.db, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")

        user.subscription_status = "active"
        user.subscription_expiry = utcnow() + SUBSCRIPTION_PERIOD
        queue_notification(
            self.db,
            user.id,
            "Subscription activated",
            "Your subscription is active. You can now use every convenio service.",
            "success",
        )
        logger.info(f"Subscription activated for user {user.id} until {user.subscription_expiry}")

    def _activate_dependent(self, dependent_id: int, record) -> None:
        dependent = BillingRepository.get_dependent(self.db, dependent_id)
        if not dependent:
            raise NotFound(f"Dependent {dependent_id} not found")

        now = utcnow()
        dependent.subscription_status = "active"
        dependent.subscription_expiry = now + SUBSCRIPTION_PERIOD
        dependent.activated_at = now
        queue_notification(
            self.db,
            dependent.user_id,
            "Dependent activated",
            f"Your dependent {dependent.name} has been activated.",
            "success",
        )
        logger.info(f"Dependent {dependent.id} of member {dependent.user_id} activated")

    def _confirm_professional_settlement(self, professional_id: int, record) -> None:
        if not BillingRepository.get_user_by_id(self.db, professional_id):
            raise NotFound(f"Professional {professional_id} not found")

        queue_notification(
            self.db,
            professional_id,
            "Payment processed",
            f"Your settlement payment of R$ {record.amount} to the convenio was processed.",
            "success",
        )

    def _grant_agenda_access(self, professional_id: int, record) -> None:
        if not BillingRepository.get_user_by_id(self.db, professional_id):
            raise NotFound(f"Professional {professional_id} not found")

        SchedulingAccessService(self.db).apply_paid_grant(professional_id, record.duration_days)
