"""Billing router - checkout issuance, subscription status and the MercadoPago webhook"""

import json
import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ... import config
from ...auth import CurrentUser, require_roles
from ...config import CheckoutSettings, get_checkout_settings
from ...database import get_db
from ...errors import GatewayUnavailable, InvalidInput, NotFound
from ...rate_limiter import create_rate_limiter
from ...webhook_security import WebhookSignatureError, verify_mercadopago_signature
from .mercadopago_service import MercadoPagoService
from .payment_service import PaymentIntentService
from .repository import BillingRepository
from .schemas import (
    AgendaPaymentRequest,
    CheckoutResponse,
    ProfessionalPaymentRequest,
    SubscriptionStatusResponse,
    WebhookAck,
)
from .webhook_service import WebhookReconciler, parse_notification

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])

webhook_rate_limit = create_rate_limiter(
    limit=config.WEBHOOK_RATE_LIMIT,
    window_seconds=60,
    key_prefix="webhook_mercadopago",
    use_ip=False,
)


@lru_cache
def get_mercadopago_service() -> MercadoPagoService:
    return MercadoPagoService(sandbox=get_checkout_settings().is_sandbox)


def get_webhook_secret() -> Optional[str]:
    return config.MP_WEBHOOK_SECRET


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: MercadoPagoService = Depends(get_mercadopago_service),
    settings: CheckoutSettings = Depends(get_checkout_settings),
) -> PaymentIntentService:
    """Dependency injection for PaymentIntentService"""
    return PaymentIntentService(db, gateway, settings)


def get_webhook_reconciler(
    db: Session = Depends(get_db),
    gateway: MercadoPagoService = Depends(get_mercadopago_service),
) -> WebhookReconciler:
    return WebhookReconciler(db, gateway)


# ============================================================================
# PAYMENT INTENTS
# ============================================================================


@router.post("/create-subscription", response_model=CheckoutResponse)
async def create_subscription_payment(
    current: CurrentUser = Depends(require_roles("client")),
    service: PaymentIntentService = Depends(get_payment_service),
):
    """Start checkout for the member's own subscription"""
    return CheckoutResponse(**await service.subscription(current.user))


@router.post("/dependents/{dependent_id}/create-payment", response_model=CheckoutResponse)
async def create_dependent_payment(
    dependent_id: int,
    current: CurrentUser = Depends(require_roles("client")),
    service: PaymentIntentService = Depends(get_payment_service),
):
    return CheckoutResponse(**await service.dependent_activation(current.user, dependent_id))


@router.post("/professional/create-payment", response_model=CheckoutResponse)
async def create_professional_payment(
    data: ProfessionalPaymentRequest,
    current: CurrentUser = Depends(require_roles("professional")),
    service: PaymentIntentService = Depends(get_payment_service),
):
    """Start checkout for a professional's settlement to the convenio"""
    return CheckoutResponse(**await service.professional_settlement(current.user, data.amount))


@router.post("/professional/create-agenda-payment", response_model=CheckoutResponse)
async def create_agenda_payment(
    data: Optional[AgendaPaymentRequest] = Body(None),
    current: CurrentUser = Depends(require_roles("professional")),
    service: PaymentIntentService = Depends(get_payment_service),
):
    duration_days = data.duration_days if data else None
    return CheckoutResponse(**await service.agenda_access(current.user, duration_days))


@router.get("/users/{user_id}/subscription-status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: int,
    current: CurrentUser = Depends(require_roles("client", "admin")),
    service: PaymentIntentService = Depends(get_payment_service),
):
    if current.role == "client" and current.id != user_id:
        raise NotFound("User not found")

    user = BillingRepository.get_user_by_id(service.db, user_id)
    if not user:
        raise NotFound("User not found")
    return SubscriptionStatusResponse(**service.subscription_status(user))


# ============================================================================
# WEBHOOK
# ============================================================================


@router.post("/webhook/mercadopago", response_model=WebhookAck)
async def mercadopago_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
    secret: Optional[str] = Depends(get_webhook_secret),
    _: None = Depends(webhook_rate_limit),
):
    """
    Receive a MercadoPago payment notification.

    2xx means "processed or deliberately ignored"; 502/500 make the gateway
    redeliver after a lookup or store failure.
    """
    raw_body = await request.body()
    body = None
    if raw_body:
        try:
            body = json.loads(raw_body)
        except ValueError:
            logger.warning("MercadoPago webhook body is not valid JSON")

    try:
        notification = parse_notification(body, request.query_params)
    except InvalidInput as e:
        logger.warning(f"Unparseable MercadoPago notification: {e.message}")
        return JSONResponse(status_code=400, content=e.to_dict())

    if secret:
        try:
            verify_mercadopago_signature(
                secret,
                request.headers.get("x-signature"),
                request.headers.get("x-request-id"),
                notification.data_id,
            )
        except WebhookSignatureError as e:
            logger.warning(f"Rejected MercadoPago notification {notification.data_id}: {e}")
            return JSONResponse(status_code=401, content={"detail": "Invalid signature"})

    try:
        outcome = await reconciler.handle(notification)
    except GatewayUnavailable as e:
        return JSONResponse(status_code=502, content={"detail": e.message, "code": e.code})
    except SQLAlchemyError:
        return JSONResponse(
            status_code=500, content={"detail": "Settlement failed", "code": "settlement_failed"}
        )

    logger.info(
        f"MercadoPago notification {notification.data_id} acknowledged: {outcome.result.value}"
    )
    return WebhookAck()
