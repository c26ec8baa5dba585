"""
Webhook routes
Receives payment notifications from the PSP
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from config import settings
from models.webhook import SimulatedWebhookRequest, WebhookAck, WebhookPayload
from routes.dependencies import get_webhook_service
from services.exceptions import DomainError
from services.webhook_service import WebhookService, verify_webhook_secret

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/payment", response_model=WebhookAck)
def handle_payment_webhook(
    payload: WebhookPayload,
    x_webhook_secret: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    webhooks: WebhookService = Depends(get_webhook_service),
):
    """
    Handle a payment webhook

    The PSP authenticates with the shared secret, either raw in
    ``X-Webhook-Secret`` or as ``Authorization: Bearer <secret>``.
    Replayed and out-of-order deliveries are acknowledged without effect.
    """
    if not verify_webhook_secret(x_webhook_secret or authorization):
        logger.warning(
            f"Webhook rejected: invalid or missing secret "
            f"(transaction={payload.transaction_id})"
        )
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        webhooks.process_webhook(payload)
        return WebhookAck()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error handling webhook: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to process webhook")


@router.post("/test", response_model=WebhookAck)
def simulate_webhook(
    request: SimulatedWebhookRequest,
    webhooks: WebhookService = Depends(get_webhook_service),
):
    """
    Simulate a PSP webhook for a stored transaction

    Only available outside production.
    """
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")

    try:
        logger.info(
            f"Simulating webhook {request.event.value} for {request.transaction_id}"
        )
        payload = webhooks.build_payload(request.transaction_id, request.event)
        webhooks.process_webhook(payload)
        return WebhookAck()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Error simulating webhook: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to simulate webhook")
