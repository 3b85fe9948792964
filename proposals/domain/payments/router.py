"""Payment processor webhook endpoint"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...email_service import MessageDispatcher, get_message_dispatcher
from ...shared.http import raise_for_result
from ...webhook_security import verify_payment_webhook
from .service import PaymentWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def get_payment_service(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_message_dispatcher),
) -> PaymentWebhookService:
    return PaymentWebhookService(db, dispatcher)


@router.post("/payments")
async def payment_webhook(
    request: Request, service: PaymentWebhookService = Depends(get_payment_service)
):
    """Receive payment-intent updates from the payment processor"""
    raw_body = await verify_payment_webhook(request)

    try:
        event = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from None
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    logger.info(f"📥 Payment webhook received: {event.get('type')}")
    result = await service.handle_event(event)
    raise_for_result(result)
    return result.value
