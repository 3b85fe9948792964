"""
Payment webhook handling

The processor reports payment-intent state changes; the document and
recipient are identified by documentId/recipientId metadata on the intent.
A succeeded payment may be the last requirement of a document, so it feeds
the completion evaluator in the same transaction.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models import Payment, Recipient
from ..documents.completion import (
    SUCCEEDED,
    CompletionEvaluator,
    completion_notice,
    dispatch_best_effort,
)
from ..documents.events import PaymentFailed, PaymentRefunded, PaymentSucceeded, record_event
from ..documents.expiration import expire_document
from ..documents.lifecycle import ACTIVE_STATUSES
from ..documents.repository import DocumentRepository
from ..documents.results import OperationResult

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_PROCESSING = "payment_intent.processing"
CHARGE_REFUNDED = "charge.refunded"

HANDLED_EVENTS = (PAYMENT_SUCCEEDED, PAYMENT_FAILED, PAYMENT_PROCESSING, CHARGE_REFUNDED)


class PaymentWebhookService:
    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.dispatcher = dispatcher

    def _get_or_create_payment(
        self, document, recipient: Optional[Recipient], intent_id: str, amount: int, currency: str
    ) -> Payment:
        payment = self.db.query(Payment).filter(Payment.payment_intent_id == intent_id).first()
        if payment:
            return payment
        payment = Payment(
            document_id=document.id,
            recipient_id=recipient.id if recipient else None,
            payment_intent_id=intent_id,
            amount=amount or 0,
            currency=currency or "usd",
            status="pending",
        )
        document.payments.append(payment)
        return payment

    async def handle_event(
        self, event: dict[str, Any], now: Optional[datetime] = None
    ) -> OperationResult[dict[str, Any]]:
        """
        Apply one webhook event. Unknown event types and intents without
        document metadata are acknowledged and ignored.
        """
        now = now or datetime.utcnow()
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type not in HANDLED_EVENTS:
            logger.info(f"ℹ️ Ignoring payment webhook event: {event_type}")
            return OperationResult.success({"received": True, "ignored": True})

        metadata = obj.get("metadata") or {}
        document_id = metadata.get("documentId")
        recipient_id = metadata.get("recipientId")
        intent_id = obj.get("payment_intent") if event_type == CHARGE_REFUNDED else obj.get("id")

        if not document_id or not intent_id:
            logger.warning(f"⚠️ Payment webhook {event_type} without document metadata")
            return OperationResult.success({"received": True, "ignored": True})

        document = DocumentRepository.get_document_for_update(self.db, document_id)
        if not document:
            self.db.rollback()
            logger.warning(f"⚠️ Payment webhook for unknown document {document_id}")
            return OperationResult.success({"received": True, "ignored": True})

        recipient = None
        if recipient_id:
            recipient = (
                self.db.query(Recipient)
                .filter(Recipient.id == recipient_id, Recipient.document_id == document.id)
                .first()
            )

        amount = obj.get("amount_received") or obj.get("amount") or 0
        currency = obj.get("currency") or "usd"
        completed = False
        payment_collected = False

        try:
            # A deadline that passed before this event is applied first
            expire_document(self.db, document, now)

            payment = self._get_or_create_payment(document, recipient, intent_id, amount, currency)

            if event_type == PAYMENT_SUCCEEDED:
                if payment.status == SUCCEEDED:
                    self.db.rollback()
                    logger.info(f"ℹ️ Payment {intent_id} already recorded as succeeded")
                    return OperationResult.success({"received": True, "duplicate": True})

                payment.status = SUCCEEDED
                payment.amount = amount
                payment.currency = currency
                self._mirror_on_recipient(recipient, SUCCEEDED, intent_id, amount)
                record_event(
                    self.db,
                    document.id,
                    PaymentSucceeded(payment_intent_id=intent_id, amount=amount, currency=currency),
                    recipient_id=recipient.id if recipient else None,
                    created_at=now,
                )
                logger.info(f"💰 Payment {intent_id} succeeded for document {document.id}")

                if document.status in ACTIVE_STATUSES:
                    completion = CompletionEvaluator(self.db).try_complete(document, "payment", now)
                    completed = completion.ok and completion.value.completed
                    payment_collected = completed and completion.value.payment_collected

            elif event_type == PAYMENT_FAILED:
                if payment.status != SUCCEEDED:
                    payment.status = "failed"
                    self._mirror_on_recipient(recipient, "failed", intent_id, amount)
                error = (obj.get("last_payment_error") or {}).get("message")
                record_event(
                    self.db,
                    document.id,
                    PaymentFailed(payment_intent_id=intent_id, error=error),
                    recipient_id=recipient.id if recipient else None,
                    created_at=now,
                )
                logger.warning(f"⚠️ Payment {intent_id} failed for document {document.id}: {error}")

            elif event_type == PAYMENT_PROCESSING:
                if payment.status == "pending":
                    payment.status = "processing"
                    self._mirror_on_recipient(recipient, "processing", intent_id, amount)

            elif event_type == CHARGE_REFUNDED:
                payment.status = "refunded"
                self._mirror_on_recipient(recipient, "refunded", intent_id, payment.amount)
                record_event(
                    self.db,
                    document.id,
                    PaymentRefunded(
                        payment_intent_id=intent_id,
                        amount_refunded=obj.get("amount_refunded"),
                        currency=currency,
                    ),
                    recipient_id=recipient.id if recipient else None,
                    created_at=now,
                )
                logger.info(f"↩️ Payment {intent_id} refunded for document {document.id}")

            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to process payment webhook {event_type}: {str(e)}")
            raise

        if completed:
            self.db.refresh(document)
            await dispatch_best_effort(self.dispatcher, completion_notice(document, payment_collected))

        return OperationResult.success({"received": True, "completed": completed})

    @staticmethod
    def _mirror_on_recipient(
        recipient: Optional[Recipient], status: str, intent_id: str, amount: Optional[int]
    ) -> None:
        if not recipient:
            return
        recipient.payment_status = status
        recipient.payment_intent_id = intent_id
        if amount is not None:
            recipient.payment_amount = amount
