"""
Completion Evaluator

A document completes when every signer has signed and, if payment is
required, at least one payment succeeded. The flip to completed is a
conditional update so concurrent triggers (a signature and a payment webhook
racing for the last requirement) complete the document exactly once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from ...email_service import COMPLETION_NOTICE, MessageInstruction
from ...models import Document, Payment, Recipient
from .events import DocumentCompleted, record_event
from .repository import DocumentRepository
from .results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


def is_complete(
    recipients: Iterable[Recipient],
    payments: Iterable[Payment],
    payment_required: bool = False,
) -> bool:
    signers = [r for r in recipients if r.role == "signer"]
    if not signers:
        return False
    if not all(r.status == "signed" for r in signers):
        return False
    payments = list(payments)
    if payment_required or payments:
        return any(p.status == SUCCEEDED for p in payments)
    return True


def get_payment_requirement(document: Document) -> Optional[dict[str, Any]]:
    """
    The payment a recipient is asked for, or None.

    A required payment content block wins over settings.payment.
    """
    for block in document.content or []:
        if not isinstance(block, dict) or block.get("type") != "payment":
            continue
        data = block.get("data") or {}
        if data.get("required"):
            return {
                "amount": data.get("amount"),
                "currency": data.get("currency", "usd"),
                "source": "content_block",
            }

    payment_settings = (document.settings or {}).get("payment") or {}
    if payment_settings.get("enabled") and payment_settings.get("amount"):
        return {
            "amount": payment_settings.get("amount"),
            "currency": payment_settings.get("currency", "usd"),
            "source": "settings",
        }
    return None


def document_requires_payment(document: Document) -> bool:
    return get_payment_requirement(document) is not None or bool(document.payments)


@dataclass
class CompletionOutcome:
    completed: bool
    payment_collected: bool = False
    completed_at: Optional[datetime] = None


class CompletionEvaluator:
    def __init__(self, db: Session):
        self.db = db

    def evaluate(self, document: Document) -> bool:
        return is_complete(
            document.recipients,
            document.payments,
            document_requires_payment(document),
        )

    def try_complete(
        self, document: Document, trigger: str, now: Optional[datetime] = None
    ) -> OperationResult[CompletionOutcome]:
        """
        Complete the document if its requirements are met.

        Runs inside the caller's transaction and does not commit. Returns
        success(completed=False) when requirements are not met yet, and a
        CONFLICT failure when another trigger already completed it.
        """
        now = now or datetime.utcnow()

        if not self.evaluate(document):
            return OperationResult.success(CompletionOutcome(completed=False))

        # Pending recipient/payment changes must reach the database before the update
        self.db.flush()
        updated = DocumentRepository.mark_completed(self.db, document.id, now)
        if updated != 1:
            logger.info(f"ℹ️ Document {document.id} already completed, skipping ({trigger})")
            return OperationResult.failure(ErrorKind.CONFLICT, "Document already completed")

        payment_collected = any(p.status == SUCCEEDED for p in document.payments)
        record_event(
            self.db,
            document.id,
            DocumentCompleted(
                completed_at=now.isoformat(),
                trigger=trigger,
                payment_collected=payment_collected,
            ),
            created_at=now,
        )
        logger.info(f"🎉 Document {document.id} completed (trigger: {trigger})")
        return OperationResult.success(
            CompletionOutcome(completed=True, payment_collected=payment_collected, completed_at=now)
        )


def completion_notice(document: Document, payment_collected: bool) -> Optional[MessageInstruction]:
    """Owner notification for a freshly completed document"""
    owner = document.user
    if not owner or not owner.email:
        return None
    return MessageInstruction(
        kind=COMPLETION_NOTICE,
        to=owner.email,
        name=owner.display_name,
        document_id=document.id,
        context={"document_title": document.title, "payment_collected": payment_collected},
    )


async def dispatch_best_effort(dispatcher, instruction: Optional[MessageInstruction]) -> bool:
    """Send a message whose failure must not undo the committed transition"""
    if dispatcher is None or instruction is None:
        return False
    try:
        await dispatcher.dispatch(instruction)
        return True
    except Exception as e:
        logger.error(
            f"❌ Failed to send {instruction.kind} for document {instruction.document_id}: {e}"
        )
        return False
