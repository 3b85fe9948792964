"""Scheduled sweep trigger, called by an external cron with a shared secret"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...email_service import MessageDispatcher, get_message_dispatcher
from ...webhook_security import verify_cron_secret
from ..documents.expiration import expire_overdue_documents
from .scheduler import run_reminder_sweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


async def run_daily_sweeps(db: Session, dispatcher, now: Optional[datetime] = None) -> dict:
    """Expire overdue documents, then send due reminders"""
    now = now or datetime.utcnow()
    documents_expired = expire_overdue_documents(db, now)
    sweep = await run_reminder_sweep(db, dispatcher, now)

    response = {
        "success": True,
        "remindersSent": sweep.reminders_sent,
        "documentsProcessed": sweep.documents_processed,
        "documentsExpired": documents_expired,
    }
    if sweep.failures:
        response["errors"] = [
            f"Document {f.document_id}"
            + (f", recipient {f.recipient_id}" if f.recipient_id else "")
            + f": {f.error}"
            for f in sweep.failures
        ]
    return response


@router.api_route("/reminders", methods=["GET", "POST"])
async def trigger_reminders(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_message_dispatcher),
):
    """Run the expiration and reminder sweeps. Safe to retry."""
    logger.info("⏰ Cron trigger: running daily sweeps")
    return await run_daily_sweeps(db, dispatcher)
