"""
Reminder Scheduler

A stateless sweep run once a day by the worker or the cron trigger. For every
sent or viewed document it works out how many whole days have passed since
sending; on a reminder milestone each recipient still expected to act gets
one reminder. Whether a reminder already went out is read from the
document's reminder_sent events, so a retried sweep does not resend and a
delivery is recorded at most once. The document row lock is only held while
reading the roster and while appending each event, never across an email send.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_REMINDER_DAYS
from ...email_service import REMINDER, MessageInstruction
from ...models import Document, Recipient
from ..documents.events import ReminderSent, record_event
from ..documents.lifecycle import ACTIVE_STATUSES, is_past_expiration
from ..documents.repository import DocumentRepository
from ..signing.roster import signing_url

logger = logging.getLogger(__name__)

REMINDER_COOLDOWN = timedelta(hours=24)


@dataclass
class ReminderFailure:
    document_id: str
    recipient_id: Optional[str]
    error: str


@dataclass
class ReminderSweepResult:
    reminders_sent: int = 0
    documents_processed: int = 0
    failures: list[ReminderFailure] = field(default_factory=list)


def get_reminder_days(document: Document) -> list[int]:
    configured = (document.settings or {}).get("reminderDays")
    if configured:
        return sorted({int(day) for day in configured})
    return list(DEFAULT_REMINDER_DAYS)


def days_since_sent(document: Document, now: datetime) -> int:
    return (now - document.sent_at).days


def needs_reminder(recipient: Recipient) -> bool:
    """Signers and approvers until they act; viewers until they open the document"""
    if recipient.status in ("signed", "declined"):
        return False
    if recipient.role == "viewer":
        return recipient.status == "pending"
    return True


def already_reminded(db: Session, recipient: Recipient, day_number: int, now: datetime) -> bool:
    for event in DocumentRepository.get_recipient_events(db, recipient.id, "reminder_sent"):
        if (event.event_data or {}).get("dayNumber") == day_number:
            return True
        if event.created_at and event.created_at > now - REMINDER_COOLDOWN:
            return True
    return False


@dataclass
class DueReminder:
    document_id: str
    recipient_id: str
    day_number: int
    instruction: MessageInstruction
    payload: ReminderSent


def collect_due_reminders(
    db: Session, document_id: str, now: datetime
) -> Optional[list[DueReminder]]:
    """
    Work out which reminders a document owes at `now`, under its row lock.

    Returns None when the document is not eligible for reminders at all.
    Nothing is written; the lock is released before returning.
    """
    document = DocumentRepository.get_document_for_update(db, document_id)
    if (
        not document
        or document.status not in ACTIVE_STATUSES
        or not document.sent_at
        or is_past_expiration(document, now)
    ):
        db.rollback()
        return None

    due = []
    reminder_days = get_reminder_days(document)
    day_number = days_since_sent(document, now)
    if day_number in reminder_days:
        sender_name = document.user.display_name if document.user else "Someone"
        for recipient in document.recipients:
            if not needs_reminder(recipient):
                continue
            if already_reminded(db, recipient, day_number, now):
                logger.debug(f"Reminder for day {day_number} already sent to {recipient.id}")
                continue
            due.append(
                DueReminder(
                    document_id=document.id,
                    recipient_id=recipient.id,
                    day_number=day_number,
                    instruction=MessageInstruction(
                        kind=REMINDER,
                        to=recipient.email,
                        name=recipient.name,
                        document_id=document.id,
                        context={
                            "document_title": document.title,
                            "sender_name": sender_name,
                            "signing_url": signing_url(recipient.access_token),
                            "day_number": day_number,
                        },
                    ),
                    payload=ReminderSent(
                        dayNumber=day_number,
                        recipientEmail=recipient.email,
                        reminderNumber=reminder_days.index(day_number) + 1,
                        totalReminders=len(reminder_days),
                    ),
                )
            )

    db.rollback()
    return due


def record_reminder(db: Session, reminder: DueReminder, now: datetime) -> bool:
    """Append the reminder_sent event unless a concurrent sweep already did"""
    DocumentRepository.get_document_for_update(db, reminder.document_id)
    recipient = db.get(Recipient, reminder.recipient_id)
    if recipient is None or already_reminded(db, recipient, reminder.day_number, now):
        db.rollback()
        logger.warning(
            f"⚠️ Reminder for day {reminder.day_number} to {reminder.recipient_id} "
            f"was recorded by another sweep"
        )
        return False

    record_event(
        db,
        reminder.document_id,
        reminder.payload,
        recipient_id=reminder.recipient_id,
        created_at=now,
    )
    db.commit()
    return True


async def run_reminder_sweep(
    db: Session, dispatcher, now: Optional[datetime] = None
) -> ReminderSweepResult:
    """
    Send the reminders due at `now`.

    Due reminders are collected under the document's row lock, which is
    released before any email goes out; each delivery is then recorded in
    its own short transaction. A failure for one recipient is recorded in
    the result and the sweep moves on to the next recipient.
    """
    now = now or datetime.utcnow()
    result = ReminderSweepResult()

    for document_id in DocumentRepository.get_reminder_candidate_ids(db):
        try:
            due = collect_due_reminders(db, document_id, now)
            if due is None:
                continue
            result.documents_processed += 1

            for reminder in due:
                recipient = db.get(Recipient, reminder.recipient_id)
                if recipient is None or not needs_reminder(recipient):
                    continue

                try:
                    await dispatcher.dispatch(reminder.instruction)
                except Exception as e:
                    logger.error(
                        f"❌ Reminder to {reminder.instruction.to} for {document_id} failed: {e}"
                    )
                    result.failures.append(
                        ReminderFailure(
                            document_id=document_id, recipient_id=reminder.recipient_id, error=str(e)
                        )
                    )
                    continue

                if record_reminder(db, reminder, now):
                    result.reminders_sent += 1
                    logger.info(
                        f"🔔 Reminder (day {reminder.day_number}) sent to "
                        f"{reminder.instruction.to} for {document_id}"
                    )
        except Exception as e:
            db.rollback()
            logger.exception(f"❌ Reminder sweep failed for document {document_id}")
            result.failures.append(
                ReminderFailure(document_id=document_id, recipient_id=None, error=str(e))
            )
            continue

    logger.info(
        f"Reminder sweep complete: {result.reminders_sent} sent, "
        f"{result.documents_processed} documents processed, {len(result.failures)} failures"
    )
    return result
