"""
Document event log - append-only audit trail.

Each event type has a fixed payload shape. The event_type string is the
contract read by the activity timeline, analytics and CRM sync, so new
types are added here and existing ones are never repurposed.
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlalchemy.orm import Session

from ...models import DocumentEvent

logger = logging.getLogger(__name__)


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class DocumentCreated(EventPayload):
    event_type: Literal["document_created"] = "document_created"
    source: str = "blank"  # blank, duplicate, template
    original_document_id: Optional[str] = None
    template_id: Optional[str] = None


class TemplateCreated(EventPayload):
    event_type: Literal["template_created"] = "template_created"
    template_category: Optional[str] = None


class SentRecipient(BaseModel):
    email: str
    name: Optional[str] = None
    role: str


class DocumentSent(EventPayload):
    event_type: Literal["document_sent"] = "document_sent"
    recipients: list[SentRecipient]
    message: Optional[str] = None
    expires_at: Optional[str] = None


class DocumentViewed(EventPayload):
    event_type: Literal["document_viewed"] = "document_viewed"
    user_agent: Optional[str] = None
    timestamp: str


class DocumentSigned(EventPayload):
    event_type: Literal["document_signed"] = "document_signed"
    signature_type: Optional[str] = None
    signed_at: str
    ip_address: Optional[str] = None
    all_signed: bool


class DocumentLocked(EventPayload):
    event_type: Literal["document_locked"] = "document_locked"
    locked_at: str
    locked_by_recipient_id: str
    reason: str = "first_signature"


class DocumentDeclined(EventPayload):
    event_type: Literal["document_declined"] = "document_declined"
    reason: Optional[str] = None
    declined_at: str


class DocumentEdited(EventPayload):
    event_type: Literal["document_edited"] = "document_edited"
    previous_version: int
    new_version: int
    edited_at: str


class DocumentExpired(EventPayload):
    event_type: Literal["document_expired"] = "document_expired"
    expires_at: Optional[str] = None
    detected_at: str


class DocumentCompleted(EventPayload):
    event_type: Literal["document_completed"] = "document_completed"
    completed_at: str
    trigger: str  # signature, payment
    payment_collected: bool


class PaymentSucceeded(EventPayload):
    event_type: Literal["payment_succeeded"] = "payment_succeeded"
    payment_intent_id: str
    amount: int
    currency: Optional[str] = None


class PaymentFailed(EventPayload):
    event_type: Literal["payment_failed"] = "payment_failed"
    payment_intent_id: str
    error: Optional[str] = None


class PaymentRefunded(EventPayload):
    event_type: Literal["payment_refunded"] = "payment_refunded"
    payment_intent_id: str
    amount_refunded: Optional[int] = None
    currency: Optional[str] = None


class ReminderSent(EventPayload):
    event_type: Literal["reminder_sent"] = "reminder_sent"
    dayNumber: int
    recipientEmail: str
    reminderNumber: int
    totalReminders: int


class BlockchainVerified(EventPayload):
    event_type: Literal["blockchain_verified"] = "blockchain_verified"
    txHash: str
    documentHash: str
    chainId: int


DocumentEventPayload = Annotated[
    Union[
        DocumentCreated,
        TemplateCreated,
        DocumentSent,
        DocumentViewed,
        DocumentSigned,
        DocumentLocked,
        DocumentDeclined,
        DocumentEdited,
        DocumentExpired,
        DocumentCompleted,
        PaymentSucceeded,
        PaymentFailed,
        PaymentRefunded,
        ReminderSent,
        BlockchainVerified,
    ],
    Field(discriminator="event_type"),
]

_payload_adapter = TypeAdapter(DocumentEventPayload)

EVENT_TYPES = tuple(
    member.model_fields["event_type"].default
    for member in get_args(get_args(DocumentEventPayload)[0])
)


def record_event(
    db: Session,
    document_id: str,
    payload: EventPayload,
    recipient_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> DocumentEvent:
    """
    Append an event to the document's log.

    Does not commit: the event belongs to the caller's transaction so it is
    only visible if the transition it describes is.
    """
    data = payload.model_dump(mode="json", exclude={"event_type"})
    event = DocumentEvent(
        document_id=document_id,
        recipient_id=recipient_id,
        event_type=payload.event_type,
        event_data=data,
        created_at=created_at or datetime.utcnow(),
    )
    db.add(event)
    logger.debug(f"📝 Event {payload.event_type} recorded for document {document_id}")
    return event


def parse_event_payload(event: DocumentEvent) -> EventPayload:
    """Rebuild the typed payload of a stored event"""
    data: dict[str, Any] = dict(event.event_data or {})
    data["event_type"] = event.event_type
    return _payload_adapter.validate_python(data)
