"""
Document status constants and transition rules.

Status workflow: draft → sent → viewed → completed
- declined: a signer declined (terminal)
- expired: expires_at passed before completion (terminal)
- completed: every signer signed and any required payment succeeded (terminal)
"""

from datetime import datetime
from typing import Optional

DRAFT = "draft"
SENT = "sent"
VIEWED = "viewed"
COMPLETED = "completed"
EXPIRED = "expired"
DECLINED = "declined"

DOCUMENT_STATUSES = (DRAFT, SENT, VIEWED, COMPLETED, EXPIRED, DECLINED)
ACTIVE_STATUSES = (SENT, VIEWED)
TERMINAL_STATUSES = (COMPLETED, EXPIRED, DECLINED)

RECIPIENT_ROLES = ("signer", "viewer", "approver")
RECIPIENT_STATUSES = ("pending", "viewed", "signed", "declined")

# Transitions an owner may request directly through a document update.
# Everything else is driven by send, recipient actions, payments and sweeps.
MANUAL_TRANSITIONS = {
    DRAFT: [DRAFT],
    SENT: [SENT, EXPIRED],
    VIEWED: [VIEWED, EXPIRED],
    COMPLETED: [],
    EXPIRED: [],
    DECLINED: [],
}


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a manually requested document status transition is allowed

    Args:
        current_status: Current document status
        new_status: Desired new status

    Returns:
        bool: True if transition is valid, False otherwise
    """
    return new_status in MANUAL_TRANSITIONS.get(current_status, [])


def is_past_expiration(document, now: Optional[datetime] = None) -> bool:
    """True when an active document's expires_at has passed"""
    if document.status not in ACTIVE_STATUSES or not document.expires_at:
        return False
    now = now or datetime.utcnow()
    return document.expires_at < now


def is_editable(document) -> bool:
    return document.locked_at is None and document.status not in (COMPLETED, DECLINED)
