"""
Document expiration

Expiration is evaluated lazily when a document or one of its links is
accessed, and by a periodic sweep. Both paths use the same conditional
update so a document is expired (and the event recorded) once.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Document
from .events import DocumentExpired, record_event
from .lifecycle import is_past_expiration
from .repository import DocumentRepository

logger = logging.getLogger(__name__)


def expire_document(db: Session, document: Document, now: Optional[datetime] = None) -> bool:
    """
    Expire an overdue document inside the caller's transaction.

    Returns True if this call performed the transition. Does not commit.
    """
    now = now or datetime.utcnow()
    if not is_past_expiration(document, now):
        return False

    db.flush()
    if DocumentRepository.mark_expired(db, document.id, now) != 1:
        return False

    record_event(
        db,
        document.id,
        DocumentExpired(
            expires_at=document.expires_at.isoformat() if document.expires_at else None,
            detected_at=now.isoformat(),
        ),
        created_at=now,
    )
    logger.info(f"⌛ Document {document.id} expired")
    return True


def expire_overdue_documents(db: Session, now: Optional[datetime] = None) -> int:
    """Sweep every active document whose expires_at has passed. Returns the count expired."""
    now = now or datetime.utcnow()
    expired = 0

    for document_id in DocumentRepository.get_overdue_document_ids(db, now):
        try:
            document = DocumentRepository.get_document_for_update(db, document_id)
            if document and expire_document(db, document, now):
                expired += 1
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to expire document {document_id}: {str(e)}")
            continue

    if expired:
        logger.info(f"⌛ Expiration sweep: {expired} document(s) expired")
    return expired
