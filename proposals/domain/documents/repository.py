"""Document repository - Database operations for documents, recipients and events"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ...models import (
    Document,
    DocumentEvent,
    DocumentVersion,
    OrganizationMember,
    Recipient,
    RetiredAccessToken,
    User,
)
from .lifecycle import ACTIVE_STATUSES, COMPLETED, EXPIRED


class DocumentRepository:
    """Repository for document database operations"""

    @staticmethod
    def _member_organization_ids(user_id: int):
        return select(OrganizationMember.organization_id).where(
            OrganizationMember.user_id == user_id,
            OrganizationMember.status == "active",
        )

    @staticmethod
    def get_documents(
        db: Session, user: User, is_template: Optional[bool] = None
    ) -> list[Document]:
        """Documents owned by the user or by an organization they actively belong to"""
        query = db.query(Document).filter(
            or_(
                Document.user_id == user.id,
                Document.organization_id.in_(
                    DocumentRepository._member_organization_ids(user.id)
                ),
            )
        )
        if is_template is not None:
            query = query.filter(Document.is_template == is_template)
        return query.order_by(Document.updated_at.desc(), Document.created_at.desc()).all()

    @staticmethod
    def get_document(db: Session, document_id: str) -> Optional[Document]:
        return db.query(Document).filter(Document.id == document_id).first()

    @staticmethod
    def get_document_for_update(db: Session, document_id: str) -> Optional[Document]:
        """
        Load a document holding its row lock until the transaction ends.
        populate_existing refreshes an instance already in the identity map.
        """
        return (
            db.query(Document)
            .filter(Document.id == document_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def can_access(db: Session, document: Document, user: User) -> bool:
        if document.user_id == user.id:
            return True
        if not document.organization_id:
            return False
        return (
            db.query(OrganizationMember.id)
            .filter(
                OrganizationMember.organization_id == document.organization_id,
                OrganizationMember.user_id == user.id,
                OrganizationMember.status == "active",
            )
            .first()
            is not None
        )

    @staticmethod
    def get_visible_document(
        db: Session, document_id: str, user: User, for_update: bool = False
    ) -> Optional[Document]:
        """None both when the document is missing and when the user cannot see it"""
        if for_update:
            document = DocumentRepository.get_document_for_update(db, document_id)
        else:
            document = DocumentRepository.get_document(db, document_id)
        if not document or not DocumentRepository.can_access(db, document, user):
            return None
        return document

    # ========================================================================
    # RECIPIENTS AND TOKENS
    # ========================================================================

    @staticmethod
    def get_recipient_by_token(db: Session, token: str) -> Optional[Recipient]:
        return (
            db.query(Recipient)
            .filter(Recipient.access_token == token)
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_retired_token(db: Session, token: str) -> Optional[RetiredAccessToken]:
        return db.query(RetiredAccessToken).filter(RetiredAccessToken.token == token).first()

    # ========================================================================
    # CONDITIONAL STATUS UPDATES
    # ========================================================================

    @staticmethod
    def mark_completed(db: Session, document_id: str, now: datetime) -> int:
        """
        Compare-and-swap to completed. Returns the number of rows updated:
        1 for the caller that won, 0 if the document already left sent/viewed.
        """
        return (
            db.query(Document)
            .filter(Document.id == document_id, Document.status.in_(ACTIVE_STATUSES))
            .update(
                {Document.status: COMPLETED, Document.completed_at: now},
                synchronize_session="evaluate",
            )
        )

    @staticmethod
    def mark_expired(db: Session, document_id: str, now: datetime) -> int:
        return (
            db.query(Document)
            .filter(
                Document.id == document_id,
                Document.status.in_(ACTIVE_STATUSES),
                Document.expires_at.isnot(None),
                Document.expires_at < now,
            )
            .update({Document.status: EXPIRED}, synchronize_session="evaluate")
        )

    @staticmethod
    def get_overdue_document_ids(db: Session, now: datetime) -> list[str]:
        rows = (
            db.query(Document.id)
            .filter(
                Document.status.in_(ACTIVE_STATUSES),
                Document.expires_at.isnot(None),
                Document.expires_at < now,
            )
            .all()
        )
        return [row.id for row in rows]

    @staticmethod
    def get_reminder_candidate_ids(db: Session) -> list[str]:
        """Active, sent, non-template documents; due-ness is decided per document"""
        rows = (
            db.query(Document.id)
            .filter(
                Document.status.in_(ACTIVE_STATUSES),
                Document.sent_at.isnot(None),
                Document.is_template.is_(False),
            )
            .order_by(Document.sent_at)
            .all()
        )
        return [row.id for row in rows]

    # ========================================================================
    # HISTORY
    # ========================================================================

    @staticmethod
    def get_versions(db: Session, document_id: str) -> list[DocumentVersion]:
        return (
            db.query(DocumentVersion)
            .filter(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.desc())
            .all()
        )

    @staticmethod
    def get_events(
        db: Session, document_id: str, event_type: Optional[str] = None
    ) -> list[DocumentEvent]:
        """Events newest first"""
        query = db.query(DocumentEvent).filter(DocumentEvent.document_id == document_id)
        if event_type:
            query = query.filter(DocumentEvent.event_type == event_type)
        return query.order_by(DocumentEvent.created_at.desc(), DocumentEvent.id.desc()).all()

    @staticmethod
    def get_recipient_events(
        db: Session, recipient_id: str, event_type: str
    ) -> list[DocumentEvent]:
        return (
            db.query(DocumentEvent)
            .filter(
                DocumentEvent.recipient_id == recipient_id,
                DocumentEvent.event_type == event_type,
            )
            .order_by(DocumentEvent.created_at.desc())
            .all()
        )
