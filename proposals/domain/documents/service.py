"""
Document service - the document state machine

draft → sent → viewed → completed, with declined and expired terminal.
Owner-driven operations live here (create, edit, send, duplicate, delete);
recipient actions go through the roster manager, payments through the
payment webhook service.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...email_service import INVITATION, MessageInstruction
from ...models import Document, DocumentEvent, DocumentVersion, Recipient, User
from ...security_utils import sanitize_text
from ...shared.errors import ExternalDependencyError
from ..signing.roster import RosterManager, signing_url
from .events import (
    DocumentCreated,
    DocumentEdited,
    DocumentExpired,
    DocumentSent,
    SentRecipient,
    TemplateCreated,
    record_event,
)
from .expiration import expire_document
from .lifecycle import (
    ACTIVE_STATUSES,
    DRAFT,
    EXPIRED,
    SENT,
    is_editable,
    validate_status_transition,
)
from .repository import DocumentRepository
from .results import ErrorKind, OperationResult, invalid_transition, not_found
from .schemas import CopyDocumentRequest, DocumentCreate, DocumentUpdate, SendDocumentRequest
from .versioning import VersionSnapshotter

logger = logging.getLogger(__name__)


@dataclass
class UpdateOutcome:
    document: Document
    was_edited: bool
    new_version: Optional[int] = None
    reissued: list[Recipient] = field(default_factory=list)


@dataclass
class SendOutcome:
    document: Document
    recipients: list[Recipient]


class DocumentService:
    """Service layer for document business logic"""

    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.dispatcher = dispatcher
        self.repo = DocumentRepository()

    # ========================================================================
    # CORE CRUD OPERATIONS
    # ========================================================================

    def create_document(self, data: DocumentCreate, user: User) -> OperationResult[Document]:
        """Create a new draft document or template"""
        logger.info(f"📝 Creating {'template' if data.is_template else 'document'} for user {user.id}")

        document = Document(
            user_id=user.id,
            organization_id=data.organization_id,
            title=data.title.strip(),
            status=DRAFT,
            content=data.content,
            variables=data.variables,
            settings=data.settings,
            is_template=data.is_template,
            template_category=data.template_category if data.is_template else None,
            current_version=1,
        )
        try:
            self.db.add(document)
            self.db.flush()
            if data.is_template:
                payload = TemplateCreated(template_category=data.template_category)
            else:
                payload = DocumentCreated(source="blank")
            record_event(self.db, document.id, payload)
            self.db.commit()
            self.db.refresh(document)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create document: {str(e)}")
            raise

        return OperationResult.success(document)

    def get_documents(self, user: User, is_template: Optional[bool] = None) -> list[Document]:
        return self.repo.get_documents(self.db, user, is_template)

    def get_document(
        self, document_id: str, user: User, now: Optional[datetime] = None
    ) -> OperationResult[Document]:
        """Get a document, expiring it first if its deadline passed"""
        document = self.repo.get_visible_document(self.db, document_id, user)
        if not document:
            return not_found()

        if document.status in ACTIVE_STATUSES and document.expires_at:
            document = self.repo.get_document_for_update(self.db, document_id)
            try:
                expire_document(self.db, document, now)
                self.db.commit()
                self.db.refresh(document)
            except Exception:
                self.db.rollback()
                raise

        return OperationResult.success(document)

    def delete_document(self, document_id: str, user: User) -> OperationResult[str]:
        """Hard delete, cascading to recipients, versions, events and payments"""
        document = self.repo.get_visible_document(self.db, document_id, user, for_update=True)
        if not document:
            self.db.rollback()
            return not_found()

        try:
            self.db.delete(document)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to delete document {document_id}: {str(e)}")
            raise

        logger.info(f"🗑️ Document {document_id} deleted by user {user.id}")
        return OperationResult.success(document_id)

    # ========================================================================
    # EDITING
    # ========================================================================

    def update_document(
        self,
        document_id: str,
        data: DocumentUpdate,
        user: User,
        now: Optional[datetime] = None,
    ) -> OperationResult[UpdateOutcome]:
        """
        Apply a partial update.

        Changing title or content of a sent or viewed document snapshots the
        previous version, bumps current_version and reissues the links of
        every recipient who has not signed yet, all in one transaction.
        """
        now = now or datetime.utcnow()

        document = self.repo.get_visible_document(self.db, document_id, user, for_update=True)
        if not document:
            self.db.rollback()
            return not_found()

        if expire_document(self.db, document, now):
            self.db.commit()
            document = self.repo.get_document_for_update(self.db, document_id)

        if not is_editable(document):
            if document.locked_at is not None:
                message = "Cannot edit a document after it has been signed"
            else:
                message = f"Cannot edit a {document.status} document"
            self.db.rollback()
            return invalid_transition(message)

        if data.status is not None and data.status != document.status:
            if not validate_status_transition(document.status, data.status):
                self.db.rollback()
                return invalid_transition(
                    f"Cannot change status from {document.status} to {data.status}"
                )

        if data.is_template and not document.is_template:
            if document.status != DRAFT or document.recipients:
                self.db.rollback()
                return invalid_transition("Only unsent drafts can be turned into templates")

        title = data.title.strip() if data.title is not None else None
        content_changed = (title is not None and title != document.title) or (
            data.content is not None and data.content != document.content
        )

        outcome = UpdateOutcome(document=document, was_edited=False)
        try:
            if content_changed and document.status in ACTIVE_STATUSES:
                previous_version = VersionSnapshotter(self.db).snapshot(
                    document, created_by=user.id, now=now
                )
                document.current_version = previous_version + 1
                record_event(
                    self.db,
                    document.id,
                    DocumentEdited(
                        previous_version=previous_version,
                        new_version=document.current_version,
                        edited_at=now.isoformat(),
                    ),
                    created_at=now,
                )
                outcome.reissued = RosterManager(self.db).reset_for_reissue(document, now)
                outcome.was_edited = True
                outcome.new_version = document.current_version
                logger.info(
                    f"✏️ Document {document.id} edited after sending: "
                    f"v{previous_version} → v{document.current_version}, "
                    f"{len(outcome.reissued)} link(s) reissued"
                )

            if title is not None:
                document.title = title
            if data.content is not None:
                document.content = data.content
            if data.variables is not None:
                document.variables = data.variables
            if data.settings is not None:
                document.settings = data.settings
            if data.expires_at is not None:
                document.expires_at = data.expires_at
            if data.status is not None and data.status != document.status:
                document.status = data.status
                if data.status == EXPIRED:
                    record_event(
                        self.db,
                        document.id,
                        DocumentExpired(
                            expires_at=(
                                document.expires_at.isoformat() if document.expires_at else None
                            ),
                            detected_at=now.isoformat(),
                        ),
                        created_at=now,
                    )
            if data.is_template is not None:
                document.is_template = data.is_template
            if data.template_category is not None:
                document.template_category = data.template_category

            # A manual move to expired, or a deadline moved into the past
            expire_document(self.db, document, now)

            self.db.commit()
            self.db.refresh(document)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update document {document_id}: {str(e)}")
            raise

        return OperationResult.success(outcome)

    # ========================================================================
    # SENDING
    # ========================================================================

    async def send_document(
        self,
        document_id: str,
        data: SendDocumentRequest,
        user: User,
        now: Optional[datetime] = None,
    ) -> OperationResult[SendOutcome]:
        """
        draft → sent: replace the roster, stamp sent_at/expires_at and email
        every recipient their link. Any invitation failure rolls the send back.
        """
        now = now or datetime.utcnow()

        document = self.repo.get_visible_document(self.db, document_id, user, for_update=True)
        if not document:
            self.db.rollback()
            return not_found()
        if document.is_template:
            self.db.rollback()
            return invalid_transition("Templates cannot be sent")
        if document.status != DRAFT:
            self.db.rollback()
            return invalid_transition("Document has already been sent")

        message = sanitize_text(data.message, max_length=5000)

        try:
            roster = RosterManager(self.db).set_roster(document, data.recipients, now)
            if not roster.ok:
                self.db.rollback()
                return roster

            expiration_days = data.expires_in_days or (document.settings or {}).get(
                "expirationDays"
            )
            document.status = SENT
            document.sent_at = now
            document.expires_at = now + timedelta(days=expiration_days) if expiration_days else None

            record_event(
                self.db,
                document.id,
                DocumentSent(
                    recipients=[
                        SentRecipient(email=r.email, name=r.name, role=r.role)
                        for r in roster.value
                    ],
                    message=message,
                    expires_at=document.expires_at.isoformat() if document.expires_at else None,
                ),
                created_at=now,
            )
            self.db.flush()

            if self.dispatcher is not None:
                for recipient in roster.value:
                    await self.dispatcher.dispatch(
                        MessageInstruction(
                            kind=INVITATION,
                            to=recipient.email,
                            name=recipient.name,
                            document_id=document.id,
                            context={
                                "document_title": document.title,
                                "sender_name": user.display_name,
                                "signing_url": signing_url(recipient.access_token),
                                "role": recipient.role,
                                "message": message,
                                "expires_at": (
                                    document.expires_at.strftime("%B %d, %Y")
                                    if document.expires_at
                                    else None
                                ),
                            },
                        )
                    )

            self.db.commit()
            self.db.refresh(document)
        except ExternalDependencyError as e:
            self.db.rollback()
            logger.error(f"❌ Send of document {document_id} aborted, invitation failed: {e}")
            return OperationResult.failure(
                ErrorKind.EXTERNAL_DEPENDENCY, f"Failed to send invitations: {e}"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to send document {document_id}: {str(e)}")
            raise

        logger.info(f"📤 Document {document.id} sent to {len(document.recipients)} recipient(s)")
        return OperationResult.success(SendOutcome(document=document, recipients=list(document.recipients)))

    # ========================================================================
    # COPIES
    # ========================================================================

    def _copy(self, source: Document, user: User, title: str) -> Document:
        return Document(
            user_id=user.id,
            organization_id=source.organization_id,
            title=title,
            status=DRAFT,
            content=copy.deepcopy(source.content or []),
            variables=copy.deepcopy(source.variables),
            settings=copy.deepcopy(source.settings),
            is_template=False,
            current_version=1,
        )

    def duplicate_document(
        self, document_id: str, data: CopyDocumentRequest, user: User
    ) -> OperationResult[Document]:
        source = self.repo.get_visible_document(self.db, document_id, user)
        if not source:
            return not_found()

        document = self._copy(source, user, data.title or f"{source.title} (Copy)")
        try:
            self.db.add(document)
            self.db.flush()
            record_event(
                self.db,
                document.id,
                DocumentCreated(source="duplicate", original_document_id=source.id),
            )
            self.db.commit()
            self.db.refresh(document)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to duplicate document {document_id}: {str(e)}")
            raise

        logger.info(f"📄 Document {source.id} duplicated as {document.id}")
        return OperationResult.success(document)

    def use_template(
        self, template_id: str, data: CopyDocumentRequest, user: User
    ) -> OperationResult[Document]:
        template = self.repo.get_visible_document(self.db, template_id, user)
        if not template:
            return not_found("Template not found")
        if not template.is_template:
            return invalid_transition("Document is not a template")

        document = self._copy(template, user, data.title or template.title)
        try:
            self.db.add(document)
            self.db.flush()
            record_event(
                self.db,
                document.id,
                DocumentCreated(source="template", template_id=template.id),
            )
            self.db.commit()
            self.db.refresh(document)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create document from template {template_id}: {str(e)}")
            raise

        return OperationResult.success(document)

    # ========================================================================
    # HISTORY
    # ========================================================================

    def get_versions(
        self, document_id: str, user: User
    ) -> OperationResult[tuple[Document, list[DocumentVersion]]]:
        document = self.repo.get_visible_document(self.db, document_id, user)
        if not document:
            return not_found()
        return OperationResult.success((document, self.repo.get_versions(self.db, document_id)))

    def get_events(self, document_id: str, user: User) -> OperationResult[list[DocumentEvent]]:
        document = self.repo.get_visible_document(self.db, document_id, user)
        if not document:
            return not_found()
        return OperationResult.success(self.repo.get_events(self.db, document_id))
