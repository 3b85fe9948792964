"""
Recipient Roster Manager

Owns a document's recipient set and every token-authenticated recipient
action (view, sign, decline). Each action locks the document row first, so
a roster replacement or edit-after-send cannot interleave with it: an action
holding a superseded token fails with LINK_EXPIRED.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from ...config import APP_BASE_URL
from ...email_service import SIGNATURE_CONFIRMATION, MessageInstruction
from ...models import Document, Recipient
from ...security_utils import sanitize_text
from ...shared.validators import validate_email
from ..documents.completion import (
    CompletionEvaluator,
    completion_notice,
    dispatch_best_effort,
    get_payment_requirement,
)
from ..documents.events import (
    DocumentDeclined,
    DocumentLocked,
    DocumentSigned,
    DocumentViewed,
    record_event,
)
from ..documents.expiration import expire_document
from ..documents.lifecycle import (
    ACTIVE_STATUSES,
    DECLINED,
    DRAFT,
    EXPIRED,
    RECIPIENT_ROLES,
    SENT,
    VIEWED,
)
from ..documents.repository import DocumentRepository
from ..documents.results import ErrorKind, OperationResult, invalid_transition, validation_error
from ..documents.tokens import AccessTokenIssuer

logger = logging.getLogger(__name__)

PENDING = "pending"
SIGNED = "signed"


def signing_url(token: str) -> str:
    return f"{APP_BASE_URL}/sign/{token}"


@dataclass
class SigningView:
    document: Document
    recipient: Recipient
    payment: Optional[dict[str, Any]]


@dataclass
class SignatureOutcome:
    recipient: Recipient
    document: Document
    all_signed: bool
    completed: bool


class RosterManager:
    def __init__(self, db: Session, dispatcher=None):
        self.db = db
        self.dispatcher = dispatcher
        self.tokens = AccessTokenIssuer(db)

    # ========================================================================
    # ROSTER
    # ========================================================================

    def set_roster(
        self,
        document: Document,
        recipients: list[Union[dict[str, Any], Any]],
        now: Optional[datetime] = None,
    ) -> OperationResult[list[Recipient]]:
        """
        Replace the document's whole roster with fresh recipients and tokens.

        Only valid for drafts. Superseded tokens are retired. Does not commit.
        """
        now = now or datetime.utcnow()

        if document.status != DRAFT:
            return invalid_transition("Recipients can only be changed on a draft document")
        if not recipients:
            return validation_error(
                "At least one recipient is required", recipients="must not be empty"
            )

        entries = []
        for index, item in enumerate(recipients):
            data = item if isinstance(item, dict) else item.model_dump()
            role = data.get("role") or "signer"
            if role not in RECIPIENT_ROLES:
                return validation_error(
                    f"Invalid role: {role}", **{f"recipients.{index}.role": "invalid role"}
                )
            try:
                email = validate_email(data.get("email"))
            except ValueError:
                email = None
            if not email:
                return validation_error(
                    "Invalid recipient email", **{f"recipients.{index}.email": "invalid email"}
                )
            entries.append(
                {
                    "email": email,
                    "name": data.get("name"),
                    "role": role,
                    "signing_order": data.get("signing_order") or index + 1,
                }
            )

        for old in document.recipients:
            self.tokens.retire(old, "roster_replaced", now)
        document.recipients = []
        self.db.flush()

        for entry in entries:
            document.recipients.append(
                Recipient(
                    document_id=document.id,
                    access_token=self.tokens.issue(),
                    status=PENDING,
                    **entry,
                )
            )
        self.db.flush()

        logger.info(f"👥 Roster set for document {document.id}: {len(entries)} recipient(s)")
        return OperationResult.success(list(document.recipients))

    def reset_for_reissue(self, document: Document, now: Optional[datetime] = None) -> list[Recipient]:
        """
        Issue new tokens to every recipient that has not signed and send them
        back to pending, forcing re-review after an edit. Does not commit.
        """
        now = now or datetime.utcnow()
        reset = []
        for recipient in document.recipients:
            if recipient.status == SIGNED:
                continue
            self.tokens.reissue(recipient, "document_edited", now)
            recipient.status = PENDING
            recipient.viewed_at = None
            reset.append(recipient)
        return reset

    # ========================================================================
    # TOKEN RESOLUTION
    # ========================================================================

    def _expired_link(self, token: str) -> Optional[OperationResult]:
        if DocumentRepository.get_retired_token(self.db, token):
            return OperationResult.failure(
                ErrorKind.LINK_EXPIRED,
                "This link is no longer valid. Please use the latest link sent to you.",
            )
        return None

    def resolve_token(
        self, token: str, now: Optional[datetime] = None
    ) -> OperationResult[Recipient]:
        """
        Resolve a token to its recipient with the document row locked.

        Unknown token -> NOT_FOUND. Superseded token or expired document ->
        LINK_EXPIRED. Draft document -> INVALID_TRANSITION.
        """
        now = now or datetime.utcnow()

        recipient = DocumentRepository.get_recipient_by_token(self.db, token)
        if not recipient:
            return self._expired_link(token) or OperationResult.failure(
                ErrorKind.NOT_FOUND, "Invalid or expired link"
            )

        document = DocumentRepository.get_document_for_update(self.db, recipient.document_id)
        # Re-read under the lock: the roster may have been replaced meanwhile
        recipient = DocumentRepository.get_recipient_by_token(self.db, token)
        if not document or not recipient:
            return self._expired_link(token) or OperationResult.failure(
                ErrorKind.NOT_FOUND, "Invalid or expired link"
            )

        if expire_document(self.db, document, now):
            self.db.commit()
        if document.status == EXPIRED:
            return OperationResult.failure(ErrorKind.LINK_EXPIRED, "This document has expired")
        if document.status == DRAFT:
            return invalid_transition("This document has not been sent yet")

        return OperationResult.success(recipient)

    # ========================================================================
    # RECIPIENT ACTIONS
    # ========================================================================

    def get_signing_view(self, token: str, now: Optional[datetime] = None) -> OperationResult[SigningView]:
        result = self.resolve_token(token, now)
        if not result.ok:
            self.db.rollback()
            return result
        recipient = result.value
        document = recipient.document
        view = SigningView(
            document=document,
            recipient=recipient,
            payment=get_payment_requirement(document),
        )
        self.db.commit()
        return OperationResult.success(view)

    def record_view(
        self, token: str, user_agent: Optional[str] = None, now: Optional[datetime] = None
    ) -> OperationResult[Recipient]:
        """Only the first view by a pending recipient changes state"""
        now = now or datetime.utcnow()
        result = self.resolve_token(token, now)
        if not result.ok:
            self.db.rollback()
            return result

        recipient = result.value
        document = recipient.document
        try:
            if recipient.status == PENDING and recipient.viewed_at is None:
                recipient.status = VIEWED
                recipient.viewed_at = now
                recipient.user_agent = user_agent[:500] if user_agent else None
                if document.status == SENT:
                    document.status = VIEWED
                record_event(
                    self.db,
                    document.id,
                    DocumentViewed(user_agent=recipient.user_agent, timestamp=now.isoformat()),
                    recipient_id=recipient.id,
                    created_at=now,
                )
                logger.info(f"👀 Recipient {recipient.id} viewed document {document.id}")
            self.db.commit()
            self.db.refresh(recipient)
            return OperationResult.success(recipient)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record view: {str(e)}")
            raise

    async def record_signature(
        self,
        token: str,
        signature_data: dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult[SignatureOutcome]:
        """
        Record a signer's signature, lock the document on the first one and
        complete it if this was the last requirement.
        """
        now = now or datetime.utcnow()
        result = self.resolve_token(token, now)
        if not result.ok:
            self.db.rollback()
            return result

        recipient = result.value
        document = recipient.document

        if recipient.role != "signer":
            self.db.rollback()
            return invalid_transition("You are not authorized to sign this document")
        if recipient.status in (SIGNED, DECLINED):
            self.db.rollback()
            return OperationResult.failure(
                ErrorKind.ALREADY_ACTIONED, f"You have already {recipient.status} this document"
            )
        if document.status not in ACTIVE_STATUSES:
            self.db.rollback()
            return invalid_transition("This document can no longer be signed")
        if (document.settings or {}).get("requireSigningOrder"):
            waiting = [
                r
                for r in document.recipients
                if r.role == "signer"
                and r.signing_order < recipient.signing_order
                and r.status != SIGNED
            ]
            if waiting:
                self.db.rollback()
                return invalid_transition("Waiting for other signers to complete first")

        try:
            recipient.status = SIGNED
            recipient.signed_at = now
            recipient.signature_data = {**(signature_data or {}), "signedAt": now.isoformat()}
            recipient.ip_address = ip_address
            if user_agent:
                recipient.user_agent = user_agent[:500]

            if document.locked_at is None:
                document.locked_at = now
                document.locked_by = recipient.id
                record_event(
                    self.db,
                    document.id,
                    DocumentLocked(locked_at=now.isoformat(), locked_by_recipient_id=recipient.id),
                    recipient_id=recipient.id,
                    created_at=now,
                )
                logger.info(f"🔒 Document {document.id} locked by first signature")

            all_signed = all(r.status == SIGNED for r in document.recipients if r.role == "signer")
            record_event(
                self.db,
                document.id,
                DocumentSigned(
                    signature_type=(signature_data or {}).get("type"),
                    signed_at=now.isoformat(),
                    ip_address=ip_address,
                    all_signed=all_signed,
                ),
                recipient_id=recipient.id,
                created_at=now,
            )

            completion = CompletionEvaluator(self.db).try_complete(document, "signature", now)
            completed = completion.ok and completion.value.completed
            payment_collected = completed and completion.value.payment_collected

            self.db.commit()
            self.db.refresh(document)
            self.db.refresh(recipient)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record signature: {str(e)}")
            raise

        logger.info(f"✍️ Recipient {recipient.id} signed document {document.id}")

        await dispatch_best_effort(
            self.dispatcher,
            MessageInstruction(
                kind=SIGNATURE_CONFIRMATION,
                to=recipient.email,
                name=recipient.name,
                document_id=document.id,
                context={"document_title": document.title, "signed_at": now.isoformat()},
            ),
        )
        if completed:
            await dispatch_best_effort(self.dispatcher, completion_notice(document, payment_collected))

        return OperationResult.success(
            SignatureOutcome(
                recipient=recipient, document=document, all_signed=all_signed, completed=completed
            )
        )

    def record_decline(
        self, token: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> OperationResult[Recipient]:
        now = now or datetime.utcnow()
        result = self.resolve_token(token, now)
        if not result.ok:
            self.db.rollback()
            return result

        recipient = result.value
        document = recipient.document

        if recipient.status in (SIGNED, DECLINED):
            self.db.rollback()
            return OperationResult.failure(
                ErrorKind.ALREADY_ACTIONED, f"You have already {recipient.status} this document"
            )
        if document.status not in ACTIVE_STATUSES:
            self.db.rollback()
            return invalid_transition("This document can no longer be declined")

        try:
            reason = sanitize_text(reason, max_length=1000)
            recipient.status = DECLINED
            if recipient.role == "signer":
                document.status = DECLINED
            record_event(
                self.db,
                document.id,
                DocumentDeclined(reason=reason, declined_at=now.isoformat()),
                recipient_id=recipient.id,
                created_at=now,
            )
            self.db.commit()
            self.db.refresh(recipient)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to record decline: {str(e)}")
            raise

        logger.info(f"🚫 Recipient {recipient.id} declined document {document.id}")
        return OperationResult.success(recipient)
