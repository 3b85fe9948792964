"""Document router - FastAPI endpoints for the document lifecycle"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...email_service import MessageDispatcher, get_message_dispatcher
from ...models import Document, Recipient, User
from ...shared.http import raise_for_result
from ..signing.roster import signing_url
from .schemas import (
    CopyDocumentRequest,
    DocumentCreate,
    DocumentResponse,
    DocumentUpdate,
    EventResponse,
    RecipientResponse,
    SendDocumentRequest,
    SendDocumentResponse,
    SigningLink,
    UpdateDocumentResponse,
    VersionResponse,
)
from .service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


def get_document_service(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_message_dispatcher),
) -> DocumentService:
    """Dependency injection for DocumentService"""
    return DocumentService(db, dispatcher)


def recipient_response(recipient: Recipient) -> RecipientResponse:
    return RecipientResponse(
        id=recipient.id,
        email=recipient.email,
        name=recipient.name,
        role=recipient.role,
        signingOrder=recipient.signing_order,
        status=recipient.status,
        viewedAt=recipient.viewed_at,
        signedAt=recipient.signed_at,
        paymentStatus=recipient.payment_status,
        paymentAmount=recipient.payment_amount,
    )


def document_response(document: Document, include_recipients: bool = False) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        title=document.title,
        status=document.status,
        content=document.content or [],
        variables=document.variables,
        settings=document.settings,
        isTemplate=document.is_template,
        templateCategory=document.template_category,
        organizationId=document.organization_id,
        currentVersion=document.current_version,
        lockedAt=document.locked_at,
        sentAt=document.sent_at,
        expiresAt=document.expires_at,
        completedAt=document.completed_at,
        blockchainTxHash=document.blockchain_tx_hash,
        blockchainVerifiedAt=document.blockchain_verified_at,
        createdAt=document.created_at,
        updatedAt=document.updated_at,
        recipients=(
            [recipient_response(r) for r in document.recipients] if include_recipients else None
        ),
    )


def signing_link(recipient: Recipient) -> SigningLink:
    return SigningLink(
        recipientId=recipient.id,
        email=recipient.email,
        name=recipient.name,
        role=recipient.role,
        signingUrl=signing_url(recipient.access_token),
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[DocumentResponse])
async def get_documents(
    is_template: Optional[bool] = Query(None, description="Only templates (true) or documents (false)"),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Get all documents visible to the current user"""
    return [document_response(d) for d in service.get_documents(current_user, is_template)]


@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(
    data: DocumentCreate,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Create a new draft document or template"""
    result = service.create_document(data, current_user)
    raise_for_result(result)
    return document_response(result.value)


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    include_recipients: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Get a document. An overdue sent document is reported as expired."""
    result = service.get_document(document_id, current_user)
    raise_for_result(result)
    return document_response(result.value, include_recipients)


@router.put("/{document_id}", response_model=UpdateDocumentResponse)
async def update_document(
    document_id: str,
    data: DocumentUpdate,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Update a document; editing a sent document creates a new version"""
    result = service.update_document(document_id, data, current_user)
    raise_for_result(result)
    outcome = result.value
    return UpdateDocumentResponse(
        document=document_response(outcome.document, include_recipients=True),
        wasEdited=outcome.was_edited,
        newVersion=outcome.new_version,
        signingLinks=[signing_link(r) for r in outcome.reissued] if outcome.was_edited else None,
    )


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Permanently delete a document and its history"""
    result = service.delete_document(document_id, current_user)
    raise_for_result(result)
    return {"success": True, "message": "Document deleted successfully"}


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{document_id}/send", response_model=SendDocumentResponse)
async def send_document(
    document_id: str,
    data: SendDocumentRequest,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Send a draft to its recipients and return their signing links"""
    result = await service.send_document(document_id, data, current_user)
    raise_for_result(result)
    outcome = result.value
    return SendDocumentResponse(
        document=document_response(outcome.document, include_recipients=True),
        signingLinks=[signing_link(r) for r in outcome.recipients],
    )


@router.post("/{document_id}/duplicate", response_model=DocumentResponse, status_code=201)
async def duplicate_document(
    document_id: str,
    data: Optional[CopyDocumentRequest] = None,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Copy a document or template into a new draft"""
    result = service.duplicate_document(document_id, data or CopyDocumentRequest(), current_user)
    raise_for_result(result)
    return document_response(result.value)


@router.post("/{document_id}/use-template", response_model=DocumentResponse, status_code=201)
async def use_template(
    document_id: str,
    data: Optional[CopyDocumentRequest] = None,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Start a new draft from a template"""
    result = service.use_template(document_id, data or CopyDocumentRequest(), current_user)
    raise_for_result(result)
    return document_response(result.value)


# ============================================================================
# HISTORY
# ============================================================================


@router.get("/{document_id}/versions", response_model=list[VersionResponse])
async def get_versions(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Current version first, then earlier snapshots newest first"""
    result = service.get_versions(document_id, current_user)
    raise_for_result(result)
    document, versions = result.value

    current = VersionResponse(
        versionNumber=document.current_version,
        title=document.title,
        content=document.content or [],
        variables=document.variables,
        changeType="current",
        createdAt=document.updated_at,
        isCurrent=True,
    )
    return [current] + [
        VersionResponse(
            versionNumber=v.version_number,
            title=v.title,
            content=v.content or [],
            variables=v.variables,
            changeType=v.change_type,
            changeDescription=v.change_description,
            createdBy=v.created_by,
            createdAt=v.created_at,
        )
        for v in versions
    ]


@router.get("/{document_id}/events", response_model=list[EventResponse])
async def get_events(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Activity log, newest first"""
    result = service.get_events(document_id, current_user)
    raise_for_result(result)
    return [
        EventResponse(
            id=event.id,
            eventType=event.event_type,
            eventData=event.event_data,
            recipientId=event.recipient_id,
            recipientName=event.recipient.name if event.recipient else None,
            recipientEmail=event.recipient.email if event.recipient else None,
            createdAt=event.created_at,
        )
        for event in result.value
    ]
