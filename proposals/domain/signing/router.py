"""Signing portal router - token-authenticated recipient actions, no session required"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...email_service import MessageDispatcher, get_message_dispatcher
from ...models import Recipient
from ...shared.http import raise_for_result
from .roster import RosterManager
from .schemas import (
    DeclineRequest,
    RecipientActionResponse,
    SigningDocument,
    SigningRecipient,
    SigningViewResponse,
    SignRequest,
    SignResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sign", tags=["Signing"])


def get_roster_manager(
    db: Session = Depends(get_db),
    dispatcher: MessageDispatcher = Depends(get_message_dispatcher),
) -> RosterManager:
    """Dependency injection for RosterManager"""
    return RosterManager(db, dispatcher)


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _signing_recipient(recipient: Recipient) -> SigningRecipient:
    return SigningRecipient(
        id=recipient.id,
        email=recipient.email,
        name=recipient.name,
        role=recipient.role,
        status=recipient.status,
        signingOrder=recipient.signing_order,
        viewedAt=recipient.viewed_at,
        signedAt=recipient.signed_at,
    )


@router.get("/{token}", response_model=SigningViewResponse)
async def get_signing_view(token: str, roster: RosterManager = Depends(get_roster_manager)):
    """Load the document behind a signing link"""
    result = roster.get_signing_view(token)
    raise_for_result(result)
    view = result.value
    document = view.document

    return SigningViewResponse(
        document=SigningDocument(
            id=document.id,
            title=document.title,
            status=document.status,
            content=document.content or [],
            variables=document.variables,
            currentVersion=document.current_version,
            lockedAt=document.locked_at,
            expiresAt=document.expires_at,
            completedAt=document.completed_at,
        ),
        recipient=_signing_recipient(view.recipient),
        signers=[_signing_recipient(r) for r in document.recipients if r.role == "signer"],
        payment=view.payment,
        senderName=document.user.display_name if document.user else None,
    )


@router.post("/{token}/view", response_model=RecipientActionResponse)
async def record_view(
    token: str, request: Request, roster: RosterManager = Depends(get_roster_manager)
):
    """Record that the recipient opened the document. Repeat calls change nothing."""
    result = roster.record_view(token, user_agent=request.headers.get("user-agent"))
    raise_for_result(result)
    recipient = result.value
    return RecipientActionResponse(
        recipientStatus=recipient.status, documentStatus=recipient.document.status
    )


@router.post("/{token}/sign", response_model=SignResponse)
async def sign_document(
    token: str,
    data: SignRequest,
    request: Request,
    roster: RosterManager = Depends(get_roster_manager),
):
    """Sign the document as this recipient"""
    result = await roster.record_signature(
        token,
        data.signature_data.model_dump(),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    raise_for_result(result)
    outcome = result.value
    return SignResponse(
        allSigned=outcome.all_signed,
        completed=outcome.completed,
        documentStatus=outcome.document.status,
    )


@router.post("/{token}/decline", response_model=RecipientActionResponse)
async def decline_document(
    token: str,
    data: Optional[DeclineRequest] = None,
    roster: RosterManager = Depends(get_roster_manager),
):
    """Decline the document; a declining signer declines the whole document"""
    result = roster.record_decline(token, reason=data.reason if data else None)
    raise_for_result(result)
    recipient = result.value
    return RecipientActionResponse(
        recipientStatus=recipient.status, documentStatus=recipient.document.status
    )
