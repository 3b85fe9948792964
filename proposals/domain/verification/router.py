"""Verification router - anchoring status and trigger for completed documents"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.http import raise_for_result
from .anchor_client import AnchorClient, get_anchor_client
from .service import VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Verification"])


def get_verification_service(
    db: Session = Depends(get_db), anchor: AnchorClient = Depends(get_anchor_client)
) -> VerificationService:
    return VerificationService(db, anchor)


@router.get("/{document_id}/verify")
async def get_verification_status(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Anchoring status; re-checks the stored hash against the anchor when inscribed"""
    result = await service.get_status(document_id, current_user)
    raise_for_result(result)
    return result.value


@router.post("/{document_id}/verify")
async def verify_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    """Anchor the hash of a completed document"""
    if not service.anchor.is_configured:
        raise HTTPException(status_code=503, detail="Blockchain verification is not configured")
    result = await service.inscribe(document_id, current_user)
    raise_for_result(result)
    return result.value
