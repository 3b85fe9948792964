"""Signing portal schemas"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class SignatureInput(BaseModel):
    type: Literal["draw", "type", "upload"] = "draw"
    data: str = Field(..., min_length=1)


class SignRequest(BaseModel):
    signature_data: SignatureInput


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SigningRecipient(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    status: str
    signingOrder: int
    viewedAt: Optional[datetime] = None
    signedAt: Optional[datetime] = None


class SigningDocument(BaseModel):
    id: str
    title: str
    status: str
    content: list[dict[str, Any]]
    variables: Optional[dict[str, Any]] = None
    currentVersion: int
    lockedAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None


class SigningViewResponse(BaseModel):
    document: SigningDocument
    recipient: SigningRecipient
    signers: list[SigningRecipient]
    payment: Optional[dict[str, Any]] = None
    senderName: Optional[str] = None


class SignResponse(BaseModel):
    success: bool = True
    allSigned: bool
    completed: bool
    documentStatus: str


class RecipientActionResponse(BaseModel):
    success: bool = True
    recipientStatus: str
    documentStatus: str
