"""Document domain schemas - Pydantic models for validation"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ...shared.validators import validate_document_settings


class DocumentCreate(BaseModel):
    """Schema for creating a new document or template"""

    title: str = Field(..., min_length=1, max_length=255)
    content: list[dict[str, Any]] = Field(default_factory=list)
    variables: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None
    is_template: bool = False
    template_category: Optional[str] = Field(None, max_length=100)
    organization_id: Optional[str] = None

    @field_validator("settings")
    @classmethod
    def check_settings(cls, v):
        return validate_document_settings(v)


class DocumentUpdate(BaseModel):
    """Schema for a partial document update"""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[list[dict[str, Any]]] = None
    status: Optional[str] = None
    variables: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = None
    is_template: Optional[bool] = None
    template_category: Optional[str] = Field(None, max_length=100)

    @field_validator("settings")
    @classmethod
    def check_settings(cls, v):
        return validate_document_settings(v)

    @field_validator("expires_at")
    @classmethod
    def to_naive_utc(cls, v):
        # Stored timestamps are naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class RecipientInput(BaseModel):
    """One recipient of a send request"""

    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    role: Literal["signer", "viewer", "approver"] = "signer"
    signing_order: Optional[int] = Field(None, ge=1)


class SendDocumentRequest(BaseModel):
    """Schema for sending a draft to its recipients"""

    recipients: list[RecipientInput]
    message: Optional[str] = Field(None, max_length=5000)
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)


class CopyDocumentRequest(BaseModel):
    """Schema for duplicate and use-template"""

    title: Optional[str] = Field(None, min_length=1, max_length=255)


# ============================================================================
# RESPONSES
# ============================================================================


class RecipientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str]
    role: str
    signingOrder: int
    status: str
    viewedAt: Optional[datetime] = None
    signedAt: Optional[datetime] = None
    paymentStatus: Optional[str] = None
    paymentAmount: Optional[int] = None


class DocumentResponse(BaseModel):
    """Schema for document response"""

    id: str
    title: str
    status: str
    content: list[dict[str, Any]]
    variables: Optional[dict[str, Any]] = None
    settings: Optional[dict[str, Any]] = None
    isTemplate: bool
    templateCategory: Optional[str] = None
    organizationId: Optional[str] = None
    currentVersion: int
    lockedAt: Optional[datetime] = None
    sentAt: Optional[datetime] = None
    expiresAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    blockchainTxHash: Optional[str] = None
    blockchainVerifiedAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    recipients: Optional[list[RecipientResponse]] = None


class SigningLink(BaseModel):
    recipientId: str
    email: str
    name: Optional[str]
    role: str
    signingUrl: str


class SendDocumentResponse(BaseModel):
    document: DocumentResponse
    signingLinks: list[SigningLink]


class UpdateDocumentResponse(BaseModel):
    document: DocumentResponse
    wasEdited: bool
    newVersion: Optional[int] = None
    # Fresh links when an edit after sending invalidated the previous ones
    signingLinks: Optional[list[SigningLink]] = None


class VersionResponse(BaseModel):
    versionNumber: int
    title: str
    content: list[dict[str, Any]]
    variables: Optional[dict[str, Any]] = None
    changeType: str
    changeDescription: Optional[str] = None
    createdBy: Optional[int] = None
    createdAt: Optional[datetime] = None
    isCurrent: bool = False


class EventResponse(BaseModel):
    id: int
    eventType: str
    eventData: Optional[dict[str, Any]] = None
    recipientId: Optional[str] = None
    recipientName: Optional[str] = None
    recipientEmail: Optional[str] = None
    createdAt: datetime
