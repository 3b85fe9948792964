import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    documents = relationship("Document", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.full_name or self.company_name or "Someone"


class OrganizationMember(Base):
    __tablename__ = "organization_members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_org_member"),)

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(50), default="member", nullable=False)  # owner, admin, member
    status = Column(String(50), default="active", nullable=False)  # active, invited, removed
    created_at = Column(DateTime, server_default=func.now())


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Organization ownership (null for solo users)
    organization_id = Column(String(36), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    # Status workflow: draft → sent → viewed → completed, with declined/expired terminal
    status = Column(String(20), default="draft", nullable=False, index=True)
    content = Column(JSON, default=list, nullable=False)  # Ordered list of content blocks
    variables = Column(JSON, nullable=True)
    settings = Column(JSON, nullable=True)
    is_template = Column(Boolean, default=False, nullable=False, index=True)
    template_category = Column(String(100), nullable=True)
    current_version = Column(Integer, default=1, nullable=False)
    # Lock after first signature - content/title are frozen from here on
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String(36), nullable=True)  # Recipient id (no FK to avoid a cycle)
    sent_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    # Verification anchoring (write-once)
    blockchain_tx_hash = Column(String(100), nullable=True)
    blockchain_verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="documents")
    recipients = relationship(
        "Recipient",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Recipient.signing_order",
    )
    versions = relationship(
        "DocumentVersion", back_populates="document", cascade="all, delete-orphan"
    )
    events = relationship("DocumentEvent", back_populates="document", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="document", cascade="all, delete-orphan")
    retired_tokens = relationship(
        "RetiredAccessToken", back_populates="document", cascade="all, delete-orphan"
    )


class Recipient(Base):
    __tablename__ = "recipients"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), default="signer", nullable=False)  # signer, viewer, approver
    signing_order = Column(Integer, default=1, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, viewed, signed, declined
    access_token = Column(String(128), unique=True, index=True, nullable=False)
    viewed_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signature_data = Column(JSON, nullable=True)  # {type, data, signedAt}
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(String(500), nullable=True)
    # Payment tracking mirrored from the latest payment webhook
    payment_status = Column(String(20), nullable=True)  # pending, processing, succeeded, failed, refunded
    payment_amount = Column(Integer, nullable=True)  # Amount in cents
    payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    document = relationship("Document", back_populates="recipients")


class RetiredAccessToken(Base):
    """Access tokens superseded by a reissue; resolving one yields a 'link expired' signal"""

    __tablename__ = "retired_access_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_email = Column(String(255), nullable=True)
    reason = Column(String(50), nullable=False)  # roster_replaced, document_edited
    retired_at = Column(DateTime, nullable=False)

    document = relationship("Document", back_populates="retired_tokens")


class DocumentVersion(Base):
    __tablename__ = "document_versions"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number = Column(Integer, nullable=False, index=True)  # The version being superseded
    title = Column(String(255), nullable=False)
    content = Column(JSON, default=list, nullable=False)
    variables = Column(JSON, nullable=True)
    change_type = Column(String(20), default="edited", nullable=False)  # created, edited, sent, resent
    change_description = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False)

    document = relationship("Document", back_populates="versions")


class DocumentEvent(Base):
    __tablename__ = "document_events"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id = Column(
        String(36), ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True, index=True
    )
    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, index=True)

    document = relationship("Document", back_populates="events")
    recipient = relationship("Recipient")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id = Column(
        String(36), ForeignKey("recipients.id", ondelete="SET NULL"), nullable=True
    )
    payment_intent_id = Column(String(255), unique=True, index=True, nullable=True)
    amount = Column(Integer, nullable=False)  # Amount in cents
    currency = Column(String(10), default="usd", nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    document = relationship("Document", back_populates="payments")
