import os

# Configure the environment before any proposals module reads it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["APP_BASE_URL"] = "https://app.test"

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from proposals.auth import get_current_user  # noqa: E402
from proposals.database import Base, get_db  # noqa: E402
from proposals.domain.documents.schemas import DocumentCreate, SendDocumentRequest  # noqa: E402
from proposals.domain.documents.service import DocumentService  # noqa: E402
from proposals.domain.verification.anchor_client import (  # noqa: E402
    AnchorClient,
    AnchorReceipt,
    AnchorVerification,
    get_anchor_client,
)
from proposals.email_service import get_message_dispatcher  # noqa: E402
from proposals.main import app  # noqa: E402
from proposals.models import OrganizationMember, User  # noqa: E402
from proposals.shared.errors import ExternalDependencyError  # noqa: E402

NOW = datetime(2026, 3, 2, 12, 0, 0)


class FakeDispatcher:
    """Records instructions instead of sending email"""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    async def dispatch(self, instruction):
        if instruction.to in self.fail_for:
            raise ExternalDependencyError(f"Mailbox unavailable: {instruction.to}")
        self.sent.append(instruction)
        return {"id": f"email-{len(self.sent)}"}

    def of_kind(self, kind):
        return [i for i in self.sent if i.kind == kind]


class FakeAnchorClient(AnchorClient):
    """In-memory anchoring service"""

    def __init__(self, configured=True, fail=False):
        super().__init__(
            base_url="https://anchor.test" if configured else None,
            api_key="anchor-key" if configured else None,
            chain_id=8453,
            chain_name="Base",
            explorer_url="https://basescan.org",
        )
        self.fail = fail
        self.anchored = {}

    async def inscribe(self, document_hash, payload):
        if self.fail:
            raise ExternalDependencyError("Anchoring service error: timeout")
        tx_hash = f"0xtx{len(self.anchored) + 1:062d}"
        self.anchored[tx_hash] = document_hash
        return AnchorReceipt(tx_hash=tx_hash, chain_id=self.chain_id, block_number=100)

    async def verify(self, tx_hash, expected_hash):
        anchored = self.anchored.get(tx_hash)
        verified = anchored == expected_hash
        return AnchorVerification(
            verified=verified,
            document_hash=anchored,
            block_number=100,
            chain_timestamp=1767225600,
            error=None if verified else "Hash mismatch",
        )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    user = User(email="owner@example.com", full_name="Olivia Owner", company_name="Acme Studio")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(email="stranger@example.com", full_name="Sam Stranger")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def org_member(db):
    member = User(email="teammate@example.com", full_name="Tia Teammate")
    db.add(member)
    db.commit()
    db.add(OrganizationMember(organization_id="org-1", user_id=member.id, status="active"))
    db.commit()
    db.refresh(member)
    return member


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def anchor():
    return FakeAnchorClient()


@pytest.fixture
def service(db, dispatcher):
    return DocumentService(db, dispatcher)


@pytest.fixture
def make_document(service, user):
    def _make(title="Website Redesign Proposal", content=None, settings=None, **kwargs):
        data = DocumentCreate(
            title=title,
            content=content
            if content is not None
            else [{"id": "b1", "type": "text", "data": {"text": "Scope of work"}}],
            settings=settings,
            **kwargs,
        )
        result = service.create_document(data, user)
        assert result.ok
        return result.value

    return _make


@pytest.fixture
def send_document(service, user):
    async def _send(document, recipients=None, now=NOW, **kwargs):
        request = SendDocumentRequest(
            recipients=recipients
            or [
                {"email": "alice@client.com", "name": "Alice", "role": "signer"},
                {"email": "bob@client.com", "name": "Bob", "role": "signer"},
            ],
            **kwargs,
        )
        result = await service.send_document(document.id, request, user, now=now)
        assert result.ok, result.message
        return result.value

    return _send


@pytest.fixture
def client(db, user, dispatcher, anchor):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_message_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_anchor_client] = lambda: anchor
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def days_after(start, days, hours=0):
    return start + timedelta(days=days, hours=hours)
