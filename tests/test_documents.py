from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import NOW
from proposals.domain.documents.results import ErrorKind
from proposals.domain.documents.schemas import (
    CopyDocumentRequest,
    DocumentCreate,
    DocumentUpdate,
    SendDocumentRequest,
)
from proposals.domain.signing.roster import RosterManager
from proposals.email_service import INVITATION
from proposals.models import Document, DocumentEvent, DocumentVersion, Recipient


def event_types(db, document_id):
    return [
        e.event_type
        for e in db.query(DocumentEvent)
        .filter_by(document_id=document_id)
        .order_by(DocumentEvent.id)
        .all()
    ]


class TestCreateAndRead:
    def test_create_draft_records_created_event(self, db, make_document):
        """A new document starts as a draft at version 1"""
        document = make_document()
        assert document.status == "draft"
        assert document.current_version == 1
        assert event_types(db, document.id) == ["document_created"]

    def test_create_template_records_template_event(self, db, make_document):
        """Templates get their own creation event"""
        template = make_document(is_template=True, template_category="web")
        assert template.is_template
        assert event_types(db, template.id) == ["template_created"]

    def test_other_users_cannot_see_document(self, service, make_document, other_user):
        """Invisible documents are reported as not found"""
        document = make_document()
        result = service.get_document(document.id, other_user)
        assert not result.ok
        assert result.error == ErrorKind.NOT_FOUND

    def test_organization_members_can_see_document(self, service, make_document, org_member):
        """Active members of the owning organization see its documents"""
        document = make_document(organization_id="org-1")
        assert service.get_document(document.id, org_member).ok
        assert document.id in [d.id for d in service.get_documents(org_member)]

    def test_list_filters_templates(self, service, make_document, user):
        """is_template narrows the listing"""
        make_document(title="Doc")
        make_document(title="Tpl", is_template=True)
        assert [d.title for d in service.get_documents(user, is_template=True)] == ["Tpl"]
        assert [d.title for d in service.get_documents(user, is_template=False)] == ["Doc"]


class TestSend:
    async def test_send_moves_draft_to_sent(self, db, make_document, send_document, dispatcher):
        """Send replaces the roster, stamps sent_at and emails every recipient"""
        document = make_document()
        outcome = await send_document(document, expires_in_days=14)

        assert outcome.document.status == "sent"
        assert outcome.document.sent_at == NOW
        assert outcome.document.expires_at == NOW + timedelta(days=14)
        assert [r.status for r in outcome.recipients] == ["pending", "pending"]
        assert [r.signing_order for r in outcome.recipients] == [1, 2]

        invitations = dispatcher.of_kind(INVITATION)
        assert [i.to for i in invitations] == ["alice@client.com", "bob@client.com"]
        assert invitations[0].context["signing_url"] == (
            f"https://app.test/sign/{outcome.recipients[0].access_token}"
        )

        sent_event = db.query(DocumentEvent).filter_by(
            document_id=document.id, event_type="document_sent"
        ).one()
        assert [r["email"] for r in sent_event.event_data["recipients"]] == [
            "alice@client.com",
            "bob@client.com",
        ]

    async def test_expiration_defaults_to_settings(self, make_document, send_document):
        """settings.expirationDays applies when the request has no override"""
        document = make_document(settings={"expirationDays": 3})
        outcome = await send_document(document)
        assert outcome.document.expires_at == NOW + timedelta(days=3)

    async def test_templates_cannot_be_sent(self, service, make_document, user):
        """Templates never enter the signing lifecycle"""
        template = make_document(is_template=True)
        request = SendDocumentRequest(recipients=[{"email": "a@client.com"}])
        result = await service.send_document(template.id, request, user, now=NOW)
        assert result.error == ErrorKind.INVALID_TRANSITION

    async def test_send_twice_is_rejected(self, service, make_document, send_document, user):
        """Only drafts can be sent"""
        document = make_document()
        await send_document(document)
        request = SendDocumentRequest(recipients=[{"email": "a@client.com"}])
        result = await service.send_document(document.id, request, user, now=NOW)
        assert result.error == ErrorKind.INVALID_TRANSITION

    async def test_empty_recipient_list_is_invalid(self, service, make_document, user):
        """At least one recipient is required"""
        document = make_document()
        result = await service.send_document(
            document.id, SendDocumentRequest(recipients=[]), user, now=NOW
        )
        assert result.error == ErrorKind.VALIDATION
        assert "recipients" in result.details["fields"]

    async def test_invitation_failure_rolls_back_send(
        self, db, service, make_document, user, dispatcher
    ):
        """Recipients must get working links, so a failed invitation aborts the send"""
        document = make_document()
        dispatcher.fail_for.add("bob@client.com")
        request = SendDocumentRequest(
            recipients=[{"email": "alice@client.com"}, {"email": "bob@client.com"}]
        )

        result = await service.send_document(document.id, request, user, now=NOW)

        assert result.error == ErrorKind.EXTERNAL_DEPENDENCY
        db.refresh(document)
        assert document.status == "draft"
        assert db.query(Recipient).filter_by(document_id=document.id).count() == 0
        assert "document_sent" not in event_types(db, document.id)


class TestEditAfterSend:
    async def test_edit_snapshots_and_reissues_links(
        self, db, service, make_document, send_document, user
    ):
        """Editing a sent document records the old version and invalidates old links"""
        document = make_document(title="Original")
        outcome = await send_document(document)
        old_tokens = [r.access_token for r in outcome.recipients]
        roster = RosterManager(db)
        assert roster.record_view(old_tokens[0], now=NOW + timedelta(hours=1)).ok

        result = service.update_document(
            document.id, DocumentUpdate(title="Revised"), user, now=NOW + timedelta(hours=2)
        )

        assert result.ok
        assert result.value.was_edited
        assert result.value.new_version == 2
        document = db.get(Document, document.id)
        assert document.title == "Revised"
        assert document.current_version == 2

        versions = db.query(DocumentVersion).filter_by(document_id=document.id).all()
        assert len(versions) == 1
        assert versions[0].version_number == 1
        assert versions[0].title == "Original"
        assert versions[0].change_type == "edited"

        edited = db.query(DocumentEvent).filter_by(
            document_id=document.id, event_type="document_edited"
        ).one()
        assert edited.event_data["previous_version"] == 1
        assert edited.event_data["new_version"] == 2

        for recipient in document.recipients:
            assert recipient.access_token not in old_tokens
            assert recipient.status == "pending"
            assert recipient.viewed_at is None

        for token in old_tokens:
            stale = roster.record_view(token, now=NOW + timedelta(hours=3))
            assert stale.error == ErrorKind.LINK_EXPIRED
        for recipient in document.recipients:
            assert roster.record_view(recipient.access_token, now=NOW + timedelta(hours=3)).ok

    async def test_each_edit_adds_exactly_one_version(
        self, db, service, make_document, send_document, user
    ):
        """Versions increase by one per edit and snapshots track the pre-edit number"""
        document = make_document()
        await send_document(document)

        for n, title in enumerate(["Second", "Third", "Fourth"], start=1):
            result = service.update_document(document.id, DocumentUpdate(title=title), user, now=NOW)
            assert result.value.new_version == n + 1

        numbers = sorted(
            v.version_number for v in db.query(DocumentVersion).filter_by(document_id=document.id)
        )
        assert numbers == [1, 2, 3]

    async def test_metadata_only_update_does_not_version(
        self, db, service, make_document, send_document, user
    ):
        """Settings changes leave version and links alone"""
        document = make_document()
        outcome = await send_document(document)
        tokens = [r.access_token for r in outcome.recipients]

        result = service.update_document(
            document.id, DocumentUpdate(settings={"reminderDays": [2, 4]}), user, now=NOW
        )

        assert result.ok
        assert not result.value.was_edited
        document = db.get(Document, document.id)
        assert document.current_version == 1
        assert [r.access_token for r in document.recipients] == tokens
        assert db.query(DocumentVersion).filter_by(document_id=document.id).count() == 0

    async def test_edit_rejected_once_locked(
        self, db, service, make_document, send_document, user
    ):
        """The first signature freezes title and content"""
        document = make_document(title="Original")
        outcome = await send_document(document)
        signed = await RosterManager(db).record_signature(
            outcome.recipients[0].access_token, {"type": "type", "data": "Alice"}, now=NOW
        )
        assert signed.ok

        result = service.update_document(
            document.id,
            DocumentUpdate(title="Sneaky change", content=[]),
            user,
            now=NOW + timedelta(hours=1),
        )

        assert result.error == ErrorKind.INVALID_TRANSITION
        document = db.get(Document, document.id)
        assert document.title == "Original"
        assert document.current_version == 1
        assert db.query(DocumentVersion).filter_by(document_id=document.id).count() == 0

    async def test_edit_rejected_when_declined(
        self, db, service, make_document, send_document, user
    ):
        """Declined documents are terminal"""
        document = make_document()
        outcome = await send_document(document)
        RosterManager(db).record_decline(outcome.recipients[0].access_token, "No", now=NOW)

        result = service.update_document(document.id, DocumentUpdate(title="New"), user, now=NOW)
        assert result.error == ErrorKind.INVALID_TRANSITION


class TestStatusChanges:
    def test_manual_completion_is_rejected(self, service, make_document, user):
        """Completion only happens through the completion evaluator"""
        document = make_document()
        result = service.update_document(document.id, DocumentUpdate(status="completed"), user)
        assert result.error == ErrorKind.INVALID_TRANSITION

    async def test_owner_can_expire_sent_document(
        self, db, service, make_document, send_document, user
    ):
        """sent → expired is an allowed manual transition and is logged"""
        document = make_document()
        await send_document(document)

        result = service.update_document(document.id, DocumentUpdate(status="expired"), user, now=NOW)

        assert result.ok
        assert result.value.document.status == "expired"
        assert "document_expired" in event_types(db, document.id)

    async def test_overdue_document_reads_as_expired(
        self, db, service, make_document, send_document, user
    ):
        """Expiration is applied lazily on read, once"""
        document = make_document()
        await send_document(document, expires_in_days=1)

        later = NOW + timedelta(hours=25)
        assert service.get_document(document.id, user, now=later).value.status == "expired"
        assert service.get_document(document.id, user, now=later).value.status == "expired"
        assert event_types(db, document.id).count("document_expired") == 1

    async def test_document_before_deadline_stays_sent(
        self, service, make_document, send_document, user
    ):
        """A read before expires_at does not expire"""
        document = make_document()
        await send_document(document, expires_in_days=1)
        result = service.get_document(document.id, user, now=NOW + timedelta(hours=23))
        assert result.value.status == "sent"

    def test_template_toggle_requires_unsent_draft(self, service, make_document, user):
        """Drafts without recipients can become templates"""
        document = make_document()
        result = service.update_document(document.id, DocumentUpdate(is_template=True), user)
        assert result.ok
        assert result.value.document.is_template

    async def test_declined_document_cannot_be_edited(
        self, db, service, make_document, send_document, user
    ):
        document = make_document()
        alice, _ = (await send_document(document)).recipients
        RosterManager(db).record_decline(alice.access_token, "Not interested", now=NOW)

        result = service.update_document(document.id, DocumentUpdate(title="Retitled"), user, now=NOW)

        assert result.error == ErrorKind.INVALID_TRANSITION
        assert result.message == "Cannot edit a declined document"


class TestCopies:
    def test_duplicate_creates_copy_draft(self, db, service, make_document, user):
        """Duplicates are new drafts titled '(Copy)'"""
        document = make_document(title="Proposal")
        result = service.duplicate_document(document.id, CopyDocumentRequest(), user)

        copy = result.value
        assert copy.id != document.id
        assert copy.title == "Proposal (Copy)"
        assert copy.status == "draft"
        assert not copy.is_template
        assert copy.content == document.content
        created = db.query(DocumentEvent).filter_by(document_id=copy.id).one()
        assert created.event_data["source"] == "duplicate"
        assert created.event_data["original_document_id"] == document.id

    def test_use_template_creates_document(self, db, service, make_document, user):
        """A template instantiates into a normal draft"""
        template = make_document(title="Standard NDA", is_template=True)
        result = service.use_template(template.id, CopyDocumentRequest(title="NDA for Acme"), user)

        document = result.value
        assert document.title == "NDA for Acme"
        assert not document.is_template
        created = db.query(DocumentEvent).filter_by(document_id=document.id).one()
        assert created.event_data["template_id"] == template.id

    def test_use_template_requires_template(self, service, make_document, user):
        """Only templates can be instantiated"""
        document = make_document()
        result = service.use_template(document.id, CopyDocumentRequest(), user)
        assert result.error == ErrorKind.INVALID_TRANSITION

    async def test_delete_cascades(self, db, service, make_document, send_document, user):
        """Hard delete removes recipients and events"""
        document = make_document()
        await send_document(document)

        assert service.delete_document(document.id, user).ok
        assert db.query(Document).filter_by(id=document.id).count() == 0
        assert db.query(Recipient).filter_by(document_id=document.id).count() == 0
        assert db.query(DocumentEvent).filter_by(document_id=document.id).count() == 0


class TestSchemas:
    def test_expiration_days_range_is_validated(self):
        """expirationDays outside 1..365 is rejected"""
        with pytest.raises(ValidationError):
            DocumentCreate(title="Doc", settings={"expirationDays": 0})
        with pytest.raises(ValidationError):
            DocumentUpdate(settings={"reminderDays": ["soon"]})

    def test_aware_expiration_is_stored_as_naive_utc(self):
        update = DocumentUpdate(
            expires_at=datetime(2026, 4, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        )
        assert update.expires_at == datetime(2026, 4, 1, 12, 0)
        assert update.expires_at.tzinfo is None
        assert DocumentUpdate(expires_at="2099-01-01T00:00:00Z").expires_at == datetime(2099, 1, 1)
