from datetime import timedelta

import pytest

from conftest import NOW
from proposals.domain.documents.results import ErrorKind
from proposals.domain.signing.roster import RosterManager
from proposals.email_service import COMPLETION_NOTICE, SIGNATURE_CONFIRMATION
from proposals.models import DocumentEvent

SIGNATURE = {"type": "type", "data": "Signed by hand"}


@pytest.fixture
def roster(db, dispatcher):
    return RosterManager(db, dispatcher)


def count_events(db, document_id, event_type):
    return db.query(DocumentEvent).filter_by(document_id=document_id, event_type=event_type).count()


class TestViewing:
    async def test_first_view_marks_recipient_and_document(
        self, db, roster, make_document, send_document
    ):
        """Only the first view changes state and logs an event"""
        document = make_document()
        alice, _ = (await send_document(document)).recipients

        first = roster.record_view(alice.access_token, "Mozilla/5.0", now=NOW + timedelta(hours=1))
        second = roster.record_view(alice.access_token, "Mozilla/5.0", now=NOW + timedelta(hours=2))

        assert first.ok and second.ok
        assert second.value.status == "viewed"
        assert second.value.viewed_at == NOW + timedelta(hours=1)
        assert second.value.document.status == "viewed"
        assert count_events(db, document.id, "document_viewed") == 1

    def test_unknown_token_is_not_found(self, roster):
        """Tokens that were never issued are rejected"""
        result = roster.record_view("not-a-real-token", now=NOW)
        assert result.error == ErrorKind.NOT_FOUND

    async def test_expired_document_reports_link_expired(
        self, db, roster, make_document, send_document
    ):
        """A link to an overdue document expires it and is refused"""
        document = make_document()
        alice, _ = (await send_document(document, expires_in_days=1)).recipients

        result = roster.record_view(alice.access_token, now=NOW + timedelta(days=2))

        assert result.error == ErrorKind.LINK_EXPIRED
        db.refresh(document)
        assert document.status == "expired"
        assert count_events(db, document.id, "document_expired") == 1

    async def test_signing_view_exposes_payment_requirement(
        self, roster, make_document, send_document
    ):
        """The signing page learns what payment is required"""
        document = make_document(
            content=[
                {"id": "b1", "type": "text", "data": {"text": "Scope"}},
                {"id": "b2", "type": "payment", "data": {"required": True, "amount": 50000}},
            ]
        )
        alice, _ = (await send_document(document)).recipients

        view = roster.get_signing_view(alice.access_token, now=NOW)

        assert view.ok
        assert view.value.recipient.email == "alice@client.com"
        assert view.value.payment == {"amount": 50000, "currency": "usd", "source": "content_block"}


class TestSigning:
    async def test_signature_is_recorded(self, roster, make_document, send_document, dispatcher):
        """Signing stores the signature and confirms by email"""
        document = make_document()
        alice, _ = (await send_document(document)).recipients

        result = await roster.record_signature(
            alice.access_token, SIGNATURE, ip_address="203.0.113.5", now=NOW + timedelta(hours=1)
        )

        assert result.ok
        outcome = result.value
        assert outcome.recipient.status == "signed"
        assert outcome.recipient.signed_at == NOW + timedelta(hours=1)
        assert outcome.recipient.ip_address == "203.0.113.5"
        assert outcome.recipient.signature_data["data"] == "Signed by hand"
        assert outcome.recipient.signature_data["signedAt"] == (NOW + timedelta(hours=1)).isoformat()
        assert not outcome.all_signed
        assert not outcome.completed
        assert [i.to for i in dispatcher.of_kind(SIGNATURE_CONFIRMATION)] == ["alice@client.com"]

    async def test_first_signature_locks_document_once(
        self, db, roster, make_document, send_document
    ):
        """Only the first signature sets locked_at and logs the lock"""
        document = make_document()
        alice, bob = (await send_document(document)).recipients

        await roster.record_signature(alice.access_token, SIGNATURE, now=NOW + timedelta(hours=1))
        await roster.record_signature(bob.access_token, SIGNATURE, now=NOW + timedelta(hours=2))

        db.refresh(document)
        assert document.locked_at == NOW + timedelta(hours=1)
        assert document.locked_by == alice.id
        assert count_events(db, document.id, "document_locked") == 1

    async def test_last_signature_completes_document(
        self, db, roster, make_document, send_document, dispatcher
    ):
        """Without a payment requirement the last signer completes the document"""
        document = make_document()
        alice, bob = (await send_document(document)).recipients

        await roster.record_signature(alice.access_token, SIGNATURE, now=NOW + timedelta(hours=1))
        result = await roster.record_signature(bob.access_token, SIGNATURE, now=NOW + timedelta(hours=2))

        assert result.value.all_signed
        assert result.value.completed
        assert result.value.document.status == "completed"
        assert result.value.document.completed_at == NOW + timedelta(hours=2)
        assert count_events(db, document.id, "document_completed") == 1
        notices = dispatcher.of_kind(COMPLETION_NOTICE)
        assert [n.to for n in notices] == ["owner@example.com"]

    async def test_signing_twice_is_already_actioned(self, roster, make_document, send_document):
        """A signer cannot sign again"""
        document = make_document()
        alice, _ = (await send_document(document)).recipients

        await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)
        again = await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)

        assert again.error == ErrorKind.ALREADY_ACTIONED

    async def test_viewer_cannot_sign(self, roster, make_document, send_document):
        """Only signers sign"""
        document = make_document()
        _, viewer = (
            await send_document(
                document,
                recipients=[
                    {"email": "alice@client.com", "role": "signer"},
                    {"email": "cfo@client.com", "role": "viewer"},
                ],
            )
        ).recipients

        result = await roster.record_signature(viewer.access_token, SIGNATURE, now=NOW)

        assert result.error == ErrorKind.INVALID_TRANSITION
        assert result.message == "You are not authorized to sign this document"

    async def test_signing_order_is_enforced_when_required(
        self, roster, make_document, send_document
    ):
        """With requireSigningOrder, later signers wait for earlier ones"""
        document = make_document(settings={"requireSigningOrder": True})
        alice, bob = (await send_document(document)).recipients

        early = await roster.record_signature(bob.access_token, SIGNATURE, now=NOW)
        assert early.error == ErrorKind.INVALID_TRANSITION
        assert early.message == "Waiting for other signers to complete first"

        assert (await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)).ok
        assert (await roster.record_signature(bob.access_token, SIGNATURE, now=NOW)).ok

    async def test_confirmation_failure_does_not_undo_signature(
        self, db, roster, make_document, send_document, dispatcher
    ):
        """Post-commit notifications are best effort"""
        document = make_document()
        alice, _ = (await send_document(document)).recipients
        dispatcher.fail_for.add("alice@client.com")

        result = await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)

        assert result.ok
        db.refresh(alice)
        assert alice.status == "signed"


class TestDeclining:
    async def test_signer_decline_declines_document(
        self, db, roster, make_document, send_document
    ):
        """A declining signer ends the document"""
        document = make_document()
        alice, bob = (await send_document(document)).recipients

        result = roster.record_decline(alice.access_token, "<b>Price too high</b>", now=NOW)

        assert result.ok
        assert result.value.status == "declined"
        db.refresh(document)
        assert document.status == "declined"
        event = db.query(DocumentEvent).filter_by(
            document_id=document.id, event_type="document_declined"
        ).one()
        assert event.event_data["reason"] == "Price too high"
        assert event.recipient_id == alice.id

        late = roster.record_decline(bob.access_token, now=NOW)
        assert late.error == ErrorKind.INVALID_TRANSITION

    async def test_viewer_decline_leaves_document_active(
        self, db, roster, make_document, send_document
    ):
        """A viewer declining does not block the signers"""
        document = make_document()
        alice, viewer = (
            await send_document(
                document,
                recipients=[
                    {"email": "alice@client.com", "role": "signer"},
                    {"email": "cfo@client.com", "role": "viewer"},
                ],
            )
        ).recipients

        assert roster.record_decline(viewer.access_token, now=NOW).ok
        db.refresh(document)
        assert document.status == "sent"

        signed = await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)
        assert signed.value.completed

    async def test_decline_after_signing_is_already_actioned(
        self, roster, make_document, send_document
    ):
        """Recipients act once"""
        document = make_document()
        alice, _ = (await send_document(document)).recipients
        await roster.record_signature(alice.access_token, SIGNATURE, now=NOW)

        result = roster.record_decline(alice.access_token, now=NOW)

        assert result.error == ErrorKind.ALREADY_ACTIONED
