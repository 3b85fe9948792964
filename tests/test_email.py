import pytest

from proposals import email_service
from proposals.email_service import (
    COMPLETION_NOTICE,
    INVITATION,
    REMINDER,
    MessageDispatcher,
    MessageInstruction,
    send_email,
)
from proposals.shared.errors import ExternalDependencyError

SIGNING_URL = "https://app.test/sign/abc123"


class TestRendering:
    def test_invitation(self):
        subject, mjml = MessageDispatcher().render(
            MessageInstruction(
                kind=INVITATION,
                to="alice@client.com",
                name="Alice",
                document_id="doc-1",
                context={
                    "document_title": "Website Redesign",
                    "sender_name": "Olivia Owner",
                    "signing_url": SIGNING_URL,
                    "message": "Looking forward to working together",
                    "expires_at": "March 16, 2026",
                },
            )
        )
        assert subject == 'Olivia Owner sent you "Website Redesign"'
        assert SIGNING_URL in mjml
        assert "Hi Alice" in mjml
        assert "Looking forward to working together" in mjml
        assert "March 16, 2026" in mjml
        assert "Review &amp; Sign" in mjml or "Review & Sign" in mjml

    def test_reminder_mentions_days(self):
        subject, mjml = MessageDispatcher().render(
            MessageInstruction(
                kind=REMINDER,
                to="bob@client.com",
                document_id="doc-1",
                context={"document_title": "NDA", "signing_url": SIGNING_URL, "day_number": 3},
            )
        )
        assert subject == 'Reminder: "NDA" is waiting for you'
        assert "3 days ago" in mjml
        assert SIGNING_URL in mjml

    def test_completion_notice_links_to_document(self):
        _, mjml = MessageDispatcher().render(
            MessageInstruction(
                kind=COMPLETION_NOTICE,
                to="owner@example.com",
                name="Olivia",
                document_id="doc-1",
                context={"document_title": "NDA", "payment_collected": True},
            )
        )
        assert "doc-1" in mjml
        assert "Collected" in mjml

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            MessageDispatcher().render(MessageInstruction(kind="fax", to="a@b.co", document_id="d"))


class TestSending:
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(email_service, "RESEND_API_KEY", None)
        with pytest.raises(ExternalDependencyError):
            await send_email("alice@client.com", "Hello", "<mjml></mjml>")

    async def test_send_goes_through_resend(self, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(email_service, "compile_mjml_to_html", lambda mjml: "<html>ok</html>")
        monkeypatch.setattr(
            email_service.resend.Emails, "send", lambda data: sent.append(data) or {"id": "email-1"}
        )

        response = await send_email("alice@client.com", "Hello", "<mjml></mjml>")

        assert response == {"id": "email-1"}
        assert sent[0]["to"] == ["alice@client.com"]
        assert sent[0]["html"] == "<html>ok</html>"

    async def test_provider_error_is_external_dependency(self, monkeypatch):
        def fail(data):
            raise RuntimeError("provider down")

        monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(email_service, "compile_mjml_to_html", lambda mjml: "<html></html>")
        monkeypatch.setattr(email_service.resend.Emails, "send", fail)

        with pytest.raises(ExternalDependencyError):
            await send_email("alice@client.com", "Hello", "<mjml></mjml>")
