"""
Email Service using Resend
Renders MJML templates and delivers lifecycle emails (invitation, reminder,
signature confirmation, completion notice)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, EMAIL_SEND_TIMEOUT_SECONDS, RESEND_API_KEY
from .email_templates import (
    completion_notice_template,
    document_invitation_template,
    document_reminder_template,
    signature_confirmation_template,
)
from .shared.errors import ExternalDependencyError

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict-like result with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise ExternalDependencyError(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise ExternalDependencyError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = await asyncio.wait_for(
            asyncio.to_thread(resend.Emails.send, email_data),
            timeout=EMAIL_SEND_TIMEOUT_SECONDS,
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except asyncio.TimeoutError as e:
        logger.error(f"❌ Email send to {recipients} timed out after {EMAIL_SEND_TIMEOUT_SECONDS}s")
        raise ExternalDependencyError("Email send timed out") from e
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise ExternalDependencyError(f"Failed to send email: {str(e)}") from e


# ============================================
# Message dispatch
# ============================================

INVITATION = "invitation"
REMINDER = "reminder"
SIGNATURE_CONFIRMATION = "signature_confirmation"
COMPLETION_NOTICE = "completion_notice"


@dataclass
class MessageInstruction:
    """A single outbound message produced by a lifecycle transition or sweep"""

    kind: str
    to: str
    document_id: str
    name: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)


class MessageDispatcher:
    """Renders and sends MessageInstructions. Raises ExternalDependencyError on failure."""

    async def dispatch(self, instruction: MessageInstruction) -> dict:
        subject, mjml_content = self.render(instruction)
        return await send_email(to=instruction.to, subject=subject, mjml_content=mjml_content)

    def render(self, instruction: MessageInstruction) -> tuple[str, str]:
        ctx = instruction.context
        title = ctx.get("document_title", "Document")
        sender_name = ctx.get("sender_name", "Someone")

        if instruction.kind == INVITATION:
            return (
                f"{sender_name} sent you \"{title}\"",
                document_invitation_template(
                    recipient_name=instruction.name,
                    sender_name=sender_name,
                    document_title=title,
                    signing_url=ctx["signing_url"],
                    role=ctx.get("role", "signer"),
                    message=ctx.get("message"),
                    expires_at=ctx.get("expires_at"),
                ),
            )
        if instruction.kind == REMINDER:
            return (
                f"Reminder: \"{title}\" is waiting for you",
                document_reminder_template(
                    recipient_name=instruction.name,
                    sender_name=sender_name,
                    document_title=title,
                    signing_url=ctx["signing_url"],
                    days_since_sent=ctx.get("day_number", 0),
                ),
            )
        if instruction.kind == SIGNATURE_CONFIRMATION:
            return (
                f"You signed \"{title}\"",
                signature_confirmation_template(
                    recipient_name=instruction.name,
                    document_title=title,
                    signed_at=ctx.get("signed_at", ""),
                ),
            )
        if instruction.kind == COMPLETION_NOTICE:
            return (
                f"\"{title}\" has been completed",
                completion_notice_template(
                    owner_name=instruction.name or "there",
                    document_title=title,
                    document_id=instruction.document_id,
                    payment_collected=ctx.get("payment_collected", False),
                ),
            )
        raise ValueError(f"Unknown message kind: {instruction.kind}")


_dispatcher = MessageDispatcher()


def get_message_dispatcher() -> MessageDispatcher:
    """Dependency injection for the message dispatcher"""
    return _dispatcher
