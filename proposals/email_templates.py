"""
MJML Email Templates
Recipient-facing and owner-facing emails for the signing lifecycle
"""

from typing import Optional

from .config import APP_BASE_URL

# App theme colors - Indigo/Slate color scheme
THEME = {
    "primary": "#4f46e5",
    "primary_dark": "#4338ca",
    "primary_light": "#e0e7ff",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#10b981",
    "warning": "#f59e0b",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Main Content -->
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <!-- Footer -->
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              Sent with OpenProposal. If you weren't expecting this email you can ignore it.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _message_block(message: Optional[str]) -> str:
    if not message:
        return ""
    return f"""
    <mj-text background-color="{THEME['primary_light']}" padding="16px" font-style="italic">
      "{message}"
    </mj-text>
    """


def document_invitation_template(
    recipient_name: Optional[str],
    sender_name: str,
    document_title: str,
    signing_url: str,
    role: str = "signer",
    message: Optional[str] = None,
    expires_at: Optional[str] = None,
) -> str:
    """Invitation to review or sign a document"""
    action = "review and sign" if role == "signer" else "review"
    expiry_line = f"<br/>This link expires on {expires_at}." if expires_at else ""
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 24px 0">
      {sender_name} sent you a document.
    </mj-text>

    <mj-text>
      Hi {recipient_name or 'there'},
    </mj-text>

    <mj-text>
      {sender_name} has invited you to {action} <strong>{document_title}</strong>.{expiry_line}
    </mj-text>

    {_message_block(message)}
    """

    return get_base_template(
        title="You have a document to review",
        preview_text=f"{sender_name} sent you {document_title}",
        content_sections=content,
        cta_url=signing_url,
        cta_label="Review Document" if role != "signer" else "Review & Sign",
    )


def document_reminder_template(
    recipient_name: Optional[str],
    sender_name: str,
    document_title: str,
    signing_url: str,
    days_since_sent: int,
) -> str:
    """Reminder for a recipient who has not acted yet"""
    content = f"""
    <mj-text>
      Hi {recipient_name or 'there'},
    </mj-text>

    <mj-text>
      This is a friendly reminder that <strong>{document_title}</strong> from {sender_name}
      is still waiting for you. It was sent {days_since_sent} day{'s' if days_since_sent != 1 else ''} ago.
    </mj-text>
    """

    return get_base_template(
        title="Reminder: document awaiting your action",
        preview_text=f"{document_title} is waiting for you",
        content_sections=content,
        cta_url=signing_url,
        cta_label="Open Document",
    )


def signature_confirmation_template(
    recipient_name: Optional[str], document_title: str, signed_at: str
) -> str:
    """Confirmation sent to a signer right after signing"""
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 24px 0">
      Your signature has been recorded.
    </mj-text>

    <mj-text>
      Hi {recipient_name or 'there'},
    </mj-text>

    <mj-text>
      Document: {document_title}<br/>
      Signed at: {signed_at} UTC<br/>
      Status: ✅ Signed
    </mj-text>
    """

    return get_base_template(
        title="Thanks for signing!",
        preview_text=f"You signed {document_title}",
        content_sections=content,
    )


def completion_notice_template(
    owner_name: str, document_title: str, document_id: str, payment_collected: bool
) -> str:
    """Owner notification once every signer signed and payment (if any) succeeded"""
    payment_line = "<br/>Payment: 💰 Collected" if payment_collected else ""
    content = f"""
    <mj-text>
      Hi {owner_name},
    </mj-text>

    <mj-text>
      Great news! <strong>{document_title}</strong> has been completed by all parties.
    </mj-text>

    <mj-text>
      Status: ✅ Completed{payment_line}
    </mj-text>
    """

    return get_base_template(
        title="Document completed",
        preview_text=f"{document_title} is complete",
        content_sections=content,
        cta_url=f"{APP_BASE_URL}/documents/{document_id}",
        cta_label="View Document",
    )
