"""
Verification Hasher

Derives a canonical hash of a completed document: its content, the signers
(email hash + signing time, ordered by email hash), whether payment was
collected and the completion time. Recomputing it from the stored document
always gives the same value, which is what makes later verification possible.
"""

import base64
import hashlib
import json
from datetime import datetime
from typing import Any, Iterable, Optional

from ...models import Document, Payment, Recipient

INSCRIPTION_TYPE = "OpenProposal Inscription"
INSCRIPTION_NOTE = "Digital proof of signature"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def _sha256(text: str) -> str:
    return "0x" + hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_email(email: str) -> str:
    return _sha256(email.strip().lower())


def hash_content(content: Any) -> str:
    return _sha256(canonical_json(content or []))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def hash_document_data(
    document_id: str,
    content: Any,
    signers: Iterable[tuple[str, Optional[datetime]]],
    payment_collected: bool,
    completed_at: Optional[datetime],
) -> str:
    """Hash of the canonical {documentId, contentHash, signers, paymentCollected, completedAt}"""
    signer_entries = sorted(
        (
            {"emailHash": hash_email(email), "signedAt": _iso(signed_at)}
            for email, signed_at in signers
        ),
        key=lambda entry: (entry["emailHash"], entry["signedAt"] or ""),
    )
    return _sha256(
        canonical_json(
            {
                "documentId": document_id,
                "contentHash": hash_content(content),
                "signers": signer_entries,
                "paymentCollected": payment_collected,
                "completedAt": _iso(completed_at),
            }
        )
    )


def signed_signers(recipients: Iterable[Recipient]) -> list[tuple[str, Optional[datetime]]]:
    return [(r.email, r.signed_at) for r in recipients if r.role == "signer" and r.status == "signed"]


def payment_collected(payments: Iterable[Payment]) -> bool:
    return any(p.status == "succeeded" for p in payments)


def hash_document(document: Document) -> str:
    return hash_document_data(
        document.id,
        document.content,
        signed_signers(document.recipients),
        payment_collected(document.payments),
        document.completed_at,
    )


def build_inscription_payload(document_hash: str, now: Optional[datetime] = None) -> str:
    """Base64 JSON payload handed to the anchoring service"""
    now = now or datetime.utcnow()
    payload = {
        "type": INSCRIPTION_TYPE,
        "note": INSCRIPTION_NOTE,
        "hash": document_hash,
        "timestamp": int(now.timestamp()),
    }
    return base64.b64encode(canonical_json(payload).encode("utf-8")).decode("ascii")
