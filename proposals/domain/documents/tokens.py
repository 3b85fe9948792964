"""
Recipient access tokens.

A token is the only credential for the signing portal. Reissuing a token is
revocation: the old value moves to retired_access_tokens so a stale link
resolves to "link expired" rather than a generic not-found.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Recipient, RetiredAccessToken
from ...security_utils import generate_secure_token

logger = logging.getLogger(__name__)

# 32 random bytes -> 256 bits of entropy, 43 url-safe characters
TOKEN_BYTES = 32
MAX_ISSUE_ATTEMPTS = 5


class AccessTokenIssuer:
    """Issues unguessable recipient tokens, unique across active and retired tokens"""

    def __init__(self, db: Session):
        self.db = db

    def _in_use(self, token: str) -> bool:
        if self.db.query(Recipient.id).filter(Recipient.access_token == token).first():
            return True
        return (
            self.db.query(RetiredAccessToken.id).filter(RetiredAccessToken.token == token).first()
            is not None
        )

    def issue(self) -> str:
        for _ in range(MAX_ISSUE_ATTEMPTS):
            token = generate_secure_token(TOKEN_BYTES)
            if not self._in_use(token):
                return token
            logger.warning("⚠️ Access token collision detected, regenerating")
        raise RuntimeError("Unable to issue a unique access token")

    def retire(
        self,
        recipient: Recipient,
        reason: str,
        now: Optional[datetime] = None,
    ) -> None:
        self.db.add(
            RetiredAccessToken(
                token=recipient.access_token,
                document_id=recipient.document_id,
                recipient_email=recipient.email,
                reason=reason,
                retired_at=now or datetime.utcnow(),
            )
        )

    def reissue(self, recipient: Recipient, reason: str, now: Optional[datetime] = None) -> str:
        """Replace a recipient's token, invalidating the previous link"""
        self.retire(recipient, reason, now)
        recipient.access_token = self.issue()
        return recipient.access_token
