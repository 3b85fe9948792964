"""Anchoring of completed documents and re-verification against the anchor"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models import User
from ...shared.errors import ExternalDependencyError
from ..documents.events import BlockchainVerified, record_event
from ..documents.lifecycle import COMPLETED
from ..documents.repository import DocumentRepository
from ..documents.results import ErrorKind, OperationResult, invalid_transition, not_found
from .anchor_client import AnchorClient
from .hasher import build_inscription_payload, hash_document

logger = logging.getLogger(__name__)


class VerificationService:
    def __init__(self, db: Session, anchor: AnchorClient):
        self.db = db
        self.anchor = anchor

    async def get_status(self, document_id: str, user: User) -> OperationResult[dict[str, Any]]:
        document = DocumentRepository.get_visible_document(self.db, document_id, user)
        if not document:
            return not_found()

        if not document.blockchain_tx_hash:
            return OperationResult.success(
                {
                    "verified": False,
                    "configured": self.anchor.is_configured,
                    "canVerify": self.anchor.is_configured and document.status == COMPLETED,
                    "chainInfo": self.anchor.chain_info,
                }
            )

        document_hash = hash_document(document)
        status = {
            "verified": False,
            "txHash": document.blockchain_tx_hash,
            "documentHash": document_hash,
            "verifiedAt": document.blockchain_verified_at,
            "blockNumber": None,
            "chainTimestamp": None,
            "explorerUrl": self.anchor.explorer_link(document.blockchain_tx_hash),
            "chainInfo": self.anchor.chain_info,
            "error": None,
        }
        try:
            check = await self.anchor.verify(document.blockchain_tx_hash, document_hash)
            status.update(
                verified=check.verified,
                blockNumber=check.block_number,
                chainTimestamp=check.chain_timestamp,
                error=check.error,
            )
        except ExternalDependencyError as e:
            status["error"] = str(e)
        return OperationResult.success(status)

    async def inscribe(
        self, document_id: str, user: User, now: Optional[datetime] = None
    ) -> OperationResult[dict[str, Any]]:
        """Anchor a completed document's hash once; the tx reference is write-once"""
        now = now or datetime.utcnow()

        document = DocumentRepository.get_visible_document(
            self.db, document_id, user, for_update=True
        )
        if not document:
            self.db.rollback()
            return not_found()
        if document.blockchain_tx_hash:
            self.db.rollback()
            return invalid_transition("Already inscribed")
        if document.status != COMPLETED:
            self.db.rollback()
            return invalid_transition("Document must be completed first")
        signers = [r for r in document.recipients if r.role == "signer"]
        if not signers or any(r.status != "signed" for r in signers):
            self.db.rollback()
            return invalid_transition("All parties must sign first")

        document_hash = hash_document(document)
        try:
            receipt = await self.anchor.inscribe(document_hash, build_inscription_payload(document_hash, now))
        except ExternalDependencyError as e:
            self.db.rollback()
            logger.error(f"❌ Anchoring document {document_id} failed: {e}")
            return OperationResult.failure(ErrorKind.EXTERNAL_DEPENDENCY, str(e))

        try:
            document.blockchain_tx_hash = receipt.tx_hash
            document.blockchain_verified_at = now
            record_event(
                self.db,
                document.id,
                BlockchainVerified(
                    txHash=receipt.tx_hash, documentHash=document_hash, chainId=receipt.chain_id
                ),
                created_at=now,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to store anchor receipt for {document_id}: {str(e)}")
            raise

        logger.info(f"⛓️ Document {document_id} anchored in tx {receipt.tx_hash}")
        return OperationResult.success(
            {
                "success": True,
                "txHash": receipt.tx_hash,
                "documentHash": document_hash,
                "blockNumber": receipt.block_number,
                "explorerUrl": self.anchor.explorer_link(receipt.tx_hash),
            }
        )
