"""HTTP client for the external anchoring service"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ... import config
from ...shared.errors import ExternalDependencyError

logger = logging.getLogger(__name__)


@dataclass
class AnchorReceipt:
    tx_hash: str
    chain_id: int
    block_number: Optional[int] = None


@dataclass
class AnchorVerification:
    verified: bool
    document_hash: Optional[str] = None
    block_number: Optional[int] = None
    chain_timestamp: Optional[int] = None
    error: Optional[str] = None


class AnchorClient:
    """Submits document hashes for anchoring and reads them back"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        chain_id: Optional[int] = None,
        chain_name: Optional[str] = None,
        explorer_url: Optional[str] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout or config.ANCHOR_TIMEOUT_SECONDS
        self.chain_id = chain_id or config.ANCHOR_CHAIN_ID
        self.chain_name = chain_name or config.ANCHOR_CHAIN_NAME
        self.explorer_url = (explorer_url or config.ANCHOR_EXPLORER_URL).rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    @property
    def chain_info(self) -> dict:
        return {"chainId": self.chain_id, "name": self.chain_name, "explorerUrl": self.explorer_url}

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def inscribe(self, document_hash: str, payload: str) -> AnchorReceipt:
        if not self.is_configured:
            raise ExternalDependencyError("Anchoring service not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/inscriptions",
                    json={"hash": document_hash, "payload": payload, "chainId": self.chain_id},
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"❌ Anchoring request failed: {e}")
            raise ExternalDependencyError(f"Anchoring service error: {str(e)}") from e

        tx_hash = data.get("txHash")
        if not tx_hash:
            raise ExternalDependencyError("Anchoring service returned no transaction hash")

        logger.info(f"⛓️ Hash anchored in tx {tx_hash}")
        return AnchorReceipt(
            tx_hash=tx_hash,
            chain_id=data.get("chainId", self.chain_id),
            block_number=data.get("blockNumber"),
        )

    async def verify(self, tx_hash: str, expected_hash: str) -> AnchorVerification:
        """A mismatch is reported in the result, not raised"""
        if not self.is_configured:
            raise ExternalDependencyError("Anchoring service not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.base_url}/inscriptions/{tx_hash}", headers=self._headers()
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"❌ Anchor verification request failed: {e}")
            raise ExternalDependencyError(f"Anchoring service error: {str(e)}") from e

        anchored_hash = data.get("hash")
        verified = anchored_hash == expected_hash
        return AnchorVerification(
            verified=verified,
            document_hash=anchored_hash,
            block_number=data.get("blockNumber"),
            chain_timestamp=data.get("timestamp"),
            error=None if verified else "Hash mismatch",
        )


def get_anchor_client() -> AnchorClient:
    """Dependency injection for the anchoring client"""
    return AnchorClient(
        base_url=config.ANCHOR_SERVICE_URL,
        api_key=config.ANCHOR_API_KEY,
    )
