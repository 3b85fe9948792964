"""Version snapshots taken when a sent document is edited"""

import copy
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Document, DocumentVersion

logger = logging.getLogger(__name__)


class VersionSnapshotter:
    def __init__(self, db: Session):
        self.db = db

    def snapshot(
        self,
        document: Document,
        created_by: Optional[int] = None,
        change_type: str = "edited",
        change_description: Optional[str] = "Document edited after sending",
        now: Optional[datetime] = None,
    ) -> int:
        """
        Record the document's pre-edit state and return the version number
        recorded, which is the document's current_version.

        The document itself is not touched and nothing is committed; the
        caller bumps current_version and commits both together.
        """
        version_number = document.current_version
        self.db.add(
            DocumentVersion(
                document_id=document.id,
                version_number=version_number,
                title=document.title,
                content=copy.deepcopy(document.content or []),
                variables=copy.deepcopy(document.variables),
                change_type=change_type,
                change_description=change_description,
                created_by=created_by,
                created_at=now or datetime.utcnow(),
            )
        )
        logger.info(f"📸 Snapshot v{version_number} taken for document {document.id}")
        return version_number
