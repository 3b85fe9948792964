"""HTTP helpers shared by the domain routers"""

import logging

from fastapi import HTTPException

from ..domain.documents.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)


def raise_for_result(result: OperationResult) -> None:
    """
    Turn a failed OperationResult into an HTTPException.

    A lost completion race (CONFLICT) means the document is already
    completed, so it is not an error for the caller.
    """
    if result.ok or result.error == ErrorKind.CONFLICT:
        return

    detail = result.message
    if result.details:
        detail = {"error": result.message, **result.details}

    logger.debug(f"Request failed with {result.error.value}: {result.message}")
    raise HTTPException(status_code=result.http_status, detail=detail)
