"""Request identity for the HTTP layer.

Authentication happens upstream; the host application forwards the
authenticated user's id in the ``X-User-Id`` header. Every core operation is
scoped to that id.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from invoice_transform.core.logging import get_logger

logger = get_logger(__name__)


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """
    Extract the requesting user's id.

    Raises:
        HTTPException 401: If the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        logger.debug("Request without X-User-Id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    return x_user_id.strip()
