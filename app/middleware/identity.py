"""Respondent identity dependency.

Authentication is handled upstream; the authenticated user ID arrives in
the ``X-User-Id`` header. Requests without the header are anonymous.
"""

from typing import Optional

from fastapi import Request

from app.logging_config import get_logger

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"
MAX_USER_ID_LENGTH = 100


async def get_current_user_id(request: Request) -> Optional[str]:
    """FastAPI dependency returning the caller's user ID, if any.

    Blank values and values longer than the stored column are treated as
    anonymous.

    Args:
        request: FastAPI request object

    Returns:
        User ID, or None for anonymous callers

    Usage:
        @router.post("/surveys")
        async def create(user_id: Optional[str] = Depends(get_current_user_id)):
            ...
    """
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id is None:
        return None

    user_id = user_id.strip()
    if not user_id:
        return None
    if len(user_id) > MAX_USER_ID_LENGTH:
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            f"Ignoring oversized {USER_ID_HEADER} header from IP: {client_ip}",
            extra={"client_ip": client_ip}
        )
        return None

    return user_id
