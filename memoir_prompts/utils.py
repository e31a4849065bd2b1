from fastapi import Depends, HTTPException, Request, status
from fastapi_users import models
import logging

from .users import current_user_optional

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str:
    raw = (request.headers.get("authorization") or "").strip()
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


# Dependency to enforce authentication (non-admin user is OK)
async def require_authenticated_user(
    request: Request,
    user: models.UP = Depends(current_user_optional),
):
    if not _bearer_token(request):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if not user:
        logger.debug("Rejected bearer token on %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication")
    return user

