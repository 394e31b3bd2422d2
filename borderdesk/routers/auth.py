import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..models.user import Actor
from ..rbac import AUTHENTICATION_REQUIRED_MESSAGE
from ..services.auth import AuthService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Actor]:
    if not credentials:
        return None
    return AuthService.actor_from_token(credentials.credentials)


def require_actor(
    actor: Optional[Actor] = Depends(get_current_actor),
) -> Actor:
    if not actor:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTHENTICATION_REQUIRED_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor
