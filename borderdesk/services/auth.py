from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from ..config import get_settings
from ..models.user import Actor, UserRole

settings = get_settings()


class AuthService:
    """Bearer tokens are issued by the identity provider; this side only reads them.

    create_access_token exists for the seed CLI and the tests.
    """

    @staticmethod
    def create_access_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
        to_encode = {
            "sub": actor.user_id,
            "name": actor.user_name,
            "role": actor.role.value,
            "exp": expire,
        }
        return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
            return payload
        except JWTError:
            return None

    @staticmethod
    def actor_from_token(token: Optional[str]) -> Optional[Actor]:
        if not token:
            return None
        payload = AuthService.decode_token(token)
        if not payload:
            return None
        user_id = payload.get("sub")
        role = payload.get("role")
        if not user_id or not role:
            return None
        try:
            role = UserRole(role)
        except ValueError:
            return None
        return Actor(user_id=str(user_id), user_name=payload.get("name") or str(user_id), role=role)
