import time
from typing import Optional, Set, Tuple

import jwt
from fastapi import Depends, Request
from pydantic import BaseModel

from versionboard.auth.schemas import LoginRequest
from versionboard.core.config import SESSION_ALG, SESSION_COOKIE_NAME, SESSION_SECRET, SESSION_TTL_SECONDS
from versionboard.core.deps import get_storage
from versionboard.core.errors import ForbiddenError, UnauthorizedError
from versionboard.storage.base import Storage
from versionboard.users.schemas import User

ROLE_ADMIN = "admin"
ROLE_USER = "user"

ALLOWED_ROLES: Set[str] = {ROLE_ADMIN, ROLE_USER}


class AuthContext(BaseModel):
    user_id: str
    username: str
    role: str

    def as_user(self) -> User:
        return User(id=self.user_id, username=self.username, role=self.role)


def create_session_token(user: User, secret: str, alg: str, ttl_seconds: int) -> str:
    now = int(time.time())
    payload = {
        "sub": user.id,
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm=alg)


def decode_session_token(token: str, secret: str, alg: str) -> Optional[dict]:
    try:
        return jwt.decode(token, secret, algorithms=[alg])
    except jwt.PyJWTError:
        return None


class SessionAuthGate:
    """Session-cookie identity check for an internal tool.

    Login asserts identity by username alone. The signed cookie is only a
    handle: every request reloads the user, so deleted users lose access and
    role changes apply at once.
    """

    def __init__(
        self,
        storage: Storage,
        secret: str = SESSION_SECRET,
        alg: str = SESSION_ALG,
        ttl_seconds: int = SESSION_TTL_SECONDS,
    ):
        self._storage = storage
        self._secret = secret
        self._alg = alg
        self._ttl_seconds = ttl_seconds

    def check_credentials(self, user: User, payload: LoginRequest) -> bool:
        # No password is stored; any known username is accepted.
        return True

    def login(self, payload: LoginRequest) -> Tuple[User, str]:
        user = self._storage.get_user_by_username(payload.username.strip())
        if user is None or not self.check_credentials(user, payload):
            raise UnauthorizedError("Invalid username")
        return user, create_session_token(user, self._secret, self._alg, self._ttl_seconds)

    def identify(self, token: Optional[str]) -> Optional[AuthContext]:
        if not token:
            return None
        claims = decode_session_token(token, self._secret, self._alg)
        if not claims or not claims.get("sub"):
            return None
        user = self._storage.get_user(claims["sub"])
        if user is None or user.role not in ALLOWED_ROLES:
            return None
        return AuthContext(user_id=user.id, username=user.username, role=user.role)

    def authorize(self, ctx: Optional[AuthContext], roles: Tuple[str, ...]) -> AuthContext:
        if ctx is None:
            raise UnauthorizedError("Not authenticated")
        if ctx.role not in roles:
            raise ForbiddenError("Forbidden")
        return ctx


def get_auth_gate(storage: Storage = Depends(get_storage)) -> SessionAuthGate:
    return SessionAuthGate(storage)


def current_session(request: Request, gate: SessionAuthGate = Depends(get_auth_gate)) -> Optional[AuthContext]:
    return gate.identify(request.cookies.get(SESSION_COOKIE_NAME))


def require_roles(*roles: str):
    def _check(
        ctx: Optional[AuthContext] = Depends(current_session),
        gate: SessionAuthGate = Depends(get_auth_gate),
    ) -> AuthContext:
        return gate.authorize(ctx, roles)

    return _check


require_authenticated = require_roles(ROLE_ADMIN, ROLE_USER)
require_admin = require_roles(ROLE_ADMIN)
