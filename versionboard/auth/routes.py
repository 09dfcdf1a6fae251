import logging

from fastapi import APIRouter, Depends, Response

from versionboard.auth.schemas import LoginRequest, MessageResponse
from versionboard.auth.utils import AuthContext, SessionAuthGate, get_auth_gate, require_authenticated
from versionboard.core.config import SESSION_COOKIE_NAME, SESSION_COOKIE_SECURE, SESSION_TTL_SECONDS
from versionboard.users.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=UserResponse)
def login(payload: LoginRequest, response: Response, gate: SessionAuthGate = Depends(get_auth_gate)):
    user, token = gate.login(payload)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )
    logger.info("User %s logged in", user.username)
    return UserResponse(user=user)


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, ctx: AuthContext = Depends(require_authenticated)):
    response.delete_cookie(SESSION_COOKIE_NAME)
    logger.info("User %s logged out", ctx.username)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserResponse)
def me(ctx: AuthContext = Depends(require_authenticated)):
    return UserResponse(user=ctx.as_user())
