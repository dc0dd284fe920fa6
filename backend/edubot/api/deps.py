"""
FastAPI dependencies: caller identity, role guards and shared services.

The notification broker and turn locks are per-process objects created in
the app lifespan and kept on ``app.state``; handing them out through
dependencies lets tests override them.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

from fastapi import Cookie, Depends, Header, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edubot.config import get_settings
from edubot.db.models import User, UserRole
from edubot.db.session import get_db, get_session_factory
from edubot.notifications.broker import NotificationBroker
from edubot.services.chat_service import ChatService
from edubot.services.llm_client import CompletionBridge, completion_bridge
from edubot.streaming.turn_locks import TurnLocks

settings = get_settings()


# =============================================================================
# IDENTITY
# =============================================================================


def create_access_token(user_id: UUID, expires_in: timedelta | None = None) -> str:
    """
    Issue a token for ``user_id``.

    Only the subject and expiry are signed; role and student number are
    looked up on every request so a role change applies immediately.
    Production tokens come from the authentication layer; this is used by
    tooling and tests.
    """
    expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(minutes=settings.jwt_expire_minutes))
    claims = {"sub": str(user_id), "exp": expires_at}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID | None:
    """Subject of a valid, unexpired token, else None."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return UUID(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_token_from_request(
    authorization: Annotated[str | None, Header()] = None,
    access_token: Annotated[str | None, Cookie()] = None,
) -> str:
    """
    Token from the ``access_token`` cookie, else from ``Authorization: Bearer``.

    The cookie path lets a browser ``EventSource`` (which cannot set headers)
    open the notification stream.
    """
    if access_token:
        return access_token

    scheme, _, credentials = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()

    raise _unauthorized("Not authenticated")


async def get_current_user(
    token: Annotated[str, Depends(get_token_from_request)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """The caller's ``User`` row; 401 for a bad token or a deleted account."""
    user_id = decode_access_token(token)
    user = await db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return user


def _require_role(role: UserRole):
    async def guard(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role != role.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only {role.value}s can access this resource",
            )
        return user

    return guard


# =============================================================================
# SERVICE DEPENDENCIES
# =============================================================================


def get_completion_bridge() -> CompletionBridge:
    return completion_bridge


def get_chat_service(
    bridge: Annotated[CompletionBridge, Depends(get_completion_bridge)],
) -> ChatService:
    return ChatService(bridge)


def get_notification_broker(request: Request) -> NotificationBroker:
    return request.app.state.notifications


def get_turn_locks(request: Request) -> TurnLocks:
    return request.app.state.turn_locks


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentLecturer = Annotated[User, Depends(_require_role(UserRole.LECTURER))]
CurrentStudent = Annotated[User, Depends(_require_role(UserRole.STUDENT))]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
Broker = Annotated[NotificationBroker, Depends(get_notification_broker)]
Locks = Annotated[TurnLocks, Depends(get_turn_locks)]
