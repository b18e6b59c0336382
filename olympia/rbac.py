"""
olympia/rbac.py
Account context adapter.

Accounts live outside the engine. Callers present an HS256 bearer token with
``sub`` (account id) and ``role`` claims; this module turns it into an Actor
and answers the two questions the engine needs: "is this caller a moderator
for the match?" and "which seated player is this caller?".
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from passlib.context import CryptContext

from olympia.config.settings import settings
from olympia.database import get_db
from olympia.errors import ErrorCode
from olympia.orm.match import Match, MatchPlayer

logger = logging.getLogger(__name__)

# ================= CONFIG =================

SECRET_KEY = settings.JWT_SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


class ActorRole(str, PyEnum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    CONTESTANT = "contestant"
    GUEST = "guest"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


# ================= PASSWORDS =================

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ================= TOKEN UTILS =================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token carrying sub and role"""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode a token, returning None when it is invalid or expired"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def actor_from_token(token: Optional[str]) -> Optional[Actor]:
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    user_id = payload.get("sub")
    try:
        role = ActorRole(payload.get("role", ActorRole.GUEST.value))
    except ValueError:
        return None
    if not user_id:
        return None
    return Actor(user_id=str(user_id), role=role)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"success": False, "error": "Unauthorized", "message": message, "code": ErrorCode.AUTH_INVALID},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"success": False, "error": "Forbidden", "message": message, "code": ErrorCode.FORBIDDEN},
    )


# ================= DEPENDENCIES =================

async def get_current_actor(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    if not token:
        raise _unauthorized("Authentication required")
    actor = actor_from_token(token)
    if actor is None:
        raise _unauthorized("Invalid or expired token")
    return actor


async def is_match_moderator(db: AsyncSession, actor: Actor, match_id: int) -> bool:
    if actor.is_admin:
        return True
    if actor.role != ActorRole.MODERATOR:
        return False
    result = await db.execute(select(Match.host_user_id).where(Match.id == match_id))
    return result.scalar_one_or_none() == actor.user_id


async def require_moderator(
    match_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Every write operation on a match goes through this check."""
    if not await is_match_moderator(db, actor, match_id):
        logger.warning(f"User {actor.user_id} ({actor.role.value}) denied moderator access to match {match_id}")
        raise _forbidden("You are not a moderator for this match")
    return actor


async def get_contestant(
    match_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> MatchPlayer:
    """Resolve the caller to the player seated in this match."""
    result = await db.execute(
        select(MatchPlayer).where(
            MatchPlayer.match_id == match_id,
            MatchPlayer.participant_id == actor.user_id,
        )
    )
    player = result.scalar_one_or_none()
    if not player:
        raise _forbidden("You are not a contestant in this match")
    return player
