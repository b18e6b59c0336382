"""
Olympia — Live Session Lifecycle

Opening, ending and joining a match's live session. Opening a session
rotates the contestant and observer (MC) passwords; the plain values are
returned once and only their bcrypt hashes are stored.
"""
import logging
import secrets
import string
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from olympia.core import clock
from olympia.core.results import ActionResult, service_action
from olympia.exceptions import ForbiddenError, NotFoundError, PreconditionError, ValidationError
from olympia.orm.live_session import LiveSession, SessionStatus
from olympia.orm.match import MatchStatus
from olympia.rbac import hash_password, verify_password
from olympia.realtime.event_bus import commit_and_publish, record_event
from olympia.services import live_context
from olympia.state_machines import question_state

logger = logging.getLogger(__name__)

JOIN_CODE_PREFIX = "OLY-"
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code() -> str:
    return JOIN_CODE_PREFIX + "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(6))


def generate_session_password() -> str:
    return secrets.token_hex(3).upper()


def normalize_join_code(join_code: Optional[str]) -> str:
    return (join_code or "").strip().upper()


async def _unique_join_code(db: AsyncSession) -> str:
    while True:
        candidate = generate_join_code()
        result = await db.execute(select(LiveSession.id).where(LiveSession.join_code == candidate))
        if result.scalar_one_or_none() is None:
            return candidate


async def _session_by_join_code(db: AsyncSession, join_code: str) -> LiveSession:
    code = normalize_join_code(join_code)
    if not code:
        raise ValidationError("Enter a join code.")
    result = await db.execute(select(LiveSession).where(LiveSession.join_code == code))
    live_session = result.scalar_one_or_none()
    if not live_session:
        raise NotFoundError("Room", code)
    if live_session.status == SessionStatus.ENDED.value:
        raise PreconditionError("This room has already ended.")
    return live_session


class SessionService:

    @staticmethod
    @service_action
    async def open_session(db: AsyncSession, match_id: int) -> ActionResult:
        """
        Open (or reopen) the live session of a match.

        Reuses the join code of an existing session, rotates both passwords,
        resets the display and moves the match to ``live``.

        Returns:
            ActionResult with join_code, player_password and mc_password
        """
        match = await live_context.get_match(db, match_id)
        if match.status == MatchStatus.CANCELLED.value:
            raise PreconditionError("A cancelled match cannot go live.")

        result = await db.execute(
            select(LiveSession).where(LiveSession.match_id == match_id).with_for_update()
        )
        live_session = result.scalar_one_or_none()
        if live_session is None:
            live_session = LiveSession(match_id=match_id, join_code=await _unique_join_code(db))
            db.add(live_session)

        player_password = generate_session_password()
        mc_password = generate_session_password()
        live_session.player_password_hash = hash_password(player_password)
        live_session.mc_password_hash = hash_password(mc_password)
        live_session.requires_player_password = True

        live_session.status = SessionStatus.RUNNING.value
        question_state.reset_display(live_session)
        live_session.started_at = clock.utcnow()
        live_session.ended_at = None
        match.status = MatchStatus.LIVE.value
        await db.flush()

        await record_event(
            db, match_id, "live_sessions", "open",
            entity_id=live_session.id, payload=live_session.snapshot(), session_id=live_session.id,
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: live session {live_session.id} opened ({live_session.join_code})")
        return ActionResult.success(
            "Room opened. Share the passwords now, they are shown only once.",
            session_id=live_session.id,
            join_code=live_session.join_code,
            player_password=player_password,
            mc_password=mc_password,
        )

    @staticmethod
    @service_action
    async def regenerate_passwords(db: AsyncSession, match_id: int) -> ActionResult:
        live_session = await live_context.get_session(db, match_id)
        if live_session.status == SessionStatus.ENDED.value:
            raise PreconditionError("This room has already ended.")

        player_password = generate_session_password()
        mc_password = generate_session_password()
        live_session.player_password_hash = hash_password(player_password)
        live_session.mc_password_hash = hash_password(mc_password)
        live_session.requires_player_password = True
        await db.flush()

        await record_event(
            db, match_id, "live_sessions", "passwords_rotated",
            entity_id=live_session.id, payload={"requires_player_password": True},
            session_id=live_session.id,
        )
        await commit_and_publish(db)
        return ActionResult.success(
            "Passwords regenerated.",
            join_code=live_session.join_code,
            player_password=player_password,
            mc_password=mc_password,
        )

    @staticmethod
    @service_action
    async def end_session(db: AsyncSession, match_id: int) -> ActionResult:
        live_session = await live_context.get_session(db, match_id)
        if live_session.status == SessionStatus.ENDED.value:
            raise PreconditionError("This room has already ended.")

        match = await live_context.get_match(db, match_id)
        live_session.status = SessionStatus.ENDED.value
        live_session.ended_at = clock.utcnow()
        live_session.timer_deadline = None
        if match.status == MatchStatus.LIVE.value:
            match.status = MatchStatus.FINISHED.value
        await db.flush()

        await record_event(
            db, match_id, "live_sessions", "end",
            entity_id=live_session.id, payload=live_session.snapshot(), session_id=live_session.id,
        )
        await commit_and_publish(db)
        logger.info(f"Match {match_id}: live session {live_session.id} ended")
        return ActionResult.success("Room ended.", session_id=live_session.id)

    @staticmethod
    @service_action
    async def lookup_join_code(db: AsyncSession, join_code: str, password: Optional[str] = None) -> ActionResult:
        """Check a contestant's join code and room password."""
        live_session = await _session_by_join_code(db, join_code)
        if live_session.requires_player_password and not verify_password(
            (password or "").strip().upper(), live_session.player_password_hash
        ):
            raise ForbiddenError("Wrong room password.")
        return ActionResult.success(
            match_id=live_session.match_id,
            session_id=live_session.id,
            status=live_session.status,
        )

    @staticmethod
    @service_action
    async def verify_observer_password(db: AsyncSession, join_code: str, password: str) -> ActionResult:
        """Check the MC/observer password for a room."""
        live_session = await _session_by_join_code(db, join_code)
        if not verify_password((password or "").strip().upper(), live_session.mc_password_hash):
            raise ForbiddenError("Wrong MC password.")
        message = None if live_session.is_running else "The room is not running yet."
        return ActionResult.success(
            message,
            match_id=live_session.match_id,
            session_id=live_session.id,
            status=live_session.status,
        )
