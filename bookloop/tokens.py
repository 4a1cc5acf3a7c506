"""
Session/Token Manager
Issues, rotates and invalidates tokens and closes the sessions they belong to.

Functions taking an AsyncSession run inside the caller's transaction; the
ones taking a Database open their own.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from .auth import (
    access_token_expiry,
    create_jwt,
    generate_opaque_token,
    refresh_token_expiry,
    utcnow,
)
from .config import settings
from .core import TOKENS_ISSUED
from .errors import InvalidToken, MissingToken, NotFound
from .models import Database
from .models.session_logs import SessionLog
from .models.tokens import Token, TokenType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken
    session_id: int


@dataclass(frozen=True)
class LogoutResult:
    sessions_closed: int
    tokens_invalidated: int


# token types flushed in the open transaction, counted once it commits
PENDING_ISSUED = 'pending_issued_tokens'


@event.listens_for(Session, 'after_commit')
def _count_committed_tokens(sync_session):
    for token_type in sync_session.info.pop(PENDING_ISSUED, []):
        TOKENS_ISSUED.labels(token_type).inc()


@event.listens_for(Session, 'after_rollback')
def _discard_rolled_back_tokens(sync_session):
    sync_session.info.pop(PENDING_ISSUED, None)


def _short(token: str) -> str:
    return token[:8] + '...'


async def _persist(session: AsyncSession, token_key: str, user_id: int, token_type: TokenType,
                   expires_at: datetime, session_id: Optional[int] = None) -> Token:
    record = Token(
        token_key=token_key,
        user_id=user_id,
        token_type=token_type,
        expires_at=expires_at,
        invalidated=False,
        session_id=session_id,
    )
    session.add(record)
    # flush now so a key collision fails here, not at commit
    await session.flush()
    session.info.setdefault(PENDING_ISSUED, []).append(token_type.value)
    return record


async def _open_session_for(session: AsyncSession, user_id: int, session_id: int) -> SessionLog:
    session_log = await session.get(SessionLog, session_id)
    if session_log is None or session_log.user_id != user_id:
        raise NotFound('Session not found')
    if not session_log.is_open:
        raise InvalidToken('Session has ended')
    return session_log


async def issue_access_token(session: AsyncSession, user_id: int, session_id: int,
                             now: Optional[datetime] = None) -> IssuedToken:
    now = now or utcnow()
    await _open_session_for(session, user_id, session_id)
    expires_at = access_token_expiry(now)
    token = create_jwt(user_id, session_id, TokenType.ACCESS, expires_at)
    await _persist(session, token, user_id, TokenType.ACCESS, expires_at, session_id)
    return IssuedToken(token, expires_at)


async def issue_refresh_token(session: AsyncSession, user_id: int, session_id: int,
                              now: Optional[datetime] = None) -> IssuedToken:
    now = now or utcnow()
    await _open_session_for(session, user_id, session_id)
    expires_at = refresh_token_expiry(now)
    token = create_jwt(user_id, session_id, TokenType.REFRESH, expires_at)
    await _persist(session, token, user_id, TokenType.REFRESH, expires_at, session_id)
    return IssuedToken(token, expires_at)


async def issue_token_pair(session: AsyncSession, user_id: int, session_id: int,
                           now: Optional[datetime] = None) -> TokenPair:
    now = now or utcnow()
    access = await issue_access_token(session, user_id, session_id, now)
    refresh = await issue_refresh_token(session, user_id, session_id, now)
    return TokenPair(access=access, refresh=refresh, session_id=session_id)


async def open_session(session: AsyncSession, user_id: int, ip_address: Optional[str],
                       device_info: Optional[str], now: Optional[datetime] = None) -> TokenPair:
    now = now or utcnow()
    session_log = SessionLog(user_id=user_id, start_time=now, ip_address=ip_address, device_info=device_info)
    session.add(session_log)
    await session.flush()
    logger.info(f"Opened session {session_log.id} for user {user_id}")
    return await issue_token_pair(session, user_id, session_log.id, now)


async def find_open_session(session: AsyncSession, user_id: int, ip_address: Optional[str],
                            device_info: Optional[str]) -> Optional[SessionLog]:
    q = await session.execute(
        select(SessionLog).where(
            SessionLog.user_id == user_id,
            SessionLog.ip_address == ip_address,
            SessionLog.device_info == device_info,
            SessionLog.end_time.is_(None),
        )
    )
    return q.scalars().first()


async def refresh_session(db: Database, presented: Optional[str], now: Optional[datetime] = None) -> TokenPair:
    """Exchange a refresh token for a new access/refresh pair.

    Every live refresh token of the session is invalidated, not only the one
    presented, so a stale token from earlier in the chain cannot be replayed.
    A second caller racing with the same token fails the conditional claim
    below and gets InvalidToken.
    """
    if not presented:
        raise MissingToken('No refresh token provided')
    now = now or utcnow()

    async with db.transaction() as session:
        q = await session.execute(
            select(Token).where(Token.token_key == presented, Token.token_type == TokenType.REFRESH)
        )
        record = q.scalar_one_or_none()
        if record is None or not record.is_usable(now) or record.session_id is None:
            raise InvalidToken('Invalid refresh token')

        user_id, session_id = record.user_id, record.session_id
        session_log = await session.get(SessionLog, session_id)
        if session_log is None or not session_log.is_open:
            raise InvalidToken('Session has ended')

        claimed = await session.execute(
            update(Token)
            .where(Token.token_key == presented, Token.invalidated.is_(False))
            .values(invalidated=True, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidToken('Invalid refresh token')

        await session.execute(
            update(Token)
            .where(
                Token.session_id == session_id,
                Token.token_type == TokenType.REFRESH,
                Token.invalidated.is_(False),
            )
            .values(invalidated=True, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        pair = await issue_token_pair(session, user_id, session_id, now)

    logger.info(f"Rotated refresh token {_short(presented)} for session {session_id}")
    return pair


async def close_session(session: AsyncSession, session_id: int, now: datetime) -> LogoutResult:
    closed = await session.execute(
        update(SessionLog)
        .where(SessionLog.id == session_id, SessionLog.end_time.is_(None))
        .values(end_time=now)
        .execution_options(synchronize_session=False)
    )
    invalidated = await session.execute(
        update(Token)
        .where(Token.session_id == session_id, Token.invalidated.is_(False))
        .values(invalidated=True, last_used_at=now)
        .execution_options(synchronize_session=False)
    )
    return LogoutResult(closed.rowcount, invalidated.rowcount)


async def close_user_sessions(session: AsyncSession, user_id: int, now: datetime) -> LogoutResult:
    logger.info(f"Logging out all sessions globally for user {user_id}")
    closed = await session.execute(
        update(SessionLog)
        .where(SessionLog.user_id == user_id, SessionLog.end_time.is_(None))
        .values(end_time=now)
        .execution_options(synchronize_session=False)
    )
    invalidated = await session.execute(
        update(Token)
        .where(Token.user_id == user_id, Token.invalidated.is_(False))
        .values(invalidated=True, last_used_at=now)
        .execution_options(synchronize_session=False)
    )
    return LogoutResult(closed.rowcount, invalidated.rowcount)


async def logout(db: Database, session_id: int, now: Optional[datetime] = None) -> LogoutResult:
    now = now or utcnow()
    async with db.transaction() as session:
        if await session.get(SessionLog, session_id) is None:
            raise NotFound('Session not found')
        return await close_session(session, session_id, now)


async def global_logout(db: Database, user_id: int, now: Optional[datetime] = None) -> LogoutResult:
    now = now or utcnow()
    async with db.transaction() as session:
        return await close_user_sessions(session, user_id, now)


async def issue_verification_token(session: AsyncSession, user_id: int, token_type: TokenType,
                                   now: Optional[datetime] = None) -> IssuedToken:
    """emailConfirmation / passwordReset tokens, not bound to a session."""
    if token_type not in (TokenType.EMAIL_CONFIRMATION, TokenType.PASSWORD_RESET):
        raise ValueError(f'{token_type.value} tokens are session-bound')
    now = now or utcnow()
    expires_at = now + timedelta(hours=settings.verification_token_expire_hours)
    token = generate_opaque_token()
    await _persist(session, token, user_id, token_type, expires_at)
    return IssuedToken(token, expires_at)


async def consume_verification_token(session: AsyncSession, token_key: str, token_type: TokenType,
                                     now: Optional[datetime] = None) -> Token:
    now = now or utcnow()
    record = await session.get(Token, token_key)
    if record is None or record.token_type != token_type or not record.is_usable(now):
        raise InvalidToken('Invalid or expired link')
    claimed = await session.execute(
        update(Token)
        .where(Token.token_key == token_key, Token.invalidated.is_(False))
        .values(invalidated=True, last_used_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise InvalidToken('Invalid or expired link')
    return record
