import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select, update, or_

from . import account_state
from .auth import hash_password, verify_password, utcnow
from .errors import AuthenticationFailed, Conflict, NotFound, ValidationError
from .models import Database
from .models.follows import FollowRelationship
from .models.tokens import TokenType
from .models.users import User
from .tokens import (
    TokenPair,
    close_user_sessions,
    consume_verification_token,
    find_open_session,
    issue_verification_token,
    open_session,
)

logger = logging.getLogger(__name__)


async def _ensure_unique(session, username: Optional[str], email: Optional[str], exclude_id: Optional[int] = None):
    conditions = []
    if username:
        conditions.append(User.username == username)
    if email:
        conditions.append(func.lower(User.email) == email.lower())
    if not conditions:
        return
    stmt = select(User.id, User.username, User.email).where(or_(*conditions))
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    clash = (await session.execute(stmt)).first()
    if clash:
        field = 'username' if username and clash.username == username else 'email'
        raise Conflict(f'{field} is already taken', detail={'field': field})


async def create_user(db: Database, payload, is_admin: bool = False) -> User:
    async with db.transaction() as session:
        await _ensure_unique(session, payload.username, payload.email)
        user = User(
            username=payload.username,
            name=payload.name,
            email=payload.email,
            hashed_password=hash_password(payload.password),
            birth_date=payload.birth_date,
            is_admin=is_admin,
        )
        session.add(user)
        await session.flush()
    logger.info(f"Registered user {user.id}")
    return user


async def get_user_by_id(db: Database, user_id: int) -> Optional[User]:
    async with db.session() as session:
        return await session.get(User, user_id)


async def login(db: Database, username_or_email: str, password: str, ip_address: Optional[str],
                device_info: Optional[str]) -> tuple[User, TokenPair]:
    if '@' in username_or_email:
        # stored addresses carry a lower-cased domain; match the whole address case-insensitively
        match = func.lower(User.email) == username_or_email.lower()
    else:
        match = User.username == username_or_email
    async with db.transaction() as session:
        q = await session.execute(select(User).where(match))
        user = q.scalars().first()
        if not user:
            raise NotFound('User not found')
        if not verify_password(password, user.hashed_password):
            raise AuthenticationFailed('Invalid username or password')
        account_state.ensure_can_login(user)

        if await find_open_session(session, user.id, ip_address, device_info):
            raise Conflict('Active session already exists for this device and browser. '
                           'Please log out from other sessions or continue using them.')
        pair = await open_session(session, user.id, ip_address, device_info)
    return user, pair


async def update_account_settings(db: Database, user_id: int, payload, mailer) -> User:
    """Apply account changes; the new password and the global logout commit together."""
    if payload.new_password != payload.confirm_password:
        raise ValidationError('New passwords do not match.', fields={'confirm_password': 'does not match new_password'})

    now = utcnow()
    async with db.transaction() as session:
        user = await session.get(User, user_id)
        if not user:
            raise NotFound('User not found.')
        if not verify_password(payload.current_password, user.hashed_password):
            raise AuthenticationFailed('Invalid current password.')

        email_changed = bool(payload.email) and payload.email != user.email
        await _ensure_unique(
            session,
            payload.username if payload.username and payload.username != user.username else None,
            payload.email if email_changed else None,
            exclude_id=user.id,
        )
        if payload.username:
            user.username = payload.username
        if payload.name:
            user.name = payload.name
        if payload.birth_date:
            user.birth_date = payload.birth_date
        if payload.holiday_mode is not None:
            user.holiday_mode = payload.holiday_mode
        user.hashed_password = hash_password(payload.new_password)

        # every session, this one included, ends with the old password
        await close_user_sessions(session, user.id, now)

        verification = None
        if email_changed:
            user.email = payload.email
            user.is_verified = False
            verification = await issue_verification_token(session, user.id, TokenType.EMAIL_CONFIRMATION, now)

    if verification:
        await mailer.send_verification_email(user.email, verification.token)
    return user


async def verify_email(db: Database, token: str) -> User:
    async with db.transaction() as session:
        record = await consume_verification_token(session, token, TokenType.EMAIL_CONFIRMATION)
        user = await session.get(User, record.user_id)
        user.is_verified = True
    logger.info(f"Verified email for user {user.id}")
    return user


async def request_password_reset(db: Database, email: str, mailer) -> bool:
    async with db.transaction() as session:
        q = await session.execute(select(User).where(User.email == email))
        user = q.scalars().first()
        if not user:
            return False
        issued = await issue_verification_token(session, user.id, TokenType.PASSWORD_RESET)
    await mailer.send_password_reset_email(user.email, issued.token)
    return True


async def confirm_password_reset(db: Database, token: str, new_password: str) -> User:
    now = utcnow()
    async with db.transaction() as session:
        record = await consume_verification_token(session, token, TokenType.PASSWORD_RESET, now)
        user = await session.get(User, record.user_id)
        user.hashed_password = hash_password(new_password)
        await close_user_sessions(session, user.id, now)
    logger.info(f"Password reset for user {user.id}")
    return user


async def request_account_deletion(db: Database, user_id: int, today: Optional[date] = None) -> User:
    now = utcnow()
    today = today or now.date()
    async with db.transaction() as session:
        user = await session.get(User, user_id)
        if not user:
            raise NotFound('User not found.')
        account_state.schedule_deletion(user, today)
        await close_user_sessions(session, user.id, now)
    return user


async def cancel_account_deletion(db: Database, user_id: int, today: Optional[date] = None) -> User:
    today = today or utcnow().date()
    async with db.transaction() as session:
        user = await session.get(User, user_id)
        if not user:
            raise NotFound('User not found.')
        account_state.cancel_deletion(user, today)
    return user


# follows

async def follow_user(db: Database, user_id: int, target_id: int):
    if user_id == target_id:
        raise ValidationError('Cannot follow yourself', fields={'user_id': 'must differ from the caller'})
    async with db.transaction() as session:
        if await session.get(User, target_id) is None:
            raise NotFound('User not found')
        if await session.get(FollowRelationship, (user_id, target_id)) is not None:
            raise Conflict('Already following this user')
        session.add(FollowRelationship(main_user_id=user_id, followed_user_id=target_id))
        await session.execute(
            update(User).where(User.id == user_id).values(following_count=User.following_count + 1)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(User).where(User.id == target_id).values(follower_count=User.follower_count + 1)
            .execution_options(synchronize_session=False)
        )


async def unfollow_user(db: Database, user_id: int, target_id: int):
    async with db.transaction() as session:
        relation = await session.get(FollowRelationship, (user_id, target_id))
        if relation is None:
            raise NotFound('Not following this user')
        await session.delete(relation)
        await session.execute(
            update(User).where(User.id == user_id).values(following_count=User.following_count - 1)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(User).where(User.id == target_id).values(follower_count=User.follower_count - 1)
            .execution_options(synchronize_session=False)
        )


async def detach_follows(session, user_id: int):
    """Adjust the counters of everyone linked to user_id before its rows cascade away."""
    followed = (await session.execute(
        select(FollowRelationship.followed_user_id).where(FollowRelationship.main_user_id == user_id)
    )).scalars().all()
    followers = (await session.execute(
        select(FollowRelationship.main_user_id).where(FollowRelationship.followed_user_id == user_id)
    )).scalars().all()
    if followed:
        await session.execute(
            update(User).where(User.id.in_(followed)).values(follower_count=User.follower_count - 1)
            .execution_options(synchronize_session=False)
        )
    if followers:
        await session.execute(
            update(User).where(User.id.in_(followers)).values(following_count=User.following_count - 1)
            .execution_options(synchronize_session=False)
        )
