import logging
import math
from datetime import date
from typing import Optional

from sqlalchemy import delete, func, select

from . import account_state
from .auth import utcnow
from .crud import detach_follows
from .errors import NotFound
from .models import Database
from .models.users import AccountStatus, User

logger = logging.getLogger(__name__)


def _today() -> date:
    return utcnow().date()


async def toggle_suspension(db: Database, user_id: int, suspension_date: Optional[date] = None,
                            today: Optional[date] = None) -> User:
    """Suspend or unsuspend depending on the account's current status."""
    today = today or _today()
    async with db.transaction() as session:
        q = await session.execute(select(User).where(User.id == user_id).with_for_update())
        user = q.scalars().first()
        if not user:
            raise NotFound('User not found')
        status = account_state.toggle_suspension(user, suspension_date, today)
    logger.info(f"User {user_id} is now {status.value} (until {user.deletion_schedule_date})")
    return user


async def list_deletion_candidates(db: Database, today: Optional[date] = None):
    today = today or _today()
    async with db.session() as session:
        q = await session.execute(
            select(User.id, User.username, User.profile_image, User.deletion_schedule_date, User.registration_date)
            .where(
                User.is_active_status == AccountStatus.TO_BE_DELETED,
                User.deletion_schedule_date <= today,
            )
            .order_by(User.deletion_schedule_date.asc(), User.id.asc())
        )
        return [dict(row) for row in q.mappings().all()]


async def list_suspended_users(db: Database, page: int = 1, limit: int = 10):
    offset = (page - 1) * limit
    async with db.session() as session:
        total = await session.scalar(
            select(func.count()).select_from(User).where(User.is_active_status == AccountStatus.SUSPENDED)
        )
        q = await session.execute(
            select(User.id, User.username, User.profile_image, User.is_active_status,
                   User.deletion_schedule_date, User.registration_date)
            .where(User.is_active_status == AccountStatus.SUSPENDED)
            .order_by(User.id.asc())
            .limit(limit)
            .offset(offset)
        )
        rows = [dict(row) for row in q.mappings().all()]
    return {
        'data': rows,
        'current_page': page,
        'total_pages': math.ceil(total / limit) if total else 0,
    }


async def delete_user(db: Database, user_id: int, today: Optional[date] = None):
    """Hard-delete a due to_be_deleted account; sessions, tokens and follows cascade."""
    today = today or _today()
    async with db.transaction() as session:
        q = await session.execute(select(User).where(User.id == user_id).with_for_update())
        user = q.scalars().first()
        if not user:
            raise NotFound('User not found')
        account_state.ensure_deletable(user, today)
        await detach_follows(session, user_id)
        await session.execute(delete(User).where(User.id == user_id))
    logger.info(f"Deleted user {user_id}")
