"""
Scheduled sweepers
Periodic reconciliation jobs that advance rows whose deadline has already
passed: expired refresh tokens (and their sessions) and elapsed suspensions.

Each run commits its whole batch or nothing. A failed run is logged and
retried at the next tick; skipping a tick loses nothing because the next
run selects by deadline again.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import select, update

from . import account_state
from .auth import utcnow
from .config import settings
from .core import SWEEPER_ROWS, SWEEPER_RUNS
from .models import Database
from .models.session_logs import SessionLog
from .models.tokens import Token, TokenType
from .models.users import AccountStatus, User

logger = logging.getLogger(__name__)


async def sweep_expired_tokens(db: Database, now: Optional[datetime] = None) -> int:
    """Invalidate expired live refresh tokens and close their sessions."""
    now = now or utcnow()
    async with db.transaction() as session:
        q = await session.execute(
            select(Token.token_key, Token.session_id).where(
                Token.token_type == TokenType.REFRESH,
                Token.invalidated.is_(False),
                Token.expires_at < now,
            ).with_for_update()
        )
        rows = q.all()
        if not rows:
            logger.info("No expired tokens found to update at this check")
            return 0

        token_keys = [row.token_key for row in rows]
        session_ids = {row.session_id for row in rows if row.session_id is not None}
        result = await session.execute(
            update(Token)
            .where(Token.token_key.in_(token_keys), Token.invalidated.is_(False))
            .values(invalidated=True, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        if session_ids:
            await session.execute(
                update(SessionLog)
                .where(SessionLog.id.in_(session_ids), SessionLog.end_time.is_(None))
                .values(end_time=now)
                .execution_options(synchronize_session=False)
            )
        swept = result.rowcount
    logger.info(f"Swept {swept} expired refresh tokens across {len(session_ids)} sessions")
    return swept


async def sweep_elapsed_suspensions(db: Database, today: Optional[date] = None) -> int:
    """Reactivate every suspended account whose schedule date is today or earlier."""
    today = today or utcnow().date()
    async with db.transaction() as session:
        q = await session.execute(
            select(User).where(
                User.is_active_status == AccountStatus.SUSPENDED,
                User.deletion_schedule_date <= today,
            ).with_for_update()
        )
        users = q.scalars().all()
        if not users:
            logger.info("No users found to unsuspend at this check")
            return 0
        for user in users:
            account_state.lift_elapsed_suspension(user, today)
    logger.info(f"Unsuspended {len(users)} users")
    return len(users)


def _check_minute(minute: int) -> int:
    if not 0 <= minute <= 59:
        raise ValueError(f'minute must be in 0..59, got {minute}')
    return minute


def _parse_clock(value: str):
    """'HH:MM' -> (hour, minute); anything else is a startup error."""
    try:
        hour, minute = (int(part) for part in value.split(':', 1))
    except ValueError:
        raise ValueError(f'expected HH:MM, got {value!r}') from None
    if not 0 <= hour <= 23:
        raise ValueError(f'hour must be in 0..23, got {hour}')
    return hour, _check_minute(minute)


class BaseSweeper:
    """Base class for time-triggered sweepers"""

    name = 'sweeper'

    def __init__(self, db: Database):
        self.db = db
        self.running = False
        self.run_count = 0
        self.error_count = 0
        self.last_swept: Optional[int] = None

    def next_run(self, now: datetime) -> datetime:
        raise NotImplementedError

    async def sweep(self) -> int:
        raise NotImplementedError

    async def run_once(self) -> Optional[int]:
        """One tick. Failures are logged and counted, never raised."""
        try:
            swept = await self.sweep()
        except Exception as e:
            self.error_count += 1
            SWEEPER_RUNS.labels(self.name, 'failed').inc()
            logger.error(f"Sweeper {self.name} run failed, retrying next cadence: {e!r}")
            return None
        self.run_count += 1
        self.last_swept = swept
        SWEEPER_RUNS.labels(self.name, 'ok').inc()
        SWEEPER_ROWS.labels(self.name).inc(swept)
        return swept

    async def start(self):
        self.running = True
        logger.info(f"Starting {self.__class__.__name__}")
        while self.running:
            now = utcnow()
            try:
                delay = (self.next_run(now) - now).total_seconds()
            except Exception as e:
                self.running = False
                self.error_count += 1
                logger.error(f"Sweeper {self.name} cannot schedule its next run, stopping: {e!r}")
                break
            await asyncio.sleep(max(delay, 0))
            if not self.running:
                break
            await self.run_once()

    async def stop(self):
        self.running = False
        logger.info(f"Stopping {self.__class__.__name__}")


class TokenSweeper(BaseSweeper):
    """Hourly, at settings.token_sweep_minute past the hour (UTC)."""

    name = 'tokens'

    def __init__(self, db: Database, minute: Optional[int] = None):
        super().__init__(db)
        self.minute = _check_minute(settings.token_sweep_minute if minute is None else minute)

    def next_run(self, now: datetime) -> datetime:
        target = now.replace(minute=self.minute, second=0, microsecond=0)
        if target <= now:
            target += timedelta(hours=1)
        return target

    async def sweep(self) -> int:
        return await sweep_expired_tokens(self.db)


class SuspensionSweeper(BaseSweeper):
    """Daily at settings.suspension_sweep_time (UTC)."""

    name = 'suspensions'

    def __init__(self, db: Database, at: Optional[str] = None):
        super().__init__(db)
        self.hour, self.minute = _parse_clock(at or settings.suspension_sweep_time)

    def next_run(self, now: datetime) -> datetime:
        target = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if target <= now:
            target += timedelta(days=1)
        return target

    async def sweep(self) -> int:
        return await sweep_elapsed_suspensions(self.db)


class SweeperManager:
    """Manages all sweepers"""

    def __init__(self, db: Database):
        self.sweepers = [TokenSweeper(db), SuspensionSweeper(db)]
        self.tasks = []

    async def start_all(self):
        for sweeper in self.sweepers:
            self.tasks.append(asyncio.create_task(sweeper.start()))
        logger.info(f"Started {len(self.sweepers)} sweepers")

    async def stop_all(self):
        for sweeper in self.sweepers:
            await sweeper.stop()
        # a run cut off here rolls back and is redone next cadence
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []
        logger.info("All sweepers stopped")

    def get_stats(self) -> Dict[str, Dict[str, object]]:
        return {
            sweeper.name: {
                "runs": sweeper.run_count,
                "errors": sweeper.error_count,
                "running": sweeper.running,
            }
            for sweeper in self.sweepers
        }
