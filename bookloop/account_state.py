"""
Account lifecycle transitions.

Every change to User.is_active_status and User.deletion_schedule_date goes
through this module, so admin immunity and the schedule-date invariant
(a date is set exactly when the status is suspended or to_be_deleted) are
enforced in one place.

    active --suspend--> suspended --suspend (toggle) / sweeper--> active
    active --request deletion--> to_be_deleted --admin delete--> (row removed)
"""
import logging
from datetime import date, timedelta
from typing import Optional

from .config import settings
from .errors import Forbidden, InvalidTransition
from .models.users import AccountStatus, SCHEDULED_STATUSES, User

logger = logging.getLogger(__name__)


def suspension_floor(today: date) -> date:
    return today + timedelta(days=settings.suspension_min_days)


def _set_status(user: User, status: AccountStatus, schedule_date: Optional[date] = None):
    if (status in SCHEDULED_STATUSES) != (schedule_date is not None):
        raise InvalidTransition(f'{status.value} requires schedule date to be {"set" if status in SCHEDULED_STATUSES else "empty"}')
    user.is_active_status = status
    user.deletion_schedule_date = schedule_date


def ensure_not_admin(user: User, action: str):
    if user.is_admin:
        raise Forbidden(f'Cannot {action} an admin user')


def toggle_suspension(user: User, requested_date: Optional[date], today: date) -> AccountStatus:
    """Suspend an active account or lift an existing suspension.

    The suspension end is never sooner than today + the minimum window.
    """
    ensure_not_admin(user, 'suspend or unsuspend')
    status = user.is_active_status
    if status == AccountStatus.TO_BE_DELETED:
        raise InvalidTransition('Cannot suspend a user scheduled for deletion')
    if status == AccountStatus.SUSPENDED:
        _set_status(user, AccountStatus.ACTIVE)
        return user.is_active_status
    if status != AccountStatus.ACTIVE:
        raise InvalidTransition(f'Cannot suspend a {status.value} account')

    floor = suspension_floor(today)
    if requested_date is None or requested_date < floor:
        requested_date = floor
    _set_status(user, AccountStatus.SUSPENDED, requested_date)
    return user.is_active_status


def suspension_elapsed(user: User, today: date) -> bool:
    return (
        user.is_active_status == AccountStatus.SUSPENDED
        and user.deletion_schedule_date is not None
        and user.deletion_schedule_date <= today
    )


def lift_elapsed_suspension(user: User, today: date):
    if not suspension_elapsed(user, today):
        raise InvalidTransition('Suspension window has not elapsed')
    _set_status(user, AccountStatus.ACTIVE)


def schedule_deletion(user: User, today: date) -> date:
    ensure_not_admin(user, 'schedule deletion of')
    if user.is_active_status != AccountStatus.ACTIVE:
        raise InvalidTransition(f'Cannot schedule deletion of a {user.is_active_status.value} account')
    scheduled = today + timedelta(days=settings.deletion_grace_days)
    _set_status(user, AccountStatus.TO_BE_DELETED, scheduled)
    return scheduled


def cancel_deletion(user: User, today: date):
    if user.is_active_status != AccountStatus.TO_BE_DELETED:
        raise InvalidTransition('Account is not scheduled for deletion')
    if user.deletion_schedule_date <= today:
        raise InvalidTransition('Deletion date has already passed')
    _set_status(user, AccountStatus.ACTIVE)


def deletion_due(user: User, today: date) -> bool:
    return (
        user.is_active_status == AccountStatus.TO_BE_DELETED
        and user.deletion_schedule_date is not None
        and user.deletion_schedule_date <= today
    )


def ensure_deletable(user: User, today: date):
    ensure_not_admin(user, 'delete')
    if not deletion_due(user, today):
        raise InvalidTransition('User not eligible for deletion')


def ensure_can_login(user: User):
    # to_be_deleted accounts may still log in to cancel the deletion
    status = user.is_active_status
    if status == AccountStatus.SUSPENDED:
        raise Forbidden(f'Account is suspended until {user.deletion_schedule_date.isoformat()}')
    if status == AccountStatus.DEACTIVATED:
        raise Forbidden('Account is deactivated')
