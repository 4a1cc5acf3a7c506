from datetime import date, timedelta

import pytest

from bookloop import account_state
from bookloop.errors import Forbidden, InvalidTransition
from bookloop.models.users import AccountStatus, User

TODAY = date(2026, 3, 10)


def _user(status=AccountStatus.ACTIVE, schedule_date=None, is_admin=False):
    return User(
        username='reader',
        email='reader@example.com',
        hashed_password='x',
        is_active_status=status,
        deletion_schedule_date=schedule_date,
        is_admin=is_admin,
    )


def test_suspend_without_date_uses_floor():
    user = _user()
    status = account_state.toggle_suspension(user, None, TODAY)
    assert status == AccountStatus.SUSPENDED
    assert user.deletion_schedule_date == TODAY + timedelta(days=3)


def test_suspend_clamps_early_date_up_to_floor():
    user = _user()
    account_state.toggle_suspension(user, TODAY + timedelta(days=1), TODAY)
    assert user.deletion_schedule_date == TODAY + timedelta(days=3)


def test_suspend_keeps_later_date():
    user = _user()
    account_state.toggle_suspension(user, TODAY + timedelta(days=20), TODAY)
    assert user.deletion_schedule_date == TODAY + timedelta(days=20)


def test_toggle_twice_returns_to_active():
    user = _user()
    account_state.toggle_suspension(user, None, TODAY)
    status = account_state.toggle_suspension(user, None, TODAY)
    assert status == AccountStatus.ACTIVE
    assert user.deletion_schedule_date is None


def test_admin_is_immune():
    user = _user(is_admin=True)
    with pytest.raises(Forbidden):
        account_state.toggle_suspension(user, None, TODAY)
    with pytest.raises(Forbidden):
        account_state.schedule_deletion(user, TODAY)
    assert user.is_active_status == AccountStatus.ACTIVE


def test_cannot_suspend_account_scheduled_for_deletion():
    user = _user(AccountStatus.TO_BE_DELETED, TODAY + timedelta(days=5))
    with pytest.raises(InvalidTransition):
        account_state.toggle_suspension(user, None, TODAY)
    assert user.is_active_status == AccountStatus.TO_BE_DELETED


def test_cannot_suspend_deactivated_account():
    user = _user(AccountStatus.DEACTIVATED)
    with pytest.raises(InvalidTransition):
        account_state.toggle_suspension(user, None, TODAY)


def test_lift_elapsed_suspension_only_when_due():
    user = _user(AccountStatus.SUSPENDED, TODAY + timedelta(days=1))
    assert not account_state.suspension_elapsed(user, TODAY)
    with pytest.raises(InvalidTransition):
        account_state.lift_elapsed_suspension(user, TODAY)

    account_state.lift_elapsed_suspension(user, TODAY + timedelta(days=1))
    assert user.is_active_status == AccountStatus.ACTIVE
    assert user.deletion_schedule_date is None


def test_schedule_and_cancel_deletion():
    user = _user()
    scheduled = account_state.schedule_deletion(user, TODAY)
    assert scheduled == TODAY + timedelta(days=30)
    assert user.is_active_status == AccountStatus.TO_BE_DELETED

    account_state.cancel_deletion(user, TODAY + timedelta(days=2))
    assert user.is_active_status == AccountStatus.ACTIVE
    assert user.deletion_schedule_date is None


def test_cancel_after_deadline_is_rejected():
    user = _user(AccountStatus.TO_BE_DELETED, TODAY)
    with pytest.raises(InvalidTransition):
        account_state.cancel_deletion(user, TODAY)


def test_deletion_eligibility():
    due = _user(AccountStatus.TO_BE_DELETED, TODAY)
    future = _user(AccountStatus.TO_BE_DELETED, TODAY + timedelta(days=1))
    suspended = _user(AccountStatus.SUSPENDED, TODAY - timedelta(days=1))

    account_state.ensure_deletable(due, TODAY)
    with pytest.raises(InvalidTransition):
        account_state.ensure_deletable(future, TODAY)
    with pytest.raises(InvalidTransition):
        account_state.ensure_deletable(suspended, TODAY)


def test_admin_check_runs_before_eligibility():
    admin = _user(AccountStatus.ACTIVE, is_admin=True)
    with pytest.raises(Forbidden):
        account_state.ensure_deletable(admin, TODAY)


def test_login_gate():
    account_state.ensure_can_login(_user())
    account_state.ensure_can_login(_user(AccountStatus.TO_BE_DELETED, TODAY))
    with pytest.raises(Forbidden):
        account_state.ensure_can_login(_user(AccountStatus.SUSPENDED, TODAY))
    with pytest.raises(Forbidden):
        account_state.ensure_can_login(_user(AccountStatus.DEACTIVATED))
