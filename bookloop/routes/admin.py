from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_db, require_admin
from ..models import Database
from ..models.users import AccountStatus
from ..moderation import delete_user, list_deletion_candidates, list_suspended_users, toggle_suspension
from ..schemas.admin import DeletionCandidateOut, SuspendedUsersPage, SuspensionIn, SuspensionOut
from ..schemas.users import ActionOkOut

router = APIRouter(dependencies=[Depends(require_admin)])


@router.patch('/users/{user_id}', response_model=SuspensionOut)
async def toggle_user_suspension(user_id: int, payload: Optional[SuspensionIn] = None, db: Database = Depends(get_db)):
    """Suspends an active user or lifts the suspension of a suspended one."""
    requested = payload.suspension_date if payload else None
    user = await toggle_suspension(db, user_id, requested)
    suspended = user.is_active_status == AccountStatus.SUSPENDED
    return SuspensionOut(
        message='User account suspended' if suspended else 'User account unsuspended',
        status=user.is_active_status,
        deletion_schedule_date=user.deletion_schedule_date,
    )


@router.get('/users/scheduled_to_delete', response_model=List[DeletionCandidateOut])
async def users_scheduled_to_delete(db: Database = Depends(get_db)):
    return await list_deletion_candidates(db)


@router.get('/users/suspended', response_model=SuspendedUsersPage)
async def suspended_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return await list_suspended_users(db, page, limit)


@router.delete('/users/{user_id}', response_model=ActionOkOut)
async def delete_user_account(user_id: int, db: Database = Depends(get_db)):
    await delete_user(db, user_id)
    return {'ok': True, 'message': 'User account deleted'}
