from fastapi import APIRouter, Depends, Request, Response

from ..auth import CurrentUser, get_current_user, get_db
from ..crud import (
    cancel_account_deletion,
    confirm_password_reset,
    create_user,
    follow_user,
    get_user_by_id,
    login,
    request_account_deletion,
    request_password_reset,
    unfollow_user,
    update_account_settings,
    verify_email,
)
from ..errors import NotFound
from ..models import Database
from ..schemas.users import (
    AccountSettingsIn,
    ActionOkOut,
    DeletionScheduleOut,
    LoginIn,
    LoginOut,
    PasswordResetConfirmIn,
    PasswordResetIn,
    PublicUserOut,
    RegisterIn,
    SessionUserOut,
    UserOut,
)
from .sessions import clear_auth_cookies, set_auth_cookies


router = APIRouter()


def get_mailer(request: Request):
    return request.app.state.mailer


@router.post('', response_model=UserOut, status_code=201)
async def register(payload: RegisterIn, db: Database = Depends(get_db)):
    return await create_user(db, payload)


@router.post('/login', response_model=LoginOut)
async def login_route(payload: LoginIn, request: Request, response: Response, db: Database = Depends(get_db)):
    ip = request.client.host if request.client else None
    user, pair = await login(db, payload.username_or_email, payload.password, ip, request.headers.get('user-agent'))
    set_auth_cookies(response, pair)
    return LoginOut(
        message='Login successful',
        user=SessionUserOut(id=user.id, username=user.username, email=user.email),
        access_token_expires_at=pair.access.expires_at,
    )


@router.get('/me', response_model=UserOut)
async def me(current_user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    user = await get_user_by_id(db, current_user.id)
    if not user:
        raise NotFound('User not found')
    return user


@router.patch('/me/account', response_model=UserOut)
async def update_account(
    payload: AccountSettingsIn,
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    mailer=Depends(get_mailer),
):
    user = await update_account_settings(db, current_user.id, payload, mailer)
    # the password changed, so every session (this one too) is over
    clear_auth_cookies(response)
    return user


@router.post('/me/deletion', response_model=DeletionScheduleOut)
async def schedule_my_deletion(
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user = await request_account_deletion(db, current_user.id)
    clear_auth_cookies(response)
    return DeletionScheduleOut(status=user.is_active_status, deletion_schedule_date=user.deletion_schedule_date)


@router.delete('/me/deletion', response_model=DeletionScheduleOut)
async def cancel_my_deletion(current_user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    user = await cancel_account_deletion(db, current_user.id)
    return DeletionScheduleOut(status=user.is_active_status, deletion_schedule_date=user.deletion_schedule_date)


@router.get('/verify-email', response_model=ActionOkOut)
async def verify_email_route(token: str, db: Database = Depends(get_db)):
    await verify_email(db, token)
    return {'ok': True, 'message': 'Email verified'}


@router.post('/password-reset', response_model=ActionOkOut)
async def password_reset(payload: PasswordResetIn, db: Database = Depends(get_db), mailer=Depends(get_mailer)):
    # same answer whether or not the address is registered
    await request_password_reset(db, payload.email, mailer)
    return {'ok': True, 'message': 'If the address is registered, a reset link has been sent'}


@router.post('/password-reset/confirm', response_model=ActionOkOut)
async def password_reset_confirm(payload: PasswordResetConfirmIn, db: Database = Depends(get_db)):
    await confirm_password_reset(db, payload.token, payload.new_password)
    return {'ok': True, 'message': 'Password updated'}


@router.post('/{user_id}/follow', response_model=ActionOkOut)
async def follow(user_id: int, current_user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    await follow_user(db, current_user.id, user_id)
    return {'ok': True}


@router.delete('/{user_id}/follow', response_model=ActionOkOut)
async def unfollow(user_id: int, current_user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    await unfollow_user(db, current_user.id, user_id)
    return {'ok': True}


@router.get('/{user_id}', response_model=PublicUserOut)
async def get_user_profile(user_id: int, db: Database = Depends(get_db)):
    user = await get_user_by_id(db, user_id)
    if not user:
        raise NotFound('User not found')
    return user
