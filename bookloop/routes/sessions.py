from fastapi import APIRouter, Depends, Request, Response

from ..auth import ACCESS_COOKIE, REFRESH_COOKIE, CurrentUser, get_current_user, get_db, utcnow
from ..config import settings
from ..models import Database
from ..schemas.sessions import LogoutOut, RefreshOut, ValidSessionOut
from ..tokens import TokenPair, global_logout, logout, refresh_session

router = APIRouter()

REFRESH_COOKIE_PATH = '/api/sessions'


def _max_age(expires_at) -> int:
    return max(int((expires_at - utcnow()).total_seconds()), 0)


def set_auth_cookies(response: Response, pair: TokenPair):
    response.set_cookie(
        ACCESS_COOKIE, pair.access.token,
        max_age=_max_age(pair.access.expires_at),
        httponly=True, secure=settings.cookie_secure, samesite='strict',
    )
    response.set_cookie(
        REFRESH_COOKIE, pair.refresh.token,
        max_age=_max_age(pair.refresh.expires_at),
        httponly=True, secure=settings.cookie_secure, samesite='strict', path=REFRESH_COOKIE_PATH,
    )


def clear_auth_cookies(response: Response):
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE, path=REFRESH_COOKIE_PATH)


@router.post('/refresh', response_model=RefreshOut)
async def refresh(request: Request, response: Response, db: Database = Depends(get_db)):
    # MissingToken (403) and InvalidToken (401) both tell the client to log in again
    pair = await refresh_session(db, request.cookies.get(REFRESH_COOKIE))
    set_auth_cookies(response, pair)
    return RefreshOut(
        access_token_expires_at=pair.access.expires_at,
        refresh_token_expires_at=pair.refresh.expires_at,
    )


@router.post('/logout', response_model=LogoutOut)
async def logout_current(
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    result = await logout(db, current_user.session_id)
    clear_auth_cookies(response)
    return LogoutOut(
        message='Logout successful.',
        sessions_closed=result.sessions_closed,
        tokens_invalidated=result.tokens_invalidated,
    )


@router.post('/logout-all', response_model=LogoutOut)
async def logout_everywhere(
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    result = await global_logout(db, current_user.id)
    clear_auth_cookies(response)
    return LogoutOut(
        message='Logged out of all sessions.',
        sessions_closed=result.sessions_closed,
        tokens_invalidated=result.tokens_invalidated,
    )


@router.get('/validate', response_model=ValidSessionOut)
async def validate(current_user: CurrentUser = Depends(get_current_user)):
    return ValidSessionOut(user_id=current_user.id, username=current_user.username, session_id=current_user.session_id)
