import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy import select

from .config import settings
from .errors import Forbidden, InvalidToken, MissingToken, NotFound
from .models import Database
from .models.session_logs import SessionLog
from .models.tokens import Token, TokenType
from .models.users import User

ACCESS_COOKIE = 'accessToken'
REFRESH_COOKIE = 'refreshToken'
ACCESS_HEADER = 'x-access-token'

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')


@dataclass(frozen=True)
class CurrentUser:
    id: int
    username: str
    session_id: int
    is_admin: bool


def utcnow() -> datetime:
    """Naive UTC, the representation every DateTime column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_password(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_ctx.verify(password, hashed)


def generate_opaque_token() -> str:
    # emailConfirmation / passwordReset links
    return secrets.token_urlsafe(20)


def create_jwt(user_id: int, session_id: int, token_type: TokenType, expires_at: datetime) -> str:
    payload = {
        'id': user_id,
        'session': session_id,
        'type': token_type.value,
        # keeps two tokens minted in the same second from sharing a key
        'jti': uuid.uuid4().hex,
        'exp': expires_at.replace(tzinfo=timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str):
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def access_token_expiry(now: datetime) -> datetime:
    return now + timedelta(minutes=settings.access_token_expire_minutes)


def refresh_token_expiry(now: datetime) -> datetime:
    return now + timedelta(days=settings.refresh_token_expire_days)


def get_db(request: Request) -> Database:
    return request.app.state.database


async def get_current_user(request: Request, db: Database = Depends(get_db)) -> CurrentUser:
    token = request.cookies.get(ACCESS_COOKIE) or request.headers.get(ACCESS_HEADER)
    if not token:
        raise MissingToken()
    payload = decode_jwt(token)
    if not payload or payload.get('type') != TokenType.ACCESS.value:
        raise InvalidToken('Unauthorized')

    # a verified signature is not enough: the row must still be live
    now = utcnow()
    async with db.session() as session:
        q = await session.execute(
            select(Token, SessionLog, User)
            .join(SessionLog, Token.session_id == SessionLog.id)
            .join(User, Token.user_id == User.id)
            .where(Token.token_key == token, Token.token_type == TokenType.ACCESS)
        )
        row = q.first()
    if row is None:
        raise InvalidToken('Session has been terminated or token is no longer valid')
    record, session_log, user = row
    if not record.is_usable(now) or not session_log.is_open:
        raise InvalidToken('Session has been terminated or token is no longer valid')
    return CurrentUser(id=user.id, username=user.username, session_id=session_log.id, is_admin=user.is_admin)


async def require_admin(current_user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)) -> CurrentUser:
    async with db.session() as session:
        user = await session.get(User, current_user.id)
    if user is None:
        raise NotFound('User not found.')
    if not user.is_admin:
        raise Forbidden('Access denied. Admins only.')
    return current_user
