import os
from datetime import date
from http.cookiejar import CookieJar, DefaultCookiePolicy

# Configure test environment before the settings object is built
os.environ.setdefault('COOKIE_SECURE', 'false')
os.environ.setdefault('SWEEPERS_ENABLED', 'false')
os.environ.setdefault('METRICS_PORT', '0')
os.environ.setdefault('JWT_SECRET', 'test-secret')

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import StaticPool

from bookloop.crud import create_user
from bookloop.main import create_app
from bookloop.models import Database
from bookloop.models.users import User
from bookloop.schemas.users import RegisterIn

PASSWORD = 'password123'


class RecordingMailer:
    """Keeps the tokens that would have been mailed."""

    def __init__(self):
        self.verifications = []
        self.resets = []

    async def send_verification_email(self, to_email, token):
        self.verifications.append((to_email, token))
        return True

    async def send_password_reset_email(self, to_email, token):
        self.resets.append((to_email, token))
        return True


@pytest_asyncio.fixture
async def db():
    database = Database(
        'sqlite+aiosqlite://',
        poolclass=StaticPool,
        connect_args={'check_same_thread': False},
    )
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(db, mailer):
    return create_app(database=db, mailer=mailer, run_sweepers=False)


@pytest_asyncio.fixture
async def client(app):
    # no cookie persistence: every test says which credential it sends
    jar = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test', cookies=jar) as ac:
        yield ac


def cookie_value(response, name):
    for header in response.headers.get_list('set-cookie'):
        key, _, rest = header.partition('=')
        if key.strip() == name:
            return rest.split(';', 1)[0].strip('"')
    return None


def auth(access_token):
    return {'x-access-token': access_token}


async def make_user(db, username, *, is_admin=False, status=None, schedule_date=None) -> User:
    user = await create_user(db, RegisterIn(
        username=username,
        name=username.title(),
        email=f'{username}@example.com',
        password=PASSWORD,
        birth_date=date(1990, 1, 1),
        accept_terms=True,
    ), is_admin=is_admin)
    if status is not None:
        async with db.transaction() as session:
            row = await session.get(User, user.id)
            row.is_active_status = status
            row.deletion_schedule_date = schedule_date
        user = row
    return user


async def api_login(client, username, password=PASSWORD, agent='pytest-agent'):
    res = await client.post(
        '/api/users/login',
        json={'usernameOrEmail': username, 'password': password},
        headers={'user-agent': agent},
    )
    assert res.status_code == 200, res.text
    return cookie_value(res, 'accessToken'), cookie_value(res, 'refreshToken')
