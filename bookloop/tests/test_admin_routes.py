from datetime import timedelta

import pytest
from sqlalchemy import func, select

from bookloop.auth import utcnow
from bookloop.crud import follow_user
from bookloop.models.session_logs import SessionLog
from bookloop.models.tokens import Token
from bookloop.models.users import AccountStatus, User

from conftest import api_login, auth, make_user


@pytest.fixture
def today():
    return utcnow().date()


async def _admin_token(client, db):
    await make_user(db, 'root', is_admin=True)
    access, _ = await api_login(client, 'root', agent='admin-console')
    return access


class TestAdminGuard:

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        res = await client.get('/api/admin/users/suspended')
        assert res.status_code == 403
        assert res.json()['error']['code'] == 'missing_token'

    @pytest.mark.asyncio
    async def test_requires_admin(self, client, db):
        target = await make_user(db, 'bob')
        await make_user(db, 'alice')
        access, _ = await api_login(client, 'alice')

        res = await client.patch(f'/api/admin/users/{target.id}', headers=auth(access))
        assert res.status_code == 403
        assert res.json()['error']['message'] == 'Access denied. Admins only.'

        async with db.session() as session:
            row = await session.get(User, target.id)
        assert row.is_active_status == AccountStatus.ACTIVE


class TestSuspension:

    @pytest.mark.asyncio
    async def test_toggle_suspension_twice(self, client, db, today):
        admin = await _admin_token(client, db)
        bob = await make_user(db, 'bob')

        res = await client.patch(f'/api/admin/users/{bob.id}', headers=auth(admin))
        assert res.status_code == 200
        body = res.json()
        assert body['message'] == 'User account suspended'
        assert body['status'] == 'suspended'
        assert body['deletionScheduleDate'] == (today + timedelta(days=3)).isoformat()

        res = await client.patch(f'/api/admin/users/{bob.id}', headers=auth(admin))
        assert res.status_code == 200
        assert res.json()['message'] == 'User account unsuspended'
        assert res.json()['status'] == 'active'
        assert res.json()['deletionScheduleDate'] is None

    @pytest.mark.asyncio
    async def test_requested_date_is_clamped(self, client, db, today):
        admin = await _admin_token(client, db)
        bob = await make_user(db, 'bob')
        carol = await make_user(db, 'carol')

        early = await client.patch(
            f'/api/admin/users/{bob.id}', json={'suspensionDate': today.isoformat()}, headers=auth(admin)
        )
        assert early.json()['deletionScheduleDate'] == (today + timedelta(days=3)).isoformat()

        later = today + timedelta(days=14)
        res = await client.patch(
            f'/api/admin/users/{carol.id}', json={'suspensionDate': later.isoformat()}, headers=auth(admin)
        )
        assert res.json()['deletionScheduleDate'] == later.isoformat()

    @pytest.mark.asyncio
    async def test_suspension_errors(self, client, db, today):
        admin = await _admin_token(client, db)
        other_admin = await make_user(db, 'moderator', is_admin=True)
        leaving = await make_user(db, 'leaving', status=AccountStatus.TO_BE_DELETED,
                                  schedule_date=today + timedelta(days=10))

        assert (await client.patch('/api/admin/users/9999', headers=auth(admin))).status_code == 404
        assert (await client.patch(f'/api/admin/users/{other_admin.id}', headers=auth(admin))).status_code == 403

        res = await client.patch(f'/api/admin/users/{leaving.id}', headers=auth(admin))
        assert res.status_code == 400
        assert res.json()['error']['code'] == 'invalid_transition'

    @pytest.mark.asyncio
    async def test_suspended_users_listing(self, client, db, today):
        admin = await _admin_token(client, db)
        for name in ('anna', 'bert', 'cleo'):
            await make_user(db, name, status=AccountStatus.SUSPENDED, schedule_date=today + timedelta(days=5))
        await make_user(db, 'dave')

        first = await client.get('/api/admin/users/suspended', params={'page': 1, 'limit': 2}, headers=auth(admin))
        assert first.status_code == 200
        body = first.json()
        assert body['currentPage'] == 1
        assert body['totalPages'] == 2
        assert [u['username'] for u in body['data']] == ['anna', 'bert']
        assert body['data'][0]['isActiveStatus'] == 'suspended'

        second = await client.get('/api/admin/users/suspended', params={'page': 2, 'limit': 2}, headers=auth(admin))
        assert [u['username'] for u in second.json()['data']] == ['cleo']

        bad = await client.get('/api/admin/users/suspended', params={'page': 0}, headers=auth(admin))
        assert bad.status_code == 400


class TestDeletion:

    @pytest.mark.asyncio
    async def test_list_candidates(self, client, db, today):
        admin = await _admin_token(client, db)
        due = await make_user(db, 'due', status=AccountStatus.TO_BE_DELETED, schedule_date=today)
        await make_user(db, 'waiting', status=AccountStatus.TO_BE_DELETED, schedule_date=today + timedelta(days=1))
        await make_user(db, 'suspended', status=AccountStatus.SUSPENDED, schedule_date=today)

        res = await client.get('/api/admin/users/scheduled_to_delete', headers=auth(admin))
        assert res.status_code == 200
        assert [u['id'] for u in res.json()] == [due.id]
        assert res.json()[0]['deletionScheduleDate'] == today.isoformat()

    @pytest.mark.asyncio
    async def test_delete_due_user_cascades(self, client, db, today):
        admin = await _admin_token(client, db)
        fan = await make_user(db, 'fan')
        leaving = await make_user(db, 'leaving')
        await follow_user(db, fan.id, leaving.id)
        await follow_user(db, leaving.id, fan.id)
        await api_login(client, 'leaving')
        async with db.transaction() as session:
            row = await session.get(User, leaving.id)
            row.is_active_status = AccountStatus.TO_BE_DELETED
            row.deletion_schedule_date = today - timedelta(days=1)

        res = await client.delete(f'/api/admin/users/{leaving.id}', headers=auth(admin))
        assert res.status_code == 200
        assert res.json()['ok'] is True

        async with db.session() as session:
            assert await session.get(User, leaving.id) is None
            sessions = await session.scalar(
                select(func.count()).select_from(SessionLog).where(SessionLog.user_id == leaving.id)
            )
            tokens = await session.scalar(select(func.count()).select_from(Token).where(Token.user_id == leaving.id))
            fan_row = await session.get(User, fan.id)
        assert sessions == 0
        assert tokens == 0
        assert fan_row.follower_count == 0
        assert fan_row.following_count == 0

        again = await client.delete(f'/api/admin/users/{leaving.id}', headers=auth(admin))
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_rejections(self, client, db, today):
        admin = await _admin_token(client, db)
        waiting = await make_user(db, 'waiting', status=AccountStatus.TO_BE_DELETED,
                                  schedule_date=today + timedelta(days=1))
        active = await make_user(db, 'active')
        other_admin = await make_user(db, 'moderator', is_admin=True)

        assert (await client.delete(f'/api/admin/users/{waiting.id}', headers=auth(admin))).status_code == 400
        assert (await client.delete(f'/api/admin/users/{active.id}', headers=auth(admin))).status_code == 400
        assert (await client.delete(f'/api/admin/users/{other_admin.id}', headers=auth(admin))).status_code == 403
        assert (await client.delete('/api/admin/users/9999', headers=auth(admin))).status_code == 404

        async with db.session() as session:
            assert await session.get(User, waiting.id) is not None
