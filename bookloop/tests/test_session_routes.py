import pytest

from conftest import api_login, auth, cookie_value, make_user


def _refresh_cookie(token):
    return {'Cookie': f'refreshToken={token}'}


@pytest.mark.asyncio
async def test_refresh_rotates_cookies(client, db):
    await make_user(db, 'alice')
    access, refresh = await api_login(client, 'alice')

    res = await client.post('/api/sessions/refresh', headers=_refresh_cookie(refresh))
    assert res.status_code == 200
    body = res.json()
    assert 'accessTokenExpiresAt' in body
    assert 'refreshTokenExpiresAt' in body
    new_access = cookie_value(res, 'accessToken')
    new_refresh = cookie_value(res, 'refreshToken')
    assert new_access and new_access != access
    assert new_refresh and new_refresh != refresh

    set_cookies = res.headers.get_list('set-cookie')
    refresh_header = next(h for h in set_cookies if h.startswith('refreshToken='))
    assert 'HttpOnly' in refresh_header
    assert 'Path=/api/sessions' in refresh_header
    assert 'samesite=strict' in refresh_header.lower()

    validate = await client.get('/api/sessions/validate', headers=auth(new_access))
    assert validate.status_code == 200


@pytest.mark.asyncio
async def test_refresh_without_cookie_asks_for_login(client):
    res = await client.post('/api/sessions/refresh')
    assert res.status_code == 403
    error = res.json()['error']
    assert error['code'] == 'missing_token'
    assert error['detail']['redirect'] == '/login'


@pytest.mark.asyncio
async def test_refresh_with_bad_token(client):
    res = await client.post('/api/sessions/refresh', headers=_refresh_cookie('garbage'))
    assert res.status_code == 401
    assert res.json()['error']['code'] == 'invalid_token'


@pytest.mark.asyncio
async def test_refresh_replay_is_rejected(client, db):
    await make_user(db, 'alice')
    _, refresh = await api_login(client, 'alice')

    first = await client.post('/api/sessions/refresh', headers=_refresh_cookie(refresh))
    assert first.status_code == 200
    replay = await client.post('/api/sessions/refresh', headers=_refresh_cookie(refresh))
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_validate_requires_token(client):
    res = await client.get('/api/sessions/validate')
    assert res.status_code == 403
    res = await client.get('/api/sessions/validate', headers=auth('not.a.jwt'))
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_validate_accepts_cookie_or_header(client, db):
    user = await make_user(db, 'alice')
    access, _ = await api_login(client, 'alice')

    by_header = await client.get('/api/sessions/validate', headers=auth(access))
    by_cookie = await client.get('/api/sessions/validate', headers={'Cookie': f'accessToken={access}'})
    assert by_header.status_code == by_cookie.status_code == 200
    assert by_header.json()['userId'] == user.id
    assert by_header.json()['username'] == 'alice'


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(client, db):
    await make_user(db, 'alice')
    _, refresh = await api_login(client, 'alice')
    res = await client.get('/api/sessions/validate', headers=auth(refresh))
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_logout_ends_only_the_current_session(client, db):
    await make_user(db, 'alice')
    laptop, laptop_refresh = await api_login(client, 'alice', agent='laptop')
    phone, _ = await api_login(client, 'alice', agent='phone')

    res = await client.post('/api/sessions/logout', headers=auth(laptop))
    assert res.status_code == 200
    body = res.json()
    assert body['logout'] is True
    assert body['sessionsClosed'] == 1
    assert body['tokensInvalidated'] == 2

    assert (await client.get('/api/sessions/validate', headers=auth(laptop))).status_code == 401
    assert (await client.get('/api/sessions/validate', headers=auth(phone))).status_code == 200
    refresh = await client.post('/api/sessions/refresh', headers=_refresh_cookie(laptop_refresh))
    assert refresh.status_code == 401


@pytest.mark.asyncio
async def test_logout_all(client, db):
    await make_user(db, 'alice')
    tokens = [(await api_login(client, 'alice', agent=f'device-{n}'))[0] for n in range(3)]

    res = await client.post('/api/sessions/logout-all', headers=auth(tokens[0]))
    assert res.status_code == 200
    assert res.json()['sessionsClosed'] == 3
    assert res.json()['tokensInvalidated'] == 6
    for access in tokens:
        assert (await client.get('/api/sessions/validate', headers=auth(access))).status_code == 401


@pytest.mark.asyncio
async def test_trace_is_disabled(client):
    res = await client.request('TRACE', '/api/sessions/validate')
    assert res.status_code == 405


@pytest.mark.asyncio
async def test_healthz(client):
    res = await client.get('/healthz')
    assert res.status_code == 200
    assert res.json() == {'status': 'ok'}
