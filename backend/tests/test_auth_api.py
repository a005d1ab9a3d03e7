def test_register_returns_camel_case_session(client):
    r = client.post('/auth/register', json={'email': 'Ada@Example.com', 'password': 'Secret123!', 'name': 'Ada'})
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {'token', 'refreshToken', 'expiration', 'user'}
    assert body['user']['email'] == 'ada@example.com'
    assert r.headers['X-Request-ID']


def test_register_duplicate_returns_conflict(client, register):
    register()
    r = client.post('/auth/register', json={'email': 'ada@example.com', 'password': 'Secret123!', 'name': 'Ada'})
    assert r.status_code == 409
    assert r.json() == {'message': 'User with this email already exists'}


def test_register_weak_password_returns_400(client):
    r = client.post('/auth/register', json={'email': 'ada@example.com', 'password': 'password', 'name': 'Ada'})
    assert r.status_code == 400
    assert 'digit' in r.json()['message']


def test_register_invalid_payload_returns_message(client):
    r = client.post('/auth/register', json={'email': 'not-an-email', 'password': 'Secret123!', 'name': 'Ada'})
    assert r.status_code == 400
    assert 'email' in r.json()['message']


def test_login_and_access_protected_route(client, register):
    register()
    r = client.post('/auth/login', json={'email': 'ada@example.com', 'password': 'Secret123!'})
    assert r.status_code == 200
    headers = {'Authorization': f"Bearer {r.json()['token']}"}
    me = client.get('/users/profile', headers=headers)
    assert me.status_code == 200
    assert me.json()['name'] == 'Ada'


def test_login_wrong_password_and_unknown_email_look_the_same(client, register):
    register()
    wrong = client.post('/auth/login', json={'email': 'ada@example.com', 'password': 'Nope123!'})
    unknown = client.post('/auth/login', json={'email': 'bob@example.com', 'password': 'Nope123!'})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {'message': 'Invalid email or password'}


def test_protected_route_requires_valid_token(client):
    assert client.get('/users/profile').status_code == 401
    r = client.get('/users/profile', headers={'Authorization': 'Bearer garbage'})
    assert r.status_code == 401
    assert r.json()['message'] == 'Invalid token'


def test_refresh_and_revoke_flow(client, register):
    _, body = register()
    r = client.post('/auth/refresh', json={'refreshToken': body['refreshToken']})
    assert r.status_code == 200
    new_refresh = r.json()['refreshToken']
    reused = client.post('/auth/refresh', json={'refreshToken': body['refreshToken']})
    assert reused.status_code == 401
    revoked = client.post('/auth/revoke', json={'refreshToken': new_refresh})
    assert revoked.status_code == 200
    assert client.post('/auth/refresh', json={'refreshToken': new_refresh}).status_code == 401
    assert client.post('/auth/revoke', json={'refreshToken': 'unknown'}).status_code == 404


def test_refresh_disabled(client, register, monkeypatch):
    _, body = register()
    monkeypatch.setattr('skillnet.main.settings.REFRESH_TOKENS_ENABLED', False)
    r = client.post('/auth/refresh', json={'refreshToken': body['refreshToken']})
    assert r.status_code == 400
    assert r.json() == {'message': 'Refresh token functionality not implemented'}
    assert client.post('/auth/revoke', json={'refreshToken': 'anything'}).status_code == 200


def test_health(client):
    assert client.get('/health').json() == {'status': 'ok'}
