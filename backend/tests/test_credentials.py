import base64
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from skillnet.config import Settings
from skillnet.errors import (
    DuplicateAccount,
    InvalidCredentials,
    NotFound,
    NotImplementedCapability,
    ValidationError,
)
from skillnet.services import PWD_CTX, AuthService, decode_session_token, password_problems

from fakes import FakeAccountStore, FakeRefreshTokenStore


class Clock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now


def make_service(with_store=True, **overrides):
    config = Settings()
    for key, value in overrides.items():
        setattr(config, key, value)
    clock = Clock()
    users = FakeAccountStore()
    tokens = FakeRefreshTokenStore() if with_store else None
    return AuthService(users, tokens, config=config, clock=clock), users, tokens, clock


def test_register_issues_session_with_exact_expiration():
    auth, users, _, clock = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    issued = clock.now.replace(microsecond=0)
    assert resp.expiration == issued + timedelta(minutes=60)
    claims = decode_session_token(resp.token, auth.config)
    assert claims['sub'] == str(resp.user.id)
    assert claims['email'] == 'ada@example.com'
    assert claims['name'] == 'Ada'
    assert claims['iss'] == 'SkillNet'
    assert claims['aud'] == 'SkillNetUsers'
    assert claims['exp'] == int(resp.expiration.timestamp())
    assert claims['jti']


def test_register_stores_hash_not_password():
    auth, users, _, _ = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    stored = users.get(resp.user.id)
    assert stored.password_hash != 'Secret123!'
    assert PWD_CTX.verify('Secret123!', stored.password_hash)


def test_each_session_has_unique_token_id():
    auth, _, _, _ = make_service()
    first = auth.register('ada@example.com', 'Secret123!', 'Ada')
    second = auth.login('ada@example.com', 'Secret123!')
    c1 = decode_session_token(first.token, auth.config)
    c2 = decode_session_token(second.token, auth.config)
    assert c1['jti'] != c2['jti']
    assert first.refresh_token != second.refresh_token


def test_duplicate_email_is_rejected_before_insert():
    auth, users, _, _ = make_service()
    auth.register('ada@example.com', 'Secret123!', 'Ada')
    with pytest.raises(DuplicateAccount) as exc:
        auth.register('ADA@example.com ', 'Other456?', 'Someone')
    assert exc.value.message == 'User with this email already exists'
    assert users.create_calls == 1
    assert len(users.users) == 1


def test_weak_password_lists_every_reason():
    auth, users, _, _ = make_service()
    with pytest.raises(ValidationError) as exc:
        auth.register('ada@example.com', 'abc', 'Ada')
    assert exc.value.message == (
        "Passwords must be at least 6 characters., "
        "Passwords must have at least one non alphanumeric character., "
        "Passwords must have at least one digit ('0'-'9')., "
        "Passwords must have at least one uppercase ('A'-'Z')."
    )
    assert users.users == {}


def test_password_policy_is_configurable():
    config = Settings()
    config.PASSWORD_REQUIRE_NON_ALPHANUMERIC = False
    config.PASSWORD_REQUIRE_UPPERCASE = False
    assert password_problems('abc123', config) == []
    config.PASSWORD_MIN_LENGTH = 10
    assert password_problems('abc123', config) == ["Passwords must be at least 10 characters."]


def test_login_failures_are_indistinguishable():
    auth, _, _, _ = make_service()
    auth.register('ada@example.com', 'Secret123!', 'Ada')
    with pytest.raises(InvalidCredentials) as unknown:
        auth.login('nobody@example.com', 'Secret123!')
    with pytest.raises(InvalidCredentials) as wrong:
        auth.login('ada@example.com', 'Wrong123!')
    assert unknown.value.message == wrong.value.message == 'Invalid email or password'


def test_login_normalizes_email():
    auth, _, _, _ = make_service()
    auth.register('Ada@Example.com', 'Secret123!', 'Ada')
    resp = auth.login('  ada@EXAMPLE.com', 'Secret123!')
    assert resp.user.email == 'ada@example.com'


def test_refresh_token_is_random_and_stored_hashed():
    auth, _, tokens, clock = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    assert len(base64.b64decode(resp.refresh_token)) == 32
    assert len(tokens.tokens) == 1
    stored = tokens.tokens[0]
    assert stored.token_hash != resp.refresh_token
    assert stored.expires_at == clock.now.replace(microsecond=0) + timedelta(days=7)


def test_refresh_rotates_token():
    auth, _, tokens, _ = make_service()
    first = auth.register('ada@example.com', 'Secret123!', 'Ada')
    second = auth.refresh_session(first.refresh_token)
    assert second.user.id == first.user.id
    assert second.refresh_token != first.refresh_token
    assert tokens.tokens[0].revoked_at is not None
    with pytest.raises(InvalidCredentials):
        auth.refresh_session(first.refresh_token)
    auth.refresh_session(second.refresh_token)


def test_refresh_rejects_unknown_and_expired_tokens():
    auth, _, _, clock = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    with pytest.raises(InvalidCredentials):
        auth.refresh_session('not-a-token')
    clock.now = clock.now + timedelta(days=8)
    with pytest.raises(InvalidCredentials) as exc:
        auth.refresh_session(resp.refresh_token)
    assert exc.value.message == 'Invalid or expired refresh token'


def test_refresh_rejects_token_of_deleted_account():
    auth, users, _, _ = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    users.delete(users.get(resp.user.id))
    with pytest.raises(InvalidCredentials):
        auth.refresh_session(resp.refresh_token)


def test_revoke_is_idempotent_and_blocks_refresh():
    auth, _, _, _ = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    auth.revoke_session(resp.refresh_token)
    auth.revoke_session(resp.refresh_token)
    with pytest.raises(InvalidCredentials):
        auth.refresh_session(resp.refresh_token)
    with pytest.raises(NotFound):
        auth.revoke_session('unknown')


def test_without_token_store_refresh_is_unavailable_and_revoke_is_noop():
    auth, _, _, _ = make_service(with_store=False)
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    assert resp.refresh_token
    with pytest.raises(NotImplementedCapability) as exc:
        auth.refresh_session(resp.refresh_token)
    assert exc.value.message == 'Refresh token functionality not implemented'
    auth.revoke_session(resp.refresh_token)


def test_token_signed_with_other_secret_is_rejected():
    auth, _, _, _ = make_service()
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    other = Settings()
    other.JWT_SECRET = 'another_secret_that_is_long_enough_for_hs256'
    with pytest.raises(jwt.InvalidSignatureError):
        decode_session_token(resp.token, other)


def test_expire_minutes_setting_drives_expiration():
    auth, _, _, clock = make_service(JWT_EXPIRE_MINUTES=5)
    resp = auth.register('ada@example.com', 'Secret123!', 'Ada')
    assert resp.expiration - clock.now.replace(microsecond=0) == timedelta(minutes=5)
