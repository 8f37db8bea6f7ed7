"""
Tests for registration, login and refresh-token sessions
"""
import asyncio

import pytest
from sqlalchemy import func, select

from mdpress.exceptions import ConflictError, InvalidInputError, UnauthorizedError
from mdpress.orm import RefreshToken
from mdpress.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    create_access_token,
    decode_token,
    hash_password,
    token_digest,
    verify_password,
)


async def count_sessions(database, user_id):
    async with database.session_scope() as session:
        return await session.scalar(
            select(func.count(RefreshToken.id)).where(RefreshToken.user_id == user_id)
        )


async def test_register_issues_tokens(auth_service, database):
    session = await auth_service.register("  Carol@Example.com ", "secret-pass")
    assert session.user.email == "carol@example.com"
    assert session.token_type == "bearer"
    assert decode_token(session.access_token, ACCESS_TOKEN)["user_id"] == session.user.id
    assert decode_token(session.refresh_token, REFRESH_TOKEN)["user_id"] == session.user.id
    assert await count_sessions(database, session.user.id) == 1


async def test_only_digests_are_stored(auth_service, database):
    session = await auth_service.register("dave@example.com", "secret-pass")
    async with database.session_scope() as db:
        stored = await db.scalar(select(RefreshToken.token_hash))
    assert stored == token_digest(session.refresh_token)
    assert stored != session.refresh_token


async def test_duplicate_email_conflicts(auth_service):
    await auth_service.register("erin@example.com", "secret-pass")
    with pytest.raises(ConflictError):
        await auth_service.register("ERIN@example.com", "another-pass")


async def test_concurrent_duplicate_registration_conflicts(auth_service, database):
    outcomes = await asyncio.gather(
        *(auth_service.register("same@example.com", "secret-pass") for _ in range(3)),
        return_exceptions=True,
    )
    sessions = [o for o in outcomes if not isinstance(o, Exception)]
    conflicts = [o for o in outcomes if isinstance(o, ConflictError)]
    assert len(sessions) == 1
    assert len(conflicts) == 2
    assert await count_sessions(database, sessions[0].user.id) == 1


@pytest.mark.parametrize("email,password", [
    ("", "secret-pass"),
    ("frank@example.com", ""),
    ("frank@example.com", "123"),
])
async def test_register_validates_input(auth_service, email, password):
    with pytest.raises(InvalidInputError):
        await auth_service.register(email, password)


async def test_login(auth_service, alice):
    session = await auth_service.login("ALICE@example.com", "password-a")
    assert session.user.id == alice

    with pytest.raises(UnauthorizedError):
        await auth_service.login("alice@example.com", "wrong")
    with pytest.raises(UnauthorizedError):
        await auth_service.login("nobody@example.com", "password-a")


async def test_refresh_rotates_token(auth_service, database):
    first = await auth_service.register("gina@example.com", "secret-pass")
    second = await auth_service.refresh(first.refresh_token)

    assert second.refresh_token != first.refresh_token
    assert second.user.id == first.user.id
    assert await count_sessions(database, first.user.id) == 1

    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(first.refresh_token)


async def test_refresh_rejects_access_token(auth_service):
    session = await auth_service.register("hank@example.com", "secret-pass")
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(session.access_token)
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh("")


async def test_logout_revokes_one_session(auth_service, database, alice):
    other = await auth_service.login("alice@example.com", "password-a")
    assert await count_sessions(database, alice) == 2

    assert await auth_service.logout(alice, other.refresh_token) == 1
    assert await count_sessions(database, alice) == 1
    with pytest.raises(UnauthorizedError):
        await auth_service.refresh(other.refresh_token)

    assert await auth_service.logout(alice, None) == 0


async def test_logout_all(auth_service, database, alice, bob):
    await auth_service.login("alice@example.com", "password-a")
    await auth_service.login("alice@example.com", "password-a")

    assert await auth_service.logout_all(alice) == 3
    assert await count_sessions(database, alice) == 0
    assert await count_sessions(database, bob) == 1


def test_password_hashing():
    hashed = hash_password("hunter22")
    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", "not-a-bcrypt-hash")


def test_decode_rejects_wrong_type_and_garbage(test_env):
    token = create_access_token(7, "x@example.com")
    assert decode_token(token, ACCESS_TOKEN)["user_id"] == 7
    with pytest.raises(UnauthorizedError):
        decode_token(token, REFRESH_TOKEN)
    with pytest.raises(UnauthorizedError):
        decode_token("not.a.jwt", ACCESS_TOKEN)
