"""
Account registration, login and refresh-token session management
"""
from typing import Optional
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings, get_security_settings
from .database import Database
from .exceptions import ConflictError, InvalidInputError, UnauthorizedError
from .logging import logger, metrics
from .orm import Folder, RefreshToken, User, utcnow
from .security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    token_digest,
    verify_password,
)


@dataclass
class AuthSession:
    """Token pair handed back to the client"""
    access_token: str
    refresh_token: str
    user: User
    token_type: str = "bearer"


class AuthService:
    """Issues and revokes sessions backed by stored refresh-token digests"""

    def __init__(self, database: Database):
        self.database = database
        self.settings = get_settings()
        self.security_settings = get_security_settings()

    async def register(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()
        if not email:
            raise InvalidInputError("email", "is required")
        if not password:
            raise InvalidInputError("password", "is required")
        if len(password) < self.security_settings.min_password_length:
            raise InvalidInputError(
                "password",
                f"must be at least {self.security_settings.min_password_length} characters",
            )

        password_hash = hash_password(password)

        async def unit(session: AsyncSession) -> AuthSession:
            # A concurrent registration that wins the unique email constraint
            # is seen here on the retry
            existing = await session.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                raise ConflictError("user", "email already registered")

            user = User(email=email, password_hash=password_hash, created_at=utcnow())
            session.add(user)
            await session.flush()

            session.add(Folder(
                name=self.settings.default_folder_name,
                user_id=user.id,
                is_open=True,
            ))
            return await self._issue(session, user)

        auth = await self.database.run_with_retry(unit, "user", max_retries=self.settings.publish_max_retries)

        await metrics.increment("users_registered_total")
        logger.info("User registered", user_id=auth.user.id)
        return auth

    async def login(self, email: str, password: str) -> AuthSession:
        email = (email or "").strip().lower()
        async with self.database.session_scope() as session:
            user = await session.scalar(select(User).where(User.email == email))
            if user is None or not verify_password(password or "", user.password_hash):
                await metrics.increment("login_failures_total")
                raise UnauthorizedError("Invalid email or password")
            auth = await self._issue(session, user)

        logger.info("User logged in", user_id=user.id)
        return auth

    async def refresh(self, refresh_token: str) -> AuthSession:
        """Exchange a live refresh token for a new pair; the old one stops working"""
        if not refresh_token:
            raise UnauthorizedError("Refresh token required")
        payload = decode_token(refresh_token, REFRESH_TOKEN)

        async with self.database.session_scope() as session:
            stored = await session.scalar(
                select(RefreshToken).where(RefreshToken.token_hash == token_digest(refresh_token))
            )
            if stored is None or stored.user_id != payload["user_id"]:
                raise UnauthorizedError("Refresh token revoked")
            if stored.expires_at <= utcnow():
                raise UnauthorizedError("Refresh token expired")

            user = await session.get(User, stored.user_id)
            if user is None:
                raise UnauthorizedError("User no longer exists")

            await session.delete(stored)
            auth = await self._issue(session, user)

        logger.debug("Refresh token rotated", user_id=user.id)
        return auth

    async def logout(self, user_id: int, refresh_token: Optional[str] = None) -> int:
        """Revoke one session; returns how many were revoked"""
        if not refresh_token:
            return 0
        async with self.database.session_scope() as session:
            result = await session.execute(
                delete(RefreshToken).where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.token_hash == token_digest(refresh_token),
                )
            )
        return result.rowcount or 0

    async def logout_all(self, user_id: int) -> int:
        """Revoke every session of the user"""
        async with self.database.session_scope() as session:
            result = await session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        logger.info("All sessions revoked", user_id=user_id, sessions=result.rowcount)
        return result.rowcount or 0

    async def _issue(self, session: AsyncSession, user: User) -> AuthSession:
        refresh_token, expires_at = create_refresh_token(user.id)
        session.add(RefreshToken(
            user_id=user.id,
            token_hash=token_digest(refresh_token),
            expires_at=expires_at,
            created_at=utcnow(),
        ))
        await session.flush()
        return AuthSession(
            access_token=create_access_token(user.id, user.email),
            refresh_token=refresh_token,
            user=user,
        )
