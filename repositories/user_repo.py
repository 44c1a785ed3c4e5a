# repositories/user_repo.py
import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from errors import ConflictError, NotFoundError
from models import User, utcnow
from repositories.message_repo import translate_store_errors

PBKDF2_ITERATIONS = 200_000


class UserRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_user(self, username: str, password: str) -> User:
        async with translate_store_errors("create_user"):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        if await self._username_taken(session, username):
                            raise ConflictError("Username already taken")
                        user = User(username=username, password=self._hash(password), last_active=utcnow())
                        session.add(user)
                except sa_exc.IntegrityError as e:
                    # параллельная регистрация успела раньше: проверку прошли оба
                    raise ConflictError("Username already taken") from e
                return user

    async def _username_taken(self, session: AsyncSession, username: str) -> bool:
        existing = await session.execute(select(User.id).where(User.username == username))
        return existing.first() is not None

    async def get_by_username(self, username: str) -> Optional[User]:
        async with translate_store_errors("get_by_username"):
            async with self.session_factory() as session:
                q = await session.execute(select(User).where(User.username == username))
                return q.scalars().first()

    async def get_by_id(self, user_id: int) -> Optional[User]:
        async with translate_store_errors("get_by_id"):
            async with self.session_factory() as session:
                return await session.get(User, user_id)

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        user = await self.get_by_username(username)
        if user is None or not self.verify_password(password, user.password):
            return None
        return user

    async def touch(self, user_id: int) -> None:
        """Отмечает активность пользователя (presence)."""
        await self._update(user_id, last_active=utcnow())

    async def list_online(self, window_seconds: int) -> List[User]:
        cutoff = utcnow() - timedelta(seconds=window_seconds)
        async with translate_store_errors("list_online"):
            async with self.session_factory() as session:
                q = await session.execute(
                    select(User)
                    .where(User.last_active > cutoff)
                    .order_by(User.last_active.desc())
                )
                return list(q.scalars().all())

    async def update_profile(self, user_id: int, bio: Optional[str] = None, profile_picture: Optional[bytes] = None) -> User:
        values = {}
        if bio is not None:
            values["bio"] = bio
        if profile_picture is not None:
            values["profile_picture"] = profile_picture
        if values:
            await self._update(user_id, **values)
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def set_password(self, user_id: int, new_password: str) -> None:
        await self._update(user_id, password=self._hash(new_password))

    async def set_email(self, user_id: int, email: str) -> None:
        await self._update(user_id, email=email)

    async def delete_user(self, user_id: int) -> None:
        """Удаляет пользователя; сообщения и история правок удаляются каскадом в БД."""
        async with translate_store_errors("delete_user"):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(User).where(User.id == user_id))
                    if result.rowcount == 0:
                        raise NotFoundError("User not found")

    async def _update(self, user_id: int, **values) -> None:
        async with translate_store_errors("update_user"):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(update(User).where(User.id == user_id).values(**values))
                    if result.rowcount == 0:
                        raise NotFoundError("User not found")

    def _hash(self, raw: str) -> str:
        salt = secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac("sha256", raw.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ITERATIONS)
        return f"{salt}${digest.hex()}"

    @staticmethod
    def verify_password(raw: str, stored: str) -> bool:
        try:
            salt, expected = stored.split("$", 1)
        except ValueError:
            return False
        digest = hashlib.pbkdf2_hmac("sha256", raw.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ITERATIONS)
        return hmac.compare_digest(digest.hex(), expected)
