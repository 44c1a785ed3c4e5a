import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from errors import ForbiddenError, NotFoundError, StoreUnavailable, ValidationError
from models import EditHistoryEntry, Message, User, utcnow

logger = logging.getLogger(__name__)

# Временные сбои БД, которые имеет смысл повторить
TRANSIENT_ERRORS = (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)


@asynccontextmanager
async def translate_store_errors(action: str) -> AsyncIterator[None]:
    try:
        yield
    except TRANSIENT_ERRORS as e:
        logger.warning("Store unavailable during %s: %s", action, e)
        raise StoreUnavailable(f"store unavailable during {action}") from e


def clean_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Text is required")
    return cleaned


class MessageLocks:
    """
    Блокировки по id сообщения: правки одного сообщения идут строго
    по очереди, разные сообщения правятся параллельно.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, message_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(message_id, asyncio.Lock())
        self._waiters[message_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[message_id] -= 1
            if not self._waiters[message_id]:
                del self._waiters[message_id]
                self._locks.pop(message_id, None)

    def __len__(self) -> int:
        return len(self._locks)


class MessageRepository:
    """
    Репозиторий сообщений: единственный источник правды для ленты,
    истории правок и ответов.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], locks: MessageLocks):
        self.session_factory = session_factory
        self.locks = locks

    async def list_messages(
            self,
            since_id: int = 0,
            exclude_author_id: Optional[int] = None,
            limit: Optional[int] = None
    ) -> List[Message]:
        """
        Сообщения с id > since_id по возрастанию id. Без limit верхней границы нет,
        since_id=0 даёт полную историю; с limit это первые limit сообщений после курсора.
        """
        query = select(Message).where(Message.id > since_id).order_by(Message.id)
        if limit is not None:
            query = query.limit(limit)
        if exclude_author_id is not None:
            query = query.where(Message.author_id != exclude_author_id)
        async with translate_store_errors("list_messages"):
            async with self.session_factory() as session:
                q = await session.execute(query)
                return list(q.scalars().unique().all())

    async def get_recent_messages(self, limit: int = 100) -> List[Message]:
        """
        Последние N сообщений (страница для первичной загрузки).
        """
        async with translate_store_errors("get_recent_messages"):
            async with self.session_factory() as session:
                q = await session.execute(
                    select(Message)
                    .order_by(Message.id.desc())
                    .limit(limit)
                )
                # Результат нужно развернуть, так как мы получаем его в обратном порядке
                return list(q.scalars().unique().all())[::-1]

    async def get_message(self, message_id: int) -> Message:
        async with translate_store_errors("get_message"):
            async with self.session_factory() as session:
                message = await self._load(session, message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        return message

    async def create_message(
            self,
            author_id: int,
            text: str,
            parent_id: Optional[int] = None
    ) -> Message:
        """Сохраняет новое сообщение и отмечает активность автора."""
        text = clean_text(text)
        async with translate_store_errors("create_message"):
            async with self.session_factory() as session:
                async with session.begin():
                    if parent_id is not None:
                        parent = await session.get(Message, parent_id)
                        if parent is None:
                            raise ValidationError(f"Parent message {parent_id} does not exist")
                    now = utcnow()
                    message = Message(
                        author_id=author_id,
                        text=text,
                        created_at=now,
                        parent_message_id=parent_id,
                    )
                    session.add(message)
                    await session.execute(
                        update(User).where(User.id == author_id).values(last_active=now)
                    )
                return await self._load(session, message.id)

    async def append_edit(self, message_id: int, requesting_user_id: int, new_text: str) -> Message:
        """
        Архивирует текущий текст в историю и заменяет его новым.
        Обе записи делаются в одной транзакции под блокировкой сообщения.
        """
        new_text = clean_text(new_text)
        async with self.locks.hold(message_id):
            async with translate_store_errors("append_edit"):
                async with self.session_factory() as session:
                    async with session.begin():
                        message = await session.get(Message, message_id, with_for_update=True)
                        if message is None:
                            raise NotFoundError(f"Message {message_id} not found")
                        if message.author_id != requesting_user_id:
                            raise ForbiddenError("Unauthorized to edit this message")
                        now = utcnow()
                        session.add(EditHistoryEntry(message_id=message.id, old_text=message.text, edited_at=now))
                        message.text = new_text
                        message.last_edited_at = now
                    return await self._load(session, message_id)

    async def _load(self, session: AsyncSession, message_id: int) -> Optional[Message]:
        q = await session.execute(
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        return q.scalars().unique().first()
