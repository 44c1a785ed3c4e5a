# services/push_connection.py
import asyncio
import enum
import json
import logging
from typing import AsyncIterator, Optional

from errors import StoreUnavailable
from models import Message, utcnow
from repositories.message_repo import MessageRepository
from services.chat_service import Broadcaster, HEARTBEAT, MESSAGE_CREATED, message_event

logger = logging.getLogger(__name__)

# маркер закрытия для events()
_CLOSED = object()


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class PushConnection:
    """
    Одно SSE-соединение клиента.

    Два независимых таймера: опрос хранилища (дельта после курсора, без
    собственных сообщений пользователя) и heartbeat. Оба пишут только во
    внутреннюю очередь, клиенту события отдаёт events().
    """

    def __init__(
            self,
            user_id: int,
            username: str,
            message_repo: MessageRepository,
            broadcaster: Broadcaster,
            since_id: int = 0,
            poll_interval: float = 1.0,
            heartbeat_interval: float = 15.0,
    ):
        self.id = broadcaster.new_connection_id()
        self.user_id = user_id
        self.username = username
        self.cursor = since_id
        self.message_repo = message_repo
        self.broadcaster = broadcaster
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.CONNECTING

        self._queue: asyncio.Queue[dict] = asyncio.Queue()
        self._wake = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    def open(self) -> None:
        if self.state is not ConnectionState.CONNECTING:
            raise RuntimeError(f"connection {self.id} is {self.state.value}")
        self.state = ConnectionState.OPEN
        self.broadcaster.register(self)
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name=f"poll-{self.id}"),
            asyncio.create_task(self._heartbeat_loop(), name=f"heartbeat-{self.id}"),
        ]

    def close(self) -> None:
        """Останавливает таймеры и убирает соединение из реестра. Повторный вызов ничего не делает."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.broadcaster.unregister(self)
        self._queue.put_nowait(_CLOSED)

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def enqueue(self, event_data: dict) -> bool:
        if not self.is_open:
            return False
        self._queue.put_nowait(event_data)
        return True

    def enqueue_update(self, message: Message, event_data: dict) -> bool:
        """
        Правку чужого сообщения, которое опрос ещё не доставил, не отправляем:
        клиент получит уже исправленный текст вместе с message-created.
        """
        if message.author_id != self.user_id and message.id > self.cursor:
            return False
        return self.enqueue(event_data)

    def wake(self) -> None:
        self._wake.set()

    async def poll_once(self) -> int:
        """Забирает из хранилища всё после курсора и двигает курсор. Возвращает число событий."""
        try:
            delta = await self.message_repo.list_messages(
                since_id=self.cursor,
                exclude_author_id=self.user_id,
            )
        except StoreUnavailable:
            logger.warning("Poll for connection %s failed, retrying on next tick", self.id)
            return 0

        delivered = 0
        for message in delta:
            if not self.enqueue(message_event(MESSAGE_CREATED, message)):
                break
            self.cursor = message.id
            delivered += 1
        return delivered

    async def _poll_loop(self) -> None:
        while self.is_open:
            self._wake.clear()
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll loop of connection %s crashed, closing", self.id)
                self.close()
                return
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _heartbeat_loop(self) -> None:
        while self.is_open:
            await asyncio.sleep(self.heartbeat_interval)
            self.enqueue({"event": HEARTBEAT, "data": json.dumps({"ts": utcnow().isoformat()})})

    async def next_event(self, timeout: Optional[float] = None) -> Optional[dict]:
        event_data = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        return None if event_data is _CLOSED else event_data

    async def events(self) -> AsyncIterator[dict]:
        """Генератор для EventSourceResponse. При отключении клиента закрывает соединение."""
        if self.state is ConnectionState.CONNECTING:
            self.open()
        try:
            while True:
                event_data = await self._queue.get()
                if event_data is _CLOSED:
                    break
                yield event_data
        finally:
            self.close()
