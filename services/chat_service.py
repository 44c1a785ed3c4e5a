# services/chat_service.py
import logging
import uuid
from typing import TYPE_CHECKING, Optional

from dtos import MessageDTO
from models import Message
from repositories.message_repo import MessageRepository

if TYPE_CHECKING:
    from services.push_connection import PushConnection

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message-created"
MESSAGE_UPDATED = "message-updated"
TYPING = "typing"
HEARTBEAT = "heartbeat"


def message_event(event: str, message: Message) -> dict:
    """SSE-событие с гидрированным сообщением. Для новых сообщений id события = курсор."""
    event_data = {
        "event": event,
        "data": MessageDTO.model_validate(message).model_dump_json(),
    }
    if event == MESSAGE_CREATED:
        event_data["id"] = str(message.id)
    return event_data


class Broadcaster:
    """
    Реестр открытых push-соединений процесса.

    Наружу торчат publish (внеполосные события вроде typing), publish_update
    (правки) и notify_new_messages (разбудить циклы опроса после создания сообщения).
    """

    def __init__(self):
        self._connections: dict[str, "PushConnection"] = {}

    def new_connection_id(self) -> str:
        return uuid.uuid4().hex

    def register(self, connection: "PushConnection") -> None:
        self._connections[connection.id] = connection
        logger.info("Push connection %s opened for user %s (%d open)",
                    connection.id, connection.user_id, len(self._connections))

    def unregister(self, connection: "PushConnection") -> None:
        if self._connections.pop(connection.id, None) is not None:
            logger.info("Push connection %s closed for user %s (%d open)",
                        connection.id, connection.user_id, len(self._connections))

    def publish(self, event_data: dict, exclude_user_id: Optional[int] = None) -> int:
        """Кладёт событие в очередь каждого соединения, кроме соединений exclude_user_id."""
        delivered = 0
        # копия: соединения могут открываться/закрываться во время рассылки
        for connection in list(self._connections.values()):
            if exclude_user_id is not None and connection.user_id == exclude_user_id:
                continue
            if connection.enqueue(event_data):
                delivered += 1
        return delivered

    def publish_update(self, message: Message) -> int:
        """Рассылает правку; каждое соединение само решает, видело ли оно это сообщение."""
        event_data = message_event(MESSAGE_UPDATED, message)
        delivered = 0
        for connection in list(self._connections.values()):
            if connection.enqueue_update(message, event_data):
                delivered += 1
        return delivered

    def notify_new_messages(self) -> None:
        for connection in list(self._connections.values()):
            connection.wake()

    def close_all(self) -> None:
        for connection in list(self._connections.values()):
            connection.close()

    @property
    def connection_count(self) -> int:
        return len(self._connections)


class ChatService:
    """
    Создание и редактирование сообщений с оповещением открытых соединений.
    """

    def __init__(self, message_repo: MessageRepository, broadcaster: Broadcaster):
        self.message_repo = message_repo
        self.broadcaster = broadcaster

    async def post_message(self, author_id: int, text: str, parent_id: Optional[int] = None) -> Message:
        message = await self.message_repo.create_message(
            author_id=author_id,
            text=text,
            parent_id=parent_id,
        )
        # сами новые сообщения доставляет цикл опроса, здесь только будим его
        self.broadcaster.notify_new_messages()
        return message

    async def edit_message(self, message_id: int, user_id: int, text: str) -> Message:
        message = await self.message_repo.append_edit(message_id, user_id, text)
        # правки получают все, включая другие сессии автора,
        # но не раньше, чем само сообщение дошло до соединения
        self.broadcaster.publish_update(message)
        return message
