# services/typing_service.py
import asyncio
import logging

from dtos import TypingEventDTO
from services.chat_service import Broadcaster, TYPING

logger = logging.getLogger(__name__)


class TypingTracker:
    """
    Кто сейчас печатает. Состояние только в памяти, у каждого пользователя
    не больше одного таймера: новый сигнал перезапускает его.
    """

    def __init__(self, broadcaster: Broadcaster, timeout: float = 3.0):
        self.broadcaster = broadcaster
        self.timeout = timeout
        self._timers: dict[int, asyncio.TimerHandle] = {}

    def set_typing(self, user_id: int, username: str, is_typing: bool) -> None:
        self._cancel_timer(user_id)
        if is_typing:
            loop = asyncio.get_running_loop()
            self._timers[user_id] = loop.call_later(self.timeout, self._expire, user_id, username)
        self._broadcast(user_id, username, is_typing)

    def is_typing(self, user_id: int) -> bool:
        return user_id in self._timers

    @property
    def typing_user_ids(self) -> set[int]:
        return set(self._timers)

    def shutdown(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _expire(self, user_id: int, username: str) -> None:
        self._timers.pop(user_id, None)
        logger.debug("Typing state of %s expired", username)
        self._broadcast(user_id, username, False)

    def _cancel_timer(self, user_id: int) -> None:
        handle = self._timers.pop(user_id, None)
        if handle is not None:
            handle.cancel()

    def _broadcast(self, user_id: int, username: str, is_typing: bool) -> None:
        payload = TypingEventDTO(user_id=user_id, username=username, is_typing=is_typing)
        self.broadcaster.publish(
            {"event": TYPING, "data": payload.model_dump_json()},
            exclude_user_id=user_id,
        )
