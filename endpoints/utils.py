# endpoints/utils.py
from dataclasses import dataclass
from fastapi import Depends, Request
from dependency_injector.wiring import inject, Provide
from typing import Optional

from containers import Container
from errors import Unauthenticated
from repositories.user_repo import UserRepository

# cookie подписанной сессии (SessionMiddleware), в сессии лежит только user_id
SESSION_COOKIE = "chat_session"
SESSION_USER_KEY = "user_id"


@dataclass(frozen=True)
class Identity:
    """Проверенное утверждение о пользователе, которое потребляет ядро."""
    user_id: int
    username: str


def get_current_user_id_from_request(request: Request) -> Optional[int]:
    """
    Извлекает ID пользователя из подписанной сессии.
    Подделанная или просроченная cookie даёт пустую сессию.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    return user_id if isinstance(user_id, int) else None


def start_session(request: Request, user_id: int) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user_id


def end_session(request: Request) -> None:
    request.session.clear()


@inject
async def get_optional_identity(
    request: Request,
    ur: UserRepository = Depends(Provide[Container.user_repo])
) -> Optional[Identity]:
    user_id = get_current_user_id_from_request(request)
    if user_id is None:
        return None
    user = await ur.get_by_id(user_id)
    if user is None:
        return None
    return Identity(user_id=user.id, username=user.username)


async def get_identity(
    identity: Optional[Identity] = Depends(get_optional_identity)
) -> Identity:
    if identity is None:
        raise Unauthenticated("Not authenticated")
    return identity
