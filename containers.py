# containers.py
from dependency_injector import containers, providers
from db import create_engine, create_session_factory
from repositories.user_repo import UserRepository
from repositories.message_repo import MessageRepository, MessageLocks
from services.chat_service import ChatService, Broadcaster
from services.push_connection import PushConnection
from services.typing_service import TypingTracker


class Container(containers.DeclarativeContainer):
    """
    Контейнер зависимостей приложения.
    """

    config = providers.Configuration()

    # --- Провайдеры ---

    # 1. База данных
    # Движок и фабрика сессий живут всё время работы процесса,
    # сессию каждая операция репозитория открывает сама.
    engine = providers.Singleton(create_engine, url=config.database_url)

    session_factory = providers.Singleton(create_session_factory, engine=engine)

    # 2. Репозитории
    # Блокировки правок общие на процесс, иначе они ничего не сериализуют.
    message_locks = providers.Singleton(MessageLocks)

    user_repo: providers.Factory[UserRepository] = providers.Factory(
        UserRepository,
        session_factory=session_factory,
    )

    message_repo: providers.Factory[MessageRepository] = providers.Factory(
        MessageRepository,
        session_factory=session_factory,
        locks=message_locks,
    )

    # 3. Живые обновления
    broadcaster = providers.Singleton(Broadcaster)

    typing_tracker = providers.Singleton(
        TypingTracker,
        broadcaster=broadcaster,
        timeout=config.typing_timeout,
    )

    # user_id, username и since_id передаются при вызове фабрики
    push_connection: providers.Factory[PushConnection] = providers.Factory(
        PushConnection,
        message_repo=message_repo,
        broadcaster=broadcaster,
        poll_interval=config.poll_interval,
        heartbeat_interval=config.heartbeat_interval,
    )

    chat_service: providers.Factory[ChatService] = providers.Factory(
        ChatService,
        message_repo=message_repo,
        broadcaster=broadcaster
    )
