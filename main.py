# main.py
import logging
import secrets
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from config import load_config
from containers import Container
from db import init_db
from errors import ChatError
from logging_setup import configure_logging

from endpoints.api_messages import router as api_messages_router
from endpoints.api_events import router as api_events_router
from endpoints.api_users import router as api_users_router
from endpoints.utils import SESSION_COOKIE

# Импортируем модули для 'wire'
import endpoints.utils as utils_module
import endpoints.api_messages as api_messages_module
import endpoints.api_events as api_events_module
import endpoints.api_users as api_users_module

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container: Container = app.state.container
    engine = container.engine()
    await init_db(engine)
    yield
    # закрываем живые соединения и таймеры до того, как уйдёт движок
    container.broadcaster().close_all()
    container.typing_tracker().shutdown()
    await engine.dispose()


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "detail": exc.detail})


def create_app(overrides: dict | None = None) -> FastAPI:
    container = Container()
    load_config(container.config, overrides)
    configure_logging(container.config.log_level())

    # Подключаем контейнер к модулям.
    # Это необходимо, чтобы декоратор @inject заработал.
    container.wire(modules=[
        utils_module,
        api_messages_module,
        api_events_module,
        api_users_module,
    ])

    app = FastAPI(title="Live Chat", lifespan=lifespan)
    app.state.container = container
    app.add_exception_handler(ChatError, chat_error_handler)

    session_secret = container.config.session_secret()
    if not session_secret:
        logger.warning("CHAT_SESSION_SECRET is not set, using a random key; sessions end on restart")
        session_secret = secrets.token_urlsafe(32)
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=SESSION_COOKIE,
        max_age=container.config.cookie_max_age(),
    )

    app.include_router(api_messages_router)
    app.include_router(api_events_router)
    app.include_router(api_users_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=False)
