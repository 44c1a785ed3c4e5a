# config.py
from dependency_injector import providers

from db import DATABASE_URL

DEFAULTS = {
    "database_url": DATABASE_URL,
    "log_level": "INFO",
    "poll_interval": 1.0,
    "heartbeat_interval": 15.0,
    "typing_timeout": 3.0,
    "recent_page_size": 100,
    "online_window": 300,
    "cookie_max_age": 60 * 60 * 24 * 30,
    # пустой секрет: main сгенерирует случайный, сессии не переживут перезапуск
    "session_secret": "",
}


def load_config(config: providers.Configuration, overrides: dict | None = None) -> None:
    """
    Заполняет конфигурацию контейнера: значения по умолчанию,
    затем переменные окружения CHAT_*, затем явные overrides (для тестов).
    """
    config.from_dict(DEFAULTS)
    config.database_url.from_env("CHAT_DATABASE_URL", default=DEFAULTS["database_url"])
    config.log_level.from_env("CHAT_LOG_LEVEL", default=DEFAULTS["log_level"])
    config.poll_interval.from_env("CHAT_POLL_INTERVAL", as_=float, default=DEFAULTS["poll_interval"])
    config.heartbeat_interval.from_env("CHAT_HEARTBEAT_INTERVAL", as_=float, default=DEFAULTS["heartbeat_interval"])
    config.typing_timeout.from_env("CHAT_TYPING_TIMEOUT", as_=float, default=DEFAULTS["typing_timeout"])
    config.recent_page_size.from_env("CHAT_RECENT_PAGE_SIZE", as_=int, default=DEFAULTS["recent_page_size"])
    config.online_window.from_env("CHAT_ONLINE_WINDOW", as_=int, default=DEFAULTS["online_window"])
    config.cookie_max_age.from_env("CHAT_COOKIE_MAX_AGE", as_=int, default=DEFAULTS["cookie_max_age"])
    config.session_secret.from_env("CHAT_SESSION_SECRET", default=DEFAULTS["session_secret"])
    if overrides:
        config.from_dict(overrides)
