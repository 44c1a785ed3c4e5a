import asyncio
import os
import tempfile
import unittest

from config import load_config
from containers import Container
from db import init_db

FAST_CONFIG = {
    "poll_interval": 0.05,
    "heartbeat_interval": 0.2,
    "typing_timeout": 0.1,
    "recent_page_size": 3,
}


def sqlite_url(directory: str) -> str:
    return "sqlite+aiosqlite:///" + os.path.join(directory, "chat_test.db")


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Настоящий контейнер поверх временной SQLite-базы."""

    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.container = Container()
        load_config(self.container.config, {**FAST_CONFIG, "database_url": sqlite_url(self._tmp.name)})
        await init_db(self.container.engine())
        self.users = self.container.user_repo()
        self.messages = self.container.message_repo()
        self.broadcaster = self.container.broadcaster()

    async def asyncTearDown(self):
        self.broadcaster.close_all()
        self.container.typing_tracker().shutdown()
        await asyncio.sleep(0.01)  # дать отменённым опросам вернуть соединения
        await self.container.engine().dispose()
        self._tmp.cleanup()

    async def make_user(self, username: str, password: str = "secret1"):
        return await self.users.create_user(username, password)
