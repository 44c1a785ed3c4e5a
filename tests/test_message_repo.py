import asyncio

from errors import ForbiddenError, NotFoundError, ValidationError
from tests.util import StoreTestCase


class MessageStoreTests(StoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.alice = await self.make_user("alice")
        self.bob = await self.make_user("bob")

    async def test_ids_strictly_increase_and_full_listing_matches_creation_order(self):
        created = []
        for i in range(5):
            author = self.alice if i % 2 else self.bob
            created.append(await self.messages.create_message(author.id, f"msg {i}"))

        ids = [m.id for m in created]
        self.assertEqual(ids, sorted(ids))
        self.assertEqual(len(set(ids)), len(ids))

        listed = await self.messages.list_messages(0)
        self.assertEqual([m.id for m in listed], ids)
        self.assertEqual([m.text for m in listed], [f"msg {i}" for i in range(5)])

    async def test_resync_from_any_cursor_is_lossless_and_non_duplicating(self):
        for i in range(6):
            await self.messages.create_message(self.alice.id, f"m{i}")
        full = [m.id for m in await self.messages.list_messages(0)]

        for k in [0] + full:
            delta = [m.id for m in await self.messages.list_messages(k)]
            self.assertTrue(all(i > k for i in delta))
            head = [i for i in full if i <= k]
            self.assertEqual(head + delta, full)

    async def test_create_returns_hydrated_message_and_trims_text(self):
        message = await self.messages.create_message(self.alice.id, "  hello  ")
        self.assertEqual(message.text, "hello")
        self.assertEqual(message.author_name, "alice")
        self.assertEqual(message.edit_history, [])
        self.assertIsNone(message.last_edited_at)
        self.assertIsNone(message.parent_message_id)

    async def test_create_rejects_blank_text_without_writing(self):
        for text in ["", "   ", "\n\t"]:
            with self.assertRaises(ValidationError):
                await self.messages.create_message(self.alice.id, text)
        self.assertEqual(await self.messages.list_messages(0), [])

    async def test_create_stamps_author_last_active(self):
        before = (await self.users.get_by_id(self.bob.id)).last_active
        await asyncio.sleep(0.01)
        await self.messages.create_message(self.bob.id, "ping")
        after = (await self.users.get_by_id(self.bob.id)).last_active
        self.assertGreater(after, before)

    async def test_reply_references_parent_and_sees_its_current_text(self):
        parent = await self.messages.create_message(self.alice.id, "question")
        reply = await self.messages.create_message(self.bob.id, "answer", parent_id=parent.id)
        await self.messages.append_edit(parent.id, self.alice.id, "better question")

        listed = await self.messages.list_messages(0)
        self.assertEqual([m.id for m in listed], [parent.id, reply.id])
        by_id = {m.id: m for m in listed}
        resolved = by_id[by_id[reply.id].parent_message_id]
        self.assertEqual(resolved.text, "better question")
        self.assertEqual(resolved.author_name, "alice")

    async def test_reply_to_missing_parent_is_rejected(self):
        with self.assertRaises(ValidationError):
            await self.messages.create_message(self.bob.id, "orphan", parent_id=999)
        self.assertEqual(await self.messages.list_messages(0), [])

    async def test_edit_by_author_archives_previous_text(self):
        message = await self.messages.create_message(self.alice.id, "hello")
        edited = await self.messages.append_edit(message.id, self.alice.id, "hello world")

        self.assertEqual(edited.text, "hello world")
        self.assertIsNotNone(edited.last_edited_at)
        self.assertEqual([e.old_text for e in edited.edit_history], ["hello"])

        listed = await self.messages.list_messages(0)
        self.assertEqual(listed[0].text, "hello world")
        self.assertEqual([e.old_text for e in listed[0].edit_history], ["hello"])

    async def test_two_edits_keep_each_superseded_text_in_order(self):
        message = await self.messages.create_message(self.alice.id, "v1")
        await self.messages.append_edit(message.id, self.alice.id, "v2")
        edited = await self.messages.append_edit(message.id, self.alice.id, "v3")

        self.assertEqual(edited.text, "v3")
        self.assertEqual([e.old_text for e in edited.edit_history], ["v1", "v2"])
        stamps = [e.edited_at for e in edited.edit_history]
        self.assertEqual(stamps, sorted(stamps))

    async def test_edit_by_non_author_is_forbidden_and_changes_nothing(self):
        message = await self.messages.create_message(self.alice.id, "hello")
        with self.assertRaises(ForbiddenError):
            await self.messages.append_edit(message.id, self.bob.id, "hijacked")

        stored = await self.messages.get_message(message.id)
        self.assertEqual(stored.text, "hello")
        self.assertIsNone(stored.last_edited_at)
        self.assertEqual(stored.edit_history, [])

    async def test_edit_of_missing_message_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.messages.append_edit(42, self.alice.id, "nothing here")

    async def test_edit_with_blank_text_changes_nothing(self):
        message = await self.messages.create_message(self.alice.id, "keep me")
        with self.assertRaises(ValidationError):
            await self.messages.append_edit(message.id, self.alice.id, "   ")
        stored = await self.messages.get_message(message.id)
        self.assertEqual(stored.text, "keep me")
        self.assertEqual(stored.edit_history, [])

    async def test_concurrent_edits_on_one_message_lose_no_history(self):
        message = await self.messages.create_message(self.alice.id, "v0")
        texts = [f"v{i}" for i in range(1, 6)]

        await asyncio.gather(*(self.messages.append_edit(message.id, self.alice.id, t) for t in texts))

        stored = await self.messages.get_message(message.id)
        history = [e.old_text for e in stored.edit_history]
        self.assertEqual(len(history), len(texts))
        # каждая промежуточная версия сохранена ровно один раз
        self.assertEqual(sorted(history + [stored.text]), sorted(["v0"] + texts))
        self.assertEqual(history[0], "v0")
        self.assertEqual(len(self.messages.locks), 0)

    async def test_recent_page_returns_latest_messages_ascending(self):
        for i in range(5):
            await self.messages.create_message(self.alice.id, f"m{i}")
        recent = await self.messages.get_recent_messages(limit=3)
        self.assertEqual([m.text for m in recent], ["m2", "m3", "m4"])

    async def test_exclude_author_filters_own_messages(self):
        await self.messages.create_message(self.alice.id, "mine")
        theirs = await self.messages.create_message(self.bob.id, "theirs")
        delta = await self.messages.list_messages(0, exclude_author_id=self.alice.id)
        self.assertEqual([m.id for m in delta], [theirs.id])
