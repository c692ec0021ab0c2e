"""Tests for the MongoDB whisper store against mongomock."""

from datetime import timedelta

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from whispermap_backend.exceptions import WhisperNotFoundError
from whispermap_backend.models.whisper import GeoPoint, Reply, Whisper
from whispermap_backend.models.whisper_document import WhisperDocument
from whispermap_backend.stores.mongo_store import MongoWhisperStore

from conftest import NYC, T0, FakeClock, make_whisper


async def initialize_store():
    client = AsyncMongoMockClient()
    await init_beanie(database=client.db_name, document_models=[WhisperDocument])
    await WhisperDocument.find({}).delete()
    clock = FakeClock()
    return MongoWhisperStore(clock=clock), clock


class TestMongoWhisperStore:
    """MongoWhisperStore behaviour over a mocked database."""

    @pytest.mark.asyncio
    async def test_insert_and_find(self):
        store, _ = await initialize_store()
        whisper_id = await store.insert(Whisper(location=NYC, audio_url="/uploads/a.webm", owner_id="user-1"))

        found = await store.find_by_id(whisper_id)
        assert found.location == NYC
        assert found.created_at == T0
        assert found.expires_at == T0 + timedelta(days=7)
        assert found.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_document_stores_naive_utc(self):
        store, _ = await initialize_store()
        whisper_id = await store.insert(make_whisper())

        document = await WhisperDocument.find_one({"whisper_id": whisper_id})
        assert document.created_at.tzinfo is None
        assert document.created_at == T0.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_window_query_filters_and_sorts(self):
        store, _ = await initialize_store()
        older = make_whisper(created_at=T0 - timedelta(hours=3))
        newer = make_whisper(created_at=T0 - timedelta(hours=1))
        far = make_whisper(location=GeoPoint(latitude=48.8566, longitude=2.3522))
        for whisper in (older, far, newer):
            await store.insert(whisper)

        results = await store.query_by_window(NYC, 1000)
        assert [w.id for w in results] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_window_query_across_antimeridian(self):
        store, _ = await initialize_store()
        east = make_whisper(location=GeoPoint(latitude=0.0, longitude=179.9995))
        west = make_whisper(location=GeoPoint(latitude=0.0, longitude=-179.9995))
        await store.insert(east)
        await store.insert(west)

        results = await store.query_by_window(GeoPoint(latitude=0.0, longitude=180.0), 500)
        assert {w.id for w in results} == {east.id, west.id}

    @pytest.mark.asyncio
    async def test_expired_whispers_hidden_before_purge(self):
        store, clock = await initialize_store()
        whisper = make_whisper(lifetime_days=1)
        await store.insert(whisper)

        clock.advance(days=1)
        assert await store.query_by_window(NYC, 1000) == []
        with pytest.raises(WhisperNotFoundError):
            await store.find_by_id(whisper.id)
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_find_by_owner(self):
        store, _ = await initialize_store()
        mine = make_whisper(owner_id="user-1")
        await store.insert(mine)
        await store.insert(make_whisper(owner_id="user-1", is_anonymous=True))

        assert [w.id for w in await store.find_by_owner("user-1")] == [mine.id]

    @pytest.mark.asyncio
    async def test_append_reply(self):
        store, _ = await initialize_store()
        whisper = make_whisper()
        await store.insert(whisper)

        updated = await store.append_reply(whisper.id, Reply(text="hi", owner_id="user-2", created_at=T0))
        assert len(updated.replies) == 1
        assert updated.replies[0].text == "hi"
        assert updated.replies[0].created_at == T0

    @pytest.mark.asyncio
    async def test_append_reply_unknown_whisper(self):
        store, _ = await initialize_store()
        with pytest.raises(WhisperNotFoundError):
            await store.append_reply("missing", Reply(text="hi"))

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        store, clock = await initialize_store()
        short = make_whisper(lifetime_days=1)
        long = make_whisper(lifetime_days=30)
        await store.insert(short)
        await store.insert(long)

        clock.advance(days=2)
        purged = await store.purge_expired()

        assert [w.id for w in purged] == [short.id]
        assert await store.count() == 1
