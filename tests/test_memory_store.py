"""Tests for the in-memory whisper store."""

import asyncio
from datetime import timedelta

import pytest

from whispermap_backend.exceptions import WhisperNotFoundError, WhisperValidationError
from whispermap_backend.models.whisper import GeoPoint, Reply, Whisper

from conftest import NYC, T0, make_whisper

FAR_AWAY = GeoPoint(latitude=48.8566, longitude=2.3522)


@pytest.mark.unit
class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_fills_id_and_times_from_clock(self, memory_store):
        whisper_id = await memory_store.insert(Whisper(location=NYC, audio_url="/uploads/a.webm"))

        stored = await memory_store.find_by_id(whisper_id)
        assert stored.created_at == T0
        assert stored.expires_at == T0 + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_insert_without_location_rejected(self, memory_store):
        with pytest.raises(WhisperValidationError):
            await memory_store.insert(Whisper(audio_url="/uploads/a.webm"))
        assert await memory_store.count() == 0

    @pytest.mark.asyncio
    async def test_insert_without_audio_rejected(self, memory_store):
        with pytest.raises(WhisperValidationError):
            await memory_store.insert(Whisper(location=NYC))

    @pytest.mark.asyncio
    async def test_concurrent_inserts_all_kept(self, memory_store):
        await asyncio.gather(*(memory_store.insert(make_whisper()) for _ in range(20)))
        assert await memory_store.count() == 20


@pytest.mark.unit
class TestQueries:
    @pytest.mark.asyncio
    async def test_window_query_newest_first(self, memory_store, clock):
        older = make_whisper(created_at=T0 - timedelta(hours=2))
        newer = make_whisper(created_at=T0 - timedelta(hours=1))
        await memory_store.insert(newer)
        await memory_store.insert(older)

        results = await memory_store.query_by_window(NYC, 1000)
        assert [w.id for w in results] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_window_query_excludes_far_whispers(self, memory_store):
        await memory_store.insert(make_whisper(location=FAR_AWAY))
        assert await memory_store.query_by_window(NYC, 2000) == []

    @pytest.mark.asyncio
    async def test_max_age_filter(self, memory_store):
        recent = make_whisper(created_at=T0 - timedelta(hours=1))
        stale = make_whisper(created_at=T0 - timedelta(hours=30))
        await memory_store.insert(recent)
        await memory_store.insert(stale)

        results = await memory_store.query_by_window(NYC, 1000, max_age_hours=24)
        assert [w.id for w in results] == [recent.id]

    @pytest.mark.asyncio
    async def test_expiry_is_monotonic(self, memory_store, clock):
        whisper = make_whisper()
        await memory_store.insert(whisper)

        clock.advance(days=6, hours=23)
        assert [w.id for w in await memory_store.query_by_window(NYC, 100)] == [whisper.id]

        clock.advance(hours=2)
        assert await memory_store.query_by_window(NYC, 100) == []
        with pytest.raises(WhisperNotFoundError):
            await memory_store.find_by_id(whisper.id)

    @pytest.mark.asyncio
    async def test_find_unknown_id(self, memory_store):
        with pytest.raises(WhisperNotFoundError):
            await memory_store.find_by_id("missing")

    @pytest.mark.asyncio
    async def test_find_by_owner_skips_anonymous(self, memory_store):
        mine = make_whisper(owner_id="user-1")
        hidden = make_whisper(owner_id="user-1", is_anonymous=True)
        other = make_whisper(owner_id="user-2")
        for whisper in (mine, hidden, other):
            await memory_store.insert(whisper)

        assert [w.id for w in await memory_store.find_by_owner("user-1")] == [mine.id]


@pytest.mark.unit
class TestRepliesAndPurge:
    @pytest.mark.asyncio
    async def test_append_reply(self, memory_store):
        whisper = make_whisper()
        await memory_store.insert(whisper)

        updated = await memory_store.append_reply(whisper.id, Reply(text="hello"))
        assert [r.text for r in updated.replies] == ["hello"]
        assert (await memory_store.find_by_id(whisper.id)).replies[0].text == "hello"

    @pytest.mark.asyncio
    async def test_append_reply_to_expired_whisper(self, memory_store, clock):
        whisper = make_whisper(lifetime_days=1)
        await memory_store.insert(whisper)
        clock.advance(days=1)

        with pytest.raises(WhisperNotFoundError):
            await memory_store.append_reply(whisper.id, Reply(text="late"))

    @pytest.mark.asyncio
    async def test_purge_removes_only_expired(self, memory_store, clock):
        short = make_whisper(lifetime_days=1)
        long = make_whisper(lifetime_days=7)
        await memory_store.insert(short)
        await memory_store.insert(long)

        clock.advance(days=2)
        purged = await memory_store.purge_expired()

        assert [w.id for w in purged] == [short.id]
        assert await memory_store.count() == 1
        assert await memory_store.purge_expired() == []
