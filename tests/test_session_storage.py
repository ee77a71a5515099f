"""Tests for ResearchSession and the in-memory session storage."""

from datetime import timedelta

import pytest

from brenner_loop.core.evolution import add_root_hypothesis
from brenner_loop.core.lifecycle_machine import create_hypothesis_with_lifecycle
from brenner_loop.domain.session import ResearchSession, create_session, touch
from brenner_loop.store.session_storage import InMemorySessionStorage, StorageError, StorageErrorCode
from tests.test_evidence import _entry
from tests.test_graveyard import _grave
from tests.test_hypothesis import _card


@pytest.fixture
def storage() -> InMemorySessionStorage:
    return InMemorySessionStorage()


def _populated_session(session_id: str = "S1") -> ResearchSession:
    session = create_session(session_id)
    card = _card()
    _, history = add_root_hypothesis(session.history, card, "Initial formulation")
    return touch(
        session,
        hypotheses={card.id: create_hypothesis_with_lifecycle(card)},
        history=history,
        evidence_ledger=[_entry()],
        graveyard=[_grave()],
    )


class TestResearchSession:
    def test_create_validates_id(self) -> None:
        assert create_session("lab-1").id == "lab-1"
        with pytest.raises(ValueError, match="Invalid sessionId"):
            create_session("bad id")

    def test_touch_bumps_updated_at(self) -> None:
        session = create_session("S1")
        touched = touch(session)
        assert touched.updated_at >= session.updated_at
        assert touched.created_at == session.created_at


class TestInMemorySessionStorage:
    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(self, storage: InMemorySessionStorage) -> None:
        session = _populated_session()
        await storage.save(session)
        loaded = await storage.load("S1")
        assert loaded == session
        assert loaded.hypotheses["HC-S1-001-v1"].created_at.tzinfo is not None
        assert loaded.graveyard[0].killing_blow.recorded_at == session.graveyard[0].killing_blow.recorded_at

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, storage: InMemorySessionStorage) -> None:
        assert await storage.load("nope") is None

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self, storage: InMemorySessionStorage) -> None:
        older = create_session("A")
        newer = create_session("B").model_copy(update={"updated_at": older.updated_at + timedelta(hours=1)})
        await storage.save(older)
        await storage.save(newer)
        assert [s.id for s in await storage.list()] == ["B", "A"]
        assert storage.count == 2

    @pytest.mark.asyncio
    async def test_delete(self, storage: InMemorySessionStorage) -> None:
        await storage.save(create_session("S1"))
        await storage.delete("S1")
        assert await storage.load("S1") is None

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, storage: InMemorySessionStorage) -> None:
        with pytest.raises(StorageError) as exc_info:
            await storage.delete("ghost")
        assert exc_info.value.code == StorageErrorCode.SESSION_NOT_FOUND
        assert exc_info.value.session_id == "ghost"

    @pytest.mark.asyncio
    async def test_corrupt_data_is_parse_error(self, storage: InMemorySessionStorage) -> None:
        storage.put_raw("S1", "{not json")
        with pytest.raises(StorageError) as exc_info:
            await storage.load("S1")
        assert exc_info.value.code == StorageErrorCode.PARSE_ERROR

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_entries(
        self, storage: InMemorySessionStorage, caplog: pytest.LogCaptureFixture
    ) -> None:
        await storage.save(create_session("S1"))
        storage.put_raw("S2", "{not json")
        assert [s.id for s in await storage.list()] == ["S1"]
        assert "S2" in caplog.text
        with pytest.raises(StorageError):
            await storage.load("S2")

    @pytest.mark.asyncio
    async def test_quota(self) -> None:
        storage = InMemorySessionStorage(max_sessions=1)
        await storage.save(create_session("A"))
        await storage.save(touch(create_session("A")))
        with pytest.raises(StorageError) as exc_info:
            await storage.save(create_session("B"))
        assert exc_info.value.code == StorageErrorCode.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    @pytest.mark.filterwarnings("ignore")
    async def test_invalid_session_is_validation_error(self, storage: InMemorySessionStorage) -> None:
        broken = create_session("S1").model_copy(update={"evidence_ledger": ["not an entry"]})
        with pytest.raises(StorageError) as exc_info:
            await storage.save(broken)
        assert exc_info.value.code == StorageErrorCode.VALIDATION_ERROR
        assert storage.count == 0

    @pytest.mark.asyncio
    async def test_change_notifications(self, storage: InMemorySessionStorage) -> None:
        seen: list[tuple[str, object]] = []
        unsubscribe = storage.subscribe(lambda event, sid: seen.append((event, sid)))
        await storage.save(create_session("S1"))
        await storage.delete("S1")
        await storage.clear()
        unsubscribe()
        await storage.save(create_session("S2"))
        assert seen == [("save", "S1"), ("delete", "S1"), ("clear", None)]
