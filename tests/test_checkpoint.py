"""测试 Checkpoint 簿记与存取."""

from datetime import timedelta

from conftest import START_TIME
from sqlalchemy.ext.asyncio import AsyncSession

from feedlingo.core.checkpoint import (
    CheckpointStore,
    abandon,
    clear_failure,
    eligible_retries,
    get_abandoned,
    get_failed,
    prune_abandoned,
    record_failure,
    update_completion,
)
from feedlingo.models.checkpoint import Checkpoint
from feedlingo.models.source import Source


class TestFailureBookkeeping:
    """测试失败条目记录."""

    def test_new_failure_starts_at_zero(self) -> None:
        checkpoint = Checkpoint(source_id=1)
        entry = record_failure(checkpoint, "g1", "timeout", START_TIME)

        assert entry.retry_count == 0
        assert get_failed(checkpoint)["g1"].error == "timeout"

    def test_repeated_failure_increments(self) -> None:
        """同一条目再次失败时计数加一并刷新时间."""
        checkpoint = Checkpoint(source_id=1)
        record_failure(checkpoint, "g1", "timeout", START_TIME)
        later = START_TIME + timedelta(minutes=40)
        entry = record_failure(checkpoint, "g1", "rejected", later)

        assert entry.retry_count == 1
        stored = get_failed(checkpoint)["g1"]
        assert stored.error == "rejected"
        assert stored.last_retry == later

    def test_failures_keep_insertion_order(self) -> None:
        checkpoint = Checkpoint(source_id=1)
        for guid in ["c", "a", "b"]:
            record_failure(checkpoint, guid, "x", START_TIME)
        assert list(get_failed(checkpoint)) == ["c", "a", "b"]

    def test_clear_and_abandon(self) -> None:
        checkpoint = Checkpoint(source_id=1)
        record_failure(checkpoint, "g1", "x", START_TIME)
        record_failure(checkpoint, "g2", "y", START_TIME)

        clear_failure(checkpoint, "g1")
        abandon(checkpoint, "g2")

        assert get_failed(checkpoint) == {}
        assert list(get_abandoned(checkpoint)) == ["g2"]

    def test_prune_abandoned(self) -> None:
        checkpoint = Checkpoint(source_id=1)
        record_failure(checkpoint, "gone", "x", START_TIME)
        record_failure(checkpoint, "kept", "x", START_TIME)
        abandon(checkpoint, "gone")
        abandon(checkpoint, "kept")

        prune_abandoned(checkpoint, {"kept", "other"})
        assert list(get_abandoned(checkpoint)) == ["kept"]


class TestEligibleRetries:
    """测试重试筛选."""

    def test_respects_cooldown(self) -> None:
        """冷却期内不可重试."""
        checkpoint = Checkpoint(source_id=1)
        record_failure(checkpoint, "g1", "x", START_TIME)

        assert eligible_retries(checkpoint, START_TIME + timedelta(minutes=29)) == []
        eligible = eligible_retries(checkpoint, START_TIME + timedelta(minutes=30))
        assert [e.guid for e in eligible] == ["g1"]

    def test_respects_max_retry_count(self) -> None:
        checkpoint = Checkpoint(source_id=1)
        for _ in range(4):
            record_failure(checkpoint, "g1", "x", START_TIME)

        assert get_failed(checkpoint)["g1"].retry_count == 3
        assert eligible_retries(checkpoint, START_TIME + timedelta(hours=5)) == []


class TestCompletion:
    """测试完成判定."""

    def test_complete_when_all_settled(self) -> None:
        checkpoint = Checkpoint(source_id=1, total_count=3, processed_count=2)
        record_failure(checkpoint, "g3", "x", START_TIME)
        abandon(checkpoint, "g3")
        assert update_completion(checkpoint) is True

    def test_incomplete_with_pending_failures(self) -> None:
        checkpoint = Checkpoint(source_id=1, total_count=3, processed_count=2)
        record_failure(checkpoint, "g3", "x", START_TIME)
        assert update_completion(checkpoint, reached_end=True) is False

    def test_incomplete_when_counts_short(self) -> None:
        checkpoint = Checkpoint(source_id=1, total_count=3, processed_count=1)
        assert update_completion(checkpoint) is False
        assert update_completion(checkpoint, reached_end=True) is True


class TestCheckpointStore:
    """测试 Checkpoint 持久化."""

    async def test_start_reuses_incomplete(
        self, async_session: AsyncSession, sample_source: Source
    ) -> None:
        store = CheckpointStore(async_session)
        assert sample_source.id is not None

        first = await store.start(sample_source.id)
        second = await store.start(sample_source.id)

        assert first.id == second.id

    async def test_force_refresh_discards_incomplete(
        self, async_session: AsyncSession, sample_source: Source
    ) -> None:
        """强制刷新删除未完成的 Checkpoint."""
        store = CheckpointStore(async_session)
        assert sample_source.id is not None

        first = await store.start(sample_source.id)
        first.processed_count = 2
        record_failure(first, "bad", "x", START_TIME)
        abandon(first, "bad")
        await store.save(first)
        await async_session.commit()

        fresh = await store.start(sample_source.id, force_refresh=True)

        assert fresh.processed_count == 0
        assert fresh.abandoned_items == {}
        active = await store.load_active(sample_source.id)
        assert active is not None
        assert active.processed_count == 0

    async def test_new_checkpoint_after_completion_carries_abandoned(
        self, async_session: AsyncSession, sample_source: Source
    ) -> None:
        """完成后的新 Checkpoint 沿用放弃集合."""
        store = CheckpointStore(async_session)
        assert sample_source.id is not None

        first = await store.start(sample_source.id)
        record_failure(first, "bad", "x", START_TIME)
        abandon(first, "bad")
        first.is_completed = True
        await store.save(first)
        await async_session.commit()

        second = await store.start(sample_source.id)
        assert second.id != first.id
        assert list(get_abandoned(second)) == ["bad"]

        latest = await store.get_progress(sample_source.id)
        assert latest is not None
        assert latest.id == second.id

    async def test_timestamps_round_trip_as_naive_utc(
        self, async_session: AsyncSession, sample_source: Source
    ) -> None:
        """时间戳以不带时区的 UTC 保存，读回后与写入值相同."""
        store = CheckpointStore(async_session)
        assert sample_source.id is not None

        checkpoint = await store.start(sample_source.id)
        checkpoint.updated_at = START_TIME
        sample_source.last_fetch_time = START_TIME
        await async_session.commit()

        await async_session.refresh(checkpoint)
        await async_session.refresh(sample_source)

        assert checkpoint.updated_at == START_TIME
        assert checkpoint.created_at.tzinfo is None
        assert sample_source.last_fetch_time == START_TIME
