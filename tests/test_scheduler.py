"""Tests for the download scheduler, queue and retry policy."""

from pathlib import Path

import pytest

from conftest import FakeByteSource, make_descriptor
from launchfetch.download import (
    ArtifactState,
    CancellationToken,
    DownloadQueue,
    DownloadScheduler,
    Priority,
    compute_backoff,
    should_retry,
    terminal_outcome,
)
from launchfetch.exceptions import (
    DigestMismatchError,
    HttpStatusError,
    IoFailureError,
    MalformedEntryError,
    NotPresentError,
    SizeMismatchError,
    SourceUnavailableError,
)
from launchfetch.models import FetchOutcome, RetryPolicy
from launchfetch.storage import TEMP_SUFFIX, ContentStore


def by_id(results):
    return {r.artifact_id: r for r in results}


def seed(source: FakeByteSource, count: int, prefix: str = "lib"):
    descriptors = []
    for i in range(count):
        data = f"{prefix}-{i}-payload".encode() * (i + 1)
        descriptor = make_descriptor(f"{prefix}{i}", data)
        source.add(descriptor.url, data)
        descriptors.append(descriptor)
    return descriptors


class TestBackoff:

    def test_exponential_schedule(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0)
        assert [compute_backoff(n, policy) for n in range(1, 6)] == [
            1.0,
            2.0,
            4.0,
            8.0,
            16.0,
        ]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=3.0, max_delay=5.0)
        assert compute_backoff(3, policy) == 5.0
        assert compute_backoff(10, policy) == 5.0

    def test_no_delay_before_first_attempt(self):
        assert compute_backoff(0, RetryPolicy()) == 0.0

    def test_retry_eligibility(self):
        policy = RetryPolicy(max_attempts=3)
        assert should_retry(1, SourceUnavailableError("x"), policy)
        assert should_retry(2, DigestMismatchError("x"), policy)
        assert should_retry(1, IoFailureError("x"), policy)
        assert should_retry(1, HttpStatusError("x", status=503), policy)
        assert not should_retry(3, SourceUnavailableError("x"), policy)
        assert not should_retry(1, NotPresentError("x"), policy)
        assert not should_retry(1, MalformedEntryError("x"), policy)

    def test_terminal_outcome(self):
        assert terminal_outcome(DigestMismatchError("x")) is FetchOutcome.VERIFICATION_FAILED
        assert terminal_outcome(SizeMismatchError("x")) is FetchOutcome.VERIFICATION_FAILED
        assert terminal_outcome(SourceUnavailableError("x")) is FetchOutcome.SOURCE_UNAVAILABLE
        assert terminal_outcome(IoFailureError("x")) is FetchOutcome.SOURCE_UNAVAILABLE


class TestDownloadQueue:

    def test_deduplicates_by_id(self):
        queue = DownloadQueue()
        first = make_descriptor("a", b"one")
        assert queue.put(first)
        assert not queue.put(make_descriptor("a", b"two"))
        assert len(queue) == 1
        assert queue.get_nowait().descriptor is first
        assert queue.get_nowait() is None

    def test_priority_order(self):
        queue = DownloadQueue()
        queue.put(make_descriptor("asset", b"1", category="asset"))
        queue.put(make_descriptor("lib", b"2", category="library"))
        queue.put(make_descriptor("index", b"3", category="asset_index"))
        queue.put(make_descriptor("urgent", b"4"), priority=Priority.HIGH)

        order = []
        while (task := queue.get_nowait()) is not None:
            order.append(task.artifact_id)
        assert order == ["index", "urgent", "lib", "asset"]

    def test_drain(self):
        queue = DownloadQueue()
        for i in range(3):
            queue.put(make_descriptor(f"d{i}", b"x"))
        assert [t.artifact_id for t in queue.drain()] == ["d0", "d1", "d2"]
        assert queue.empty()


class TestDownloadScheduler:

    @pytest.mark.asyncio
    async def test_fetches_and_materializes(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 3)
        scheduler = DownloadScheduler(store, source, install_root)

        results = await scheduler.run(descriptors, 2, fast_policy)

        assert len(results) == 3
        for descriptor in descriptors:
            result = by_id(results)[descriptor.id]
            assert result.outcome is FetchOutcome.FETCHED
            assert result.attempts == 1
            assert result.bytes_fetched == descriptor.size
            assert store.has(descriptor.digest)
            target = install_root / descriptor.path
            assert target.read_bytes() == source.blobs[descriptor.url]
            assert scheduler.state_of(descriptor.id) is ArtifactState.COMMITTED

    @pytest.mark.asyncio
    async def test_second_run_hits_cache(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 2)
        scheduler = DownloadScheduler(store, source, install_root)
        await scheduler.run(descriptors, 2, fast_policy)
        (install_root / descriptors[0].path).unlink()

        results = await scheduler.run(descriptors, 2, fast_policy)

        assert {r.outcome for r in results} == {FetchOutcome.CACHE_HIT}
        assert all(count == 1 for count in source.opened.values())
        assert (install_root / descriptors[0].path).is_file()
        assert scheduler.get_stats().cache_hits == 2

    @pytest.mark.asyncio
    async def test_partial_failure_isolation(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 5)
        broken = descriptors[2]
        source.unreachable.add(broken.url)
        scheduler = DownloadScheduler(store, source, install_root)

        results = by_id(await scheduler.run(descriptors, 3, fast_policy))

        assert results[broken.id].outcome is FetchOutcome.SOURCE_UNAVAILABLE
        assert results[broken.id].attempts == fast_policy.max_attempts
        assert "E301" in results[broken.id].reason
        assert source.opened[broken.url] == fast_policy.max_attempts
        for descriptor in descriptors:
            if descriptor is not broken:
                assert results[descriptor.id].outcome is FetchOutcome.FETCHED
        assert scheduler.state_of(broken.id) is ArtifactState.FAILED

    @pytest.mark.asyncio
    async def test_retry_then_success(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        (descriptor,) = seed(source, 1)
        source.failures[descriptor.url] = 2
        scheduler = DownloadScheduler(store, source, install_root)

        (result,) = await scheduler.run([descriptor], 1, fast_policy)

        assert result.outcome is FetchOutcome.FETCHED
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_persistent_digest_mismatch(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        descriptor = make_descriptor("lib", b"expected bytes")
        source = FakeByteSource({descriptor.url: b"evil   bytes!!"})
        scheduler = DownloadScheduler(store, source, install_root)

        (result,) = await scheduler.run([descriptor], 1, fast_policy)

        assert result.outcome is FetchOutcome.VERIFICATION_FAILED
        assert result.attempts == 3
        assert "E303" in result.reason
        assert not store.has(descriptor.digest)
        assert not (install_root / descriptor.path).exists()
        assert list(store.root.rglob(f"*{TEMP_SUFFIX}")) == []

    @pytest.mark.asyncio
    async def test_advertised_length_rejected_before_hashing(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        (descriptor,) = seed(source, 1)
        source.advertised_lengths[descriptor.url] = descriptor.size + 100
        scheduler = DownloadScheduler(store, source, install_root)

        (result,) = await scheduler.run([descriptor], 1, fast_policy)

        assert result.outcome is FetchOutcome.VERIFICATION_FAILED
        assert "E304" in result.reason
        assert source.chunks_read.get(descriptor.url, 0) == 0

    @pytest.mark.asyncio
    async def test_attempt_timeout(self, store: ContentStore, install_root: Path):
        policy = RetryPolicy(
            max_attempts=2, base_delay=0.0, max_delay=0.0, attempt_timeout=0.05
        )
        source = FakeByteSource(delay=1.0)
        (descriptor,) = seed(source, 1)
        scheduler = DownloadScheduler(store, source, install_root)

        (result,) = await scheduler.run([descriptor], 1, policy)

        assert result.outcome is FetchOutcome.SOURCE_UNAVAILABLE
        assert result.attempts == 2
        assert "E302" in result.reason
        assert list(store.root.rglob(f"*{TEMP_SUFFIX}")) == []

    @pytest.mark.asyncio
    async def test_duplicate_ids_fetched_once(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        (descriptor,) = seed(source, 1)
        scheduler = DownloadScheduler(store, source, install_root)

        results = await scheduler.run([descriptor, descriptor], 4, fast_policy)

        assert len(results) == 1
        assert source.opened[descriptor.url] == 1

    @pytest.mark.asyncio
    async def test_concurrency_bound(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource(delay=0.01)
        descriptors = seed(source, 8)
        scheduler = DownloadScheduler(store, source, install_root)

        results = await scheduler.run(descriptors, 2, fast_policy)

        assert len(results) == 8
        assert 1 <= source.max_active <= 2

    @pytest.mark.asyncio
    async def test_cancelled_before_start(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 3)
        token = CancellationToken()
        token.cancel()
        scheduler = DownloadScheduler(store, source, install_root)

        results = await scheduler.run(descriptors, 2, fast_policy, token)

        assert {r.outcome for r in results} == {FetchOutcome.SKIPPED}
        assert len(results) == 3
        assert source.opened == {}

    @pytest.mark.asyncio
    async def test_cancel_mid_run_skips_remaining(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 4)
        token = CancellationToken()
        seen = []

        def on_result(result):
            seen.append(result)
            token.cancel()

        scheduler = DownloadScheduler(
            store, source, install_root, progress_callback=on_result
        )
        results = by_id(await scheduler.run(descriptors, 1, fast_policy, token))

        outcomes = [results[d.id].outcome for d in descriptors]
        assert outcomes == [
            FetchOutcome.FETCHED,
            FetchOutcome.SKIPPED,
            FetchOutcome.SKIPPED,
            FetchOutcome.SKIPPED,
        ]
        assert len(seen) == 4
        assert scheduler.get_stats().skipped == 3

    @pytest.mark.asyncio
    async def test_empty_run(self, store: ContentStore, install_root: Path, fast_policy):
        scheduler = DownloadScheduler(store, FakeByteSource(), install_root)
        assert await scheduler.run([], 4, fast_policy) == []

    @pytest.mark.asyncio
    async def test_rejects_zero_concurrency(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        scheduler = DownloadScheduler(store, FakeByteSource(), install_root)
        with pytest.raises(ValueError):
            await scheduler.run([], 0, fast_policy)

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_stop_workers(
        self, store: ContentStore, install_root: Path, fast_policy
    ):
        source = FakeByteSource()
        descriptors = seed(source, 4)
        seen = []

        def on_result(result):
            seen.append(result.artifact_id)
            raise RuntimeError("progress bar closed")

        scheduler = DownloadScheduler(
            store, source, install_root, progress_callback=on_result
        )
        results = await scheduler.run(descriptors, 2, fast_policy)

        assert sorted(seen) == sorted(d.id for d in descriptors)
        assert all(r.outcome is FetchOutcome.FETCHED for r in results)
        assert scheduler.get_stats().fetched == 4
