"""Tests for the content-addressed store."""

import asyncio
from pathlib import Path

import pytest

from conftest import sha1_of, sha256_of
from launchfetch.exceptions import (
    DigestMismatchError,
    NotPresentError,
    SizeMismatchError,
)
from launchfetch.storage import TEMP_SUFFIX, ContentStore


async def chunked(data: bytes, size: int = 3):
    for start in range(0, len(data), size):
        yield data[start : start + size]


def temp_files(store: ContentStore):
    return list(store.root.rglob(f"*{TEMP_SUFFIX}"))


class TestCommit:

    @pytest.mark.asyncio
    async def test_commit_then_has(self, store: ContentStore):
        data = b"hello launcher"
        digest = sha1_of(data)
        assert not store.has(digest)

        path = await store.commit(digest, chunked(data), len(data))

        assert store.has(digest)
        assert path.read_bytes() == data
        value = digest.value
        assert path == store.root / "sha1" / value[:2] / value[2:4] / value

    @pytest.mark.asyncio
    async def test_sha256_slot(self, store: ContentStore):
        data = b"sha256 content"
        digest = sha256_of(data)
        path = await store.commit(digest, chunked(data))
        assert path.parent.parent.parent.name == "sha256"
        assert store.has(digest)

    @pytest.mark.asyncio
    async def test_commit_is_idempotent(self, store: ContentStore):
        data = b"same bytes"
        digest = sha1_of(data)
        await store.commit(digest, chunked(data))
        await store.commit(digest, chunked(data))

        assert store.has(digest)
        assert list(store.iter_entries()) == [digest]
        assert store.path_for(digest).read_bytes() == data
        assert temp_files(store) == []

    @pytest.mark.asyncio
    async def test_digest_mismatch_leaves_store_unchanged(self, store: ContentStore):
        digest = sha1_of(b"expected")
        with pytest.raises(DigestMismatchError):
            await store.commit(digest, chunked(b"tampered"))

        assert not store.has(digest)
        assert temp_files(store) == []
        with pytest.raises(NotPresentError):
            await store.materialize(digest, store.root.parent / "out.bin")

    @pytest.mark.asyncio
    async def test_size_overshoot_rejected_early(self, store: ContentStore):
        data = b"0123456789"
        consumed = []

        async def source():
            for chunk in (data[:4], data[4:8], data[8:]):
                consumed.append(chunk)
                yield chunk

        with pytest.raises(SizeMismatchError):
            await store.commit(sha1_of(data), source(), expected_size=6)

        assert len(consumed) == 2
        assert not store.has(sha1_of(data))
        assert temp_files(store) == []

    @pytest.mark.asyncio
    async def test_size_short_rejected(self, store: ContentStore):
        data = b"short"
        with pytest.raises(SizeMismatchError):
            await store.commit(sha1_of(data), chunked(data), expected_size=100)
        assert not store.has(sha1_of(data))

    @pytest.mark.asyncio
    async def test_failing_source_cleans_temp_file(self, store: ContentStore):
        async def broken():
            yield b"partial"
            raise RuntimeError("peer went away")

        with pytest.raises(RuntimeError):
            await store.commit(sha1_of(b"whatever"), broken())
        assert temp_files(store) == []

    @pytest.mark.asyncio
    async def test_concurrent_commits_same_digest(self, store: ContentStore):
        data = b"x" * 4096 + b"concurrent"
        digest = sha1_of(data)

        paths = await asyncio.gather(
            *(store.commit(digest, chunked(data, 512), len(data)) for _ in range(50))
        )

        assert all(p == store.path_for(digest) for p in paths)
        assert list(store.iter_entries()) == [digest]
        assert store.path_for(digest).read_bytes() == data
        assert temp_files(store) == []


class TestMaterialize:

    @pytest.mark.asyncio
    async def test_round_trip(self, store: ContentStore, tmp_path: Path):
        data = bytes(range(256)) * 300
        digest = sha1_of(data)
        await store.commit(digest, chunked(data, 1000))

        destination = tmp_path / "game" / "libraries" / "a.jar"
        result = await store.materialize(digest, destination)

        assert result == destination
        assert destination.read_bytes() == data
        assert [p.name for p in destination.parent.iterdir()] == ["a.jar"]

    @pytest.mark.asyncio
    async def test_overwrites_existing_destination(
        self, store: ContentStore, tmp_path: Path
    ):
        data = b"fresh"
        digest = sha1_of(data)
        await store.commit(digest, chunked(data))
        destination = tmp_path / "out.bin"
        destination.write_bytes(b"stale and longer")

        await store.materialize(digest, destination)
        assert destination.read_bytes() == data

    @pytest.mark.asyncio
    async def test_not_present(self, store: ContentStore, tmp_path: Path):
        with pytest.raises(NotPresentError) as exc_info:
            await store.materialize(sha1_of(b"missing"), tmp_path / "x")
        assert exc_info.value.code == "E602"
        assert not (tmp_path / "x").exists()


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_purge_temp(self, store: ContentStore):
        data = b"keep me"
        digest = sha1_of(data)
        await store.commit(digest, chunked(data))
        slot = store.path_for(digest)
        leftover = slot.with_name(f"{slot.name}.deadbeef{TEMP_SUFFIX}")
        leftover.write_bytes(b"half written")

        assert store.purge_temp() == 1
        assert not leftover.exists()
        assert store.has(digest)

    @pytest.mark.asyncio
    async def test_verify_and_audit_detect_corruption(self, store: ContentStore):
        good = b"good blob"
        bad = b"soon corrupt"
        await store.commit(sha1_of(good), chunked(good))
        await store.commit(sha1_of(bad), chunked(bad))
        store.path_for(sha1_of(bad)).write_bytes(b"bit rot")

        assert await store.verify(sha1_of(good))
        assert not await store.verify(sha1_of(bad))

        checked, corrupt = await store.audit()
        assert checked == 2
        assert corrupt == [sha1_of(bad)]
        assert store.has(sha1_of(bad))

        _, corrupt = await store.audit(repair=True)
        assert corrupt == [sha1_of(bad)]
        assert not store.has(sha1_of(bad))
        assert store.has(sha1_of(good))

    def test_discard_missing(self, store: ContentStore):
        assert store.discard(sha1_of(b"nothing")) is False

    def test_iter_entries_ignores_foreign_files(self, store: ContentStore):
        stray = store.root / "sha1" / "ab" / "cd" / "not-a-digest"
        stray.parent.mkdir(parents=True)
        stray.write_bytes(b"?")
        assert list(store.iter_entries()) == []
