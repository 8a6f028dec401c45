"""Shared test fixtures for LaunchFetch."""

import asyncio
import hashlib
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, Optional

import pytest

from launchfetch.exceptions import SourceUnavailableError
from launchfetch.models import (
    ArtifactDescriptor,
    Digest,
    DigestAlgorithm,
    Environment,
    RetryPolicy,
)
from launchfetch.sources.base import ByteSource, ByteStream
from launchfetch.storage import ContentStore


def sha1_of(data: bytes) -> Digest:
    return Digest(DigestAlgorithm.SHA1, hashlib.sha1(data).hexdigest())


def sha256_of(data: bytes) -> Digest:
    return Digest(DigestAlgorithm.SHA256, hashlib.sha256(data).hexdigest())


def make_descriptor(
    artifact_id: str,
    data: bytes,
    path: Optional[str] = None,
    url: Optional[str] = None,
    size: Optional[int] = -1,
    category: str = "artifact",
) -> ArtifactDescriptor:
    """Build a descriptor whose digest and size match ``data``."""
    return ArtifactDescriptor(
        id=artifact_id,
        url=url or f"mem://{artifact_id}",
        path=path or f"files/{artifact_id}.bin",
        digest=sha1_of(data),
        size=len(data) if size == -1 else size,
        category=category,
    )


def artifact_entry(artifact_id: str, data: bytes, path: str, **extra) -> dict:
    """Generic manifest ``artifacts`` entry for ``data``."""
    entry = {
        "id": artifact_id,
        "url": f"mem://{artifact_id}",
        "path": path,
        "sha1": hashlib.sha1(data).hexdigest(),
        "size": len(data),
    }
    entry.update(extra)
    return entry


class FakeByteSource(ByteSource):
    """In-memory byte source with scripted failures."""

    def __init__(
        self,
        blobs: Optional[Dict[str, bytes]] = None,
        unreachable: Iterable[str] = (),
        failures: Optional[Dict[str, int]] = None,
        chunk_size: int = 4,
        delay: float = 0.0,
        advertised_lengths: Optional[Dict[str, int]] = None,
    ):
        self.blobs = dict(blobs or {})
        self.unreachable = set(unreachable)
        self.failures = dict(failures or {})
        self.chunk_size = chunk_size
        self.delay = delay
        self.advertised_lengths = dict(advertised_lengths or {})
        self.opened: Dict[str, int] = {}
        self.chunks_read: Dict[str, int] = {}
        self.active = 0
        self.max_active = 0
        self.closed = False

    def add(self, url: str, data: bytes) -> None:
        self.blobs[url] = data

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[ByteStream]:
        self.opened[url] = self.opened.get(url, 0) + 1
        if url in self.unreachable or url not in self.blobs:
            raise SourceUnavailableError(f"unreachable: {url}", context={"url": url})
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise SourceUnavailableError(f"flaky: {url}", context={"url": url})

        data = self.blobs[url]

        async def _chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(data), self.chunk_size):
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.chunks_read[url] = self.chunks_read.get(url, 0) + 1
                yield data[start : start + self.chunk_size]

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            yield ByteStream(
                _chunks(),
                length=self.advertised_lengths.get(url, len(data)),
                url=url,
            )
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store(tmp_path: Path) -> ContentStore:
    """Provide a fresh ContentStore in a temp directory."""
    return ContentStore(tmp_path / "store")


@pytest.fixture
def install_root(tmp_path: Path) -> Path:
    return tmp_path / "install"


@pytest.fixture
def byte_source() -> FakeByteSource:
    return FakeByteSource()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy without backoff delays."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, multiplier=2.0, max_delay=0.0)


@pytest.fixture
def linux() -> Environment:
    return Environment.create("linux", "x86_64", os_version="6.1.0")
