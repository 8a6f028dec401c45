"""
LaunchFetch 来源层

版本清单来源（本地目录、内存、HTTP、缓存）和字节来源（本地文件、HTTP）。
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from launchfetch.sources.base import ByteSource, ByteStream, ManifestSource
from launchfetch.sources.local import (
    DirectoryManifestSource,
    LocalByteSource,
    MemoryManifestSource,
)
from launchfetch.sources.http import HttpByteSource, HttpManifestSource
from launchfetch.sources.cache import CachedManifestSource


class RoutingByteSource(ByteSource):
    """按地址协议选择字节来源：http(s) 走网络，其余按本地文件处理"""

    def __init__(
        self,
        http: Optional[ByteSource] = None,
        local: Optional[ByteSource] = None,
    ):
        self.http = http or HttpByteSource()
        self.local = local or LocalByteSource()

    def select(self, url: str) -> ByteSource:
        if url.startswith(("http://", "https://")):
            return self.http
        return self.local

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[ByteStream]:
        async with self.select(url).open(url) as stream:
            yield stream

    async def close(self) -> None:
        await self.http.close()
        await self.local.close()


__all__ = [
    "ByteSource",
    "ByteStream",
    "ManifestSource",
    "DirectoryManifestSource",
    "MemoryManifestSource",
    "LocalByteSource",
    "HttpByteSource",
    "HttpManifestSource",
    "CachedManifestSource",
    "RoutingByteSource",
]
