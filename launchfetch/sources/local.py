"""
本地来源

从本地目录或内存读取版本清单，从本地文件读取字节流。
"""

import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Union
from urllib.parse import unquote, urlparse

import aiofiles

from launchfetch.exceptions import (
    ManifestNotFoundError,
    MalformedSourceError,
    SourceUnavailableError,
)
from launchfetch.sources.base import ByteSource, ByteStream, ManifestSource
from launchfetch.storage.verifier import CHUNK_SIZE


def check_version_id(version_id: str) -> None:
    if not version_id or "/" in version_id or "\\" in version_id or version_id in (".", ".."):
        raise MalformedSourceError(f"无效的版本 id: {version_id!r}")


class DirectoryManifestSource(ManifestSource):
    """
    本地目录清单来源

    依次查找 <root>/<id>.json 与 <root>/<id>/<id>.json。
    """

    def __init__(self, root: Union[str, os.PathLike]):
        self.root = Path(root)

    async def fetch_raw(self, version_id: str) -> bytes:
        check_version_id(version_id)
        for candidate in (
            self.root / f"{version_id}.json",
            self.root / version_id / f"{version_id}.json",
        ):
            if candidate.is_file():
                try:
                    async with aiofiles.open(candidate, "rb") as f:
                        return await f.read()
                except OSError as e:
                    raise MalformedSourceError(
                        f"无法读取清单 {candidate}: {e}"
                    ) from e
        raise ManifestNotFoundError(
            f"版本 {version_id} 不存在", context={"root": str(self.root)}
        )


class MemoryManifestSource(ManifestSource):
    """内存清单来源，用于内置清单"""

    def __init__(self, documents: Mapping[str, Any]):
        self._documents = dict(documents)

    async def fetch_raw(self, version_id: str) -> bytes:
        if version_id not in self._documents:
            raise ManifestNotFoundError(f"版本 {version_id} 不存在")
        document = self._documents[version_id]
        if isinstance(document, bytes):
            return document
        if isinstance(document, str):
            return document.encode("utf-8")
        return json.dumps(document).encode("utf-8")


def local_path_from_url(url: str) -> Path:
    """将 file:// 地址或普通路径转换为本地路径"""
    if url.startswith("file://"):
        return Path(unquote(urlparse(url).path))
    return Path(url)


class LocalByteSource(ByteSource):
    """本地文件字节来源"""

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        self.chunk_size = chunk_size

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[ByteStream]:
        path = local_path_from_url(url)
        if not path.is_file():
            raise SourceUnavailableError(f"本地文件不存在: {path}", context={"url": url})
        try:
            length = path.stat().st_size
            f = await aiofiles.open(path, "rb")
        except OSError as e:
            raise SourceUnavailableError(
                f"无法打开本地文件: {e}", context={"url": url}
            ) from e

        async def _chunks() -> AsyncIterator[bytes]:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

        try:
            yield ByteStream(_chunks(), length=length, url=url)
        finally:
            await f.close()
