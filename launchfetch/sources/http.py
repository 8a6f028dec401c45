"""
HTTP 来源

基于 aiohttp 的版本清单来源和字节来源。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import aiohttp
from loguru import logger

from launchfetch.exceptions import (
    FetchTimeoutError,
    HttpStatusError,
    ManifestNotFoundError,
    SourceError,
    SourceUnavailableError,
)
from launchfetch.sources.base import ByteSource, ByteStream, ManifestSource
from launchfetch.storage.verifier import CHUNK_SIZE

USER_AGENT = "launchfetch/0.1.0"


def _decoded_length(response: aiohttp.ClientResponse) -> Optional[int]:
    """
    解码后的响应体长度

    aiohttp 会自动解压 gzip/deflate 响应，此时 Content-Length 是压缩后的长度，
    与实际读到的字节数不一致，只能视为未知。
    """
    encoding = response.headers.get(aiohttp.hdrs.CONTENT_ENCODING, "identity")
    if encoding.strip().lower() not in ("", "identity"):
        return None
    return response.content_length


class _SessionMixin:
    """共享或自建 aiohttp session"""

    _session: Optional[aiohttp.ClientSession]
    _owned_session: bool
    _headers: Dict[str, str]

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
            self._owned_session = True
        return self._session

    async def close(self) -> None:
        """关闭自建的 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()


class HttpByteSource(_SessionMixin, ByteSource):
    """HTTP 字节来源"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        chunk_size: int = CHUNK_SIZE,
        headers: Optional[Dict[str, str]] = None,
    ):
        self._session = session
        self._owned_session = session is None
        self._headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self.chunk_size = chunk_size

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[ByteStream]:
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    raise HttpStatusError(
                        f"HTTP {response.status}",
                        status=response.status,
                        context={"url": url},
                    )
                length = _decoded_length(response)
                logger.debug(f"[下载] {url} 大小: {length}")
                yield ByteStream(
                    self._iter_chunks(response, url),
                    length=length,
                    url=url,
                )
        except aiohttp.ClientError as e:
            raise SourceUnavailableError(
                f"请求失败: {e}", context={"url": url}
            ) from e
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError("请求超时", context={"url": url}) from e

    async def _iter_chunks(
        self, response: aiohttp.ClientResponse, url: str
    ) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.content.iter_chunked(self.chunk_size):
                yield chunk
        except aiohttp.ClientError as e:
            raise SourceUnavailableError(
                f"读取响应失败: {e}", context={"url": url}
            ) from e
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError("读取响应超时", context={"url": url}) from e


class HttpManifestSource(_SessionMixin, ManifestSource):
    """HTTP 清单来源，地址为 <base_url>/<id>.json"""

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owned_session = session is None
        self._headers = {"User-Agent": USER_AGENT, **(headers or {})}

    async def fetch_raw(self, version_id: str) -> bytes:
        url = f"{self.base_url}/{version_id}.json"
        try:
            async with self.session.get(url) as response:
                if response.status == 200:
                    return await response.read()
                elif response.status == 404:
                    raise ManifestNotFoundError(
                        f"版本 {version_id} 不存在", context={"url": url}
                    )
                else:
                    raise SourceError(
                        f"清单请求失败 (状态码: {response.status})",
                        context={"url": url, "status": response.status},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceError(f"清单请求失败: {e}", context={"url": url}) from e
