"""
来源抽象

定义版本清单来源和字节来源两种能力接口。
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager, AsyncIterator, Optional

from launchfetch.exceptions import MalformedSourceError
from launchfetch.models import VersionDefinition


class ByteStream:
    """可流式读取的字节序列"""

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        length: Optional[int] = None,
        url: str = "",
    ):
        self._chunks = chunks
        self.length = length
        self.url = url

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks.__aiter__()


class ByteSource(ABC):
    """字节来源"""

    @abstractmethod
    def open(self, url: str) -> AsyncContextManager[ByteStream]:
        """
        打开地址对应的字节流

        Raises:
            SourceUnavailableError: 来源不可达
            HttpStatusError: 返回了非成功状态码
            FetchTimeoutError: 请求超时
        """

    async def close(self) -> None:
        """释放资源"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class ManifestSource(ABC):
    """版本清单来源"""

    @abstractmethod
    async def fetch_raw(self, version_id: str) -> bytes:
        """
        获取原始清单字节

        Raises:
            ManifestNotFoundError: 清单不存在
            SourceError: 其他来源错误
        """

    async def load(self, version_id: str) -> VersionDefinition:
        """
        加载版本定义

        Raises:
            ManifestNotFoundError: 清单不存在
            MalformedSourceError: 清单内容无效或 id 与请求不一致
        """
        definition = VersionDefinition.from_json(await self.fetch_raw(version_id))
        if definition.id != version_id:
            raise MalformedSourceError(
                f"清单 id 不一致: 请求 {version_id}，实际 {definition.id}",
                context={"requested": version_id, "actual": definition.id},
            )
        return definition

    async def close(self) -> None:
        """释放资源"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
