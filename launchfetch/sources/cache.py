"""
清单缓存

包装另一个清单来源，把原始清单保存到本地缓存目录。
已知 sha256 的清单在读取缓存时重新校验，不匹配则重新获取。
"""

import hashlib
import hmac
import os
import uuid
from pathlib import Path
from typing import Mapping, Optional, Union

import aiofiles
from loguru import logger

from launchfetch.exceptions import MalformedSourceError, ManifestNotFoundError, SourceError
from launchfetch.sources.base import ManifestSource
from launchfetch.sources.local import check_version_id


class CachedManifestSource(ManifestSource):
    """带本地缓存的清单来源"""

    def __init__(
        self,
        inner: ManifestSource,
        cache_dir: Union[str, os.PathLike],
        expected_sha256: Optional[Mapping[str, str]] = None,
    ):
        self.inner = inner
        self.cache_dir = Path(cache_dir)
        self.expected_sha256 = {
            k: v.lower() for k, v in (expected_sha256 or {}).items()
        }

    def cache_path(self, version_id: str) -> Path:
        return self.cache_dir / f"{version_id}.json"

    def _matches(self, version_id: str, raw: bytes) -> bool:
        expected = self.expected_sha256.get(version_id)
        if expected is None:
            return True
        return hmac.compare_digest(hashlib.sha256(raw).hexdigest(), expected)

    async def fetch_raw(self, version_id: str) -> bytes:
        """
        读取清单

        1. 缓存存在且校验通过，直接返回缓存
        2. 缓存存在但校验失败，重新获取；获取失败时沿用旧缓存
        3. 缓存不存在，获取后写入缓存
        """
        check_version_id(version_id)
        path = self.cache_path(version_id)
        cached = await self._read_cache(path)

        if cached is not None and self._matches(version_id, cached):
            logger.debug(f"[缓存] 命中清单 {version_id}")
            return cached

        try:
            raw = await self.inner.fetch_raw(version_id)
        except ManifestNotFoundError:
            raise
        except SourceError as e:
            if cached is None:
                raise
            logger.error(f"[缓存] 获取 {version_id} 失败，沿用旧缓存: {e}")
            return cached

        if not self._matches(version_id, raw):
            raise MalformedSourceError(
                f"清单 {version_id} 的 sha256 校验失败",
                context={"expected": self.expected_sha256.get(version_id)},
            )

        await self._write_cache(path, raw)
        return raw

    async def _read_cache(self, path: Path) -> Optional[bytes]:
        if not path.is_file():
            return None
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.warning(f"[缓存] 读取 {path} 失败: {e}")
            return None

    async def _write_cache(self, path: Path, raw: bytes) -> None:
        temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(raw)
            os.replace(temp_path, path)
        except OSError as e:
            logger.warning(f"[缓存] 写入 {path} 失败: {e}")
            try:
                temp_path.unlink()
            except OSError:
                pass

    async def close(self) -> None:
        await self.inner.close()
