"""
内容寻址存储

按摘要组织的本地缓存，目录结构: {root}/{algorithm}/{v[0:2]}/{v[2:4]}/{v}

写入先进入同目录下的 .part 临时文件，校验通过后才通过 rename 落入槽位，
因此槽位中的文件总是完整且已校验的。
"""

import os
import uuid
from pathlib import Path
from typing import AsyncIterable, Iterator, List, Optional, Tuple, Union

import aiofiles
from loguru import logger

from launchfetch.storage.verifier import CHUNK_SIZE, DigestHasher, FileVerifier
from launchfetch.exceptions import (
    DigestMismatchError,
    IoFailureError,
    NotPresentError,
    SizeMismatchError,
)
from launchfetch.models import Digest, DigestAlgorithm

TEMP_SUFFIX = ".part"


def _temp_path_for(target: Path, hidden: bool = False) -> Path:
    prefix = "." if hidden else ""
    return target.with_name(f"{prefix}{target.name}.{uuid.uuid4().hex}{TEMP_SUFFIX}")


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[清理] 无法删除临时文件 {path}: {e}")


class ContentStore:
    """内容寻址存储"""

    def __init__(self, root: Union[str, os.PathLike]):
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailureError(
                f"无法创建存储目录: {self.root}", context={"error": str(e)}
            ) from e

    def path_for(self, digest: Digest) -> Path:
        """摘要对应的存储槽位"""
        value = digest.value
        return self.root / digest.algorithm.value / value[:2] / value[2:4] / value

    def has(self, digest: Digest) -> bool:
        """是否已存在成功提交的内容"""
        return self.path_for(digest).is_file()

    async def commit(
        self,
        digest: Digest,
        chunks: AsyncIterable[bytes],
        expected_size: Optional[int] = None,
    ) -> Path:
        """
        流式写入并提交内容

        Args:
            digest: 预期摘要
            chunks: 异步字节块来源
            expected_size: 预期字节数，超出时立即中止

        Returns:
            存储槽位路径

        Raises:
            DigestMismatchError: 摘要不匹配，存储保持不变
            SizeMismatchError: 字节数与预期不符
            IoFailureError: 文件读写失败
        """
        target = self.path_for(digest)
        temp_path = _temp_path_for(target)
        hasher = DigestHasher(digest.algorithm)
        committed = False

        try:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in chunks:
                        if (
                            expected_size is not None
                            and hasher.size + len(chunk) > expected_size
                        ):
                            raise SizeMismatchError(
                                f"内容超出预期大小 {expected_size} 字节",
                                context={
                                    "digest": str(digest),
                                    "expected": expected_size,
                                    "received": hasher.size + len(chunk),
                                },
                            )
                        hasher.update(chunk)
                        await f.write(chunk)
            except OSError as e:
                raise IoFailureError(
                    f"写入临时文件失败: {e}",
                    context={"digest": str(digest), "path": str(temp_path)},
                ) from e

            if expected_size is not None and hasher.size != expected_size:
                raise SizeMismatchError(
                    f"内容大小不符: 预期 {expected_size}，实际 {hasher.size}",
                    context={
                        "digest": str(digest),
                        "expected": expected_size,
                        "received": hasher.size,
                    },
                )

            if not hasher.matches(digest):
                raise DigestMismatchError(
                    f"摘要不匹配: 预期 {digest.value}，实际 {hasher.hexdigest()}",
                    context={"expected": str(digest), "actual": hasher.hexdigest()},
                )

            try:
                os.replace(temp_path, target)
            except OSError as e:
                raise IoFailureError(
                    f"提交内容失败: {e}", context={"digest": str(digest)}
                ) from e

            committed = True
            logger.debug(f"[存储] 已提交 {digest} ({hasher.size} 字节)")
            return target
        finally:
            if not committed:
                _remove_quietly(temp_path)

    async def materialize(
        self, digest: Digest, destination: Union[str, os.PathLike]
    ) -> Path:
        """
        将存储内容复制到目标路径

        目标文件先写入同目录的临时文件，再原子替换。

        Raises:
            NotPresentError: 摘要尚未提交
            IoFailureError: 文件读写失败
        """
        source = self.path_for(digest)
        if not source.is_file():
            raise NotPresentError(
                f"存储中不存在 {digest}", context={"digest": str(digest)}
            )

        destination = Path(destination)
        temp_path = _temp_path_for(destination, hidden=True)
        done = False
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(source, "rb") as src:
                async with aiofiles.open(temp_path, "wb") as dst:
                    while True:
                        chunk = await src.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        await dst.write(chunk)
            os.replace(temp_path, destination)
            done = True
            return destination
        except OSError as e:
            raise IoFailureError(
                f"写入目标文件失败: {e}",
                context={"digest": str(digest), "destination": str(destination)},
            ) from e
        finally:
            if not done:
                _remove_quietly(temp_path)

    async def verify(self, digest: Digest) -> bool:
        """重新计算已存储内容的摘要"""
        return await FileVerifier.verify(self.path_for(digest), digest)

    def discard(self, digest: Digest) -> bool:
        """删除损坏的存储内容"""
        path = self.path_for(digest)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise IoFailureError(
                f"删除存储内容失败: {e}", context={"digest": str(digest)}
            ) from e
        logger.warning(f"[存储] 已移除 {digest}")
        return True

    def purge_temp(self) -> int:
        """删除遗留的临时文件，返回删除数量"""
        removed = 0
        for path in list(self.root.rglob(f"*{TEMP_SUFFIX}")):
            if path.is_file():
                _remove_quietly(path)
                removed += 1
        if removed:
            logger.info(f"[清理] 删除了 {removed} 个遗留的临时文件")
        return removed

    def iter_entries(self) -> Iterator[Digest]:
        """遍历所有已提交的摘要"""
        for algorithm in DigestAlgorithm:
            base = self.root / algorithm.value
            if not base.is_dir():
                continue
            for path in sorted(base.glob("*/*/*")):
                if not path.is_file() or path.name.endswith(TEMP_SUFFIX):
                    continue
                try:
                    yield Digest(algorithm, path.name)
                except ValueError:
                    logger.debug(f"[存储] 忽略无法识别的文件 {path}")

    async def audit(self, repair: bool = False) -> Tuple[int, List[Digest]]:
        """
        重新校验所有已提交的内容

        Args:
            repair: 是否删除校验失败的内容

        Returns:
            (校验数量, 校验失败的摘要列表)
        """
        checked = 0
        corrupt: List[Digest] = []
        for digest in list(self.iter_entries()):
            checked += 1
            if await self.verify(digest):
                continue
            logger.warning(f"[校验] {digest} 内容损坏")
            corrupt.append(digest)
            if repair:
                self.discard(digest)
        return checked, corrupt
