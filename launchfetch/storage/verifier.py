"""
摘要校验

流式计算 SHA1 / SHA256，无需将整个文件读入内存。
"""

import hashlib
import hmac
import os
from typing import Optional, Union

import aiofiles

from launchfetch.models import Digest, DigestAlgorithm

CHUNK_SIZE = 64 * 1024


class DigestHasher:
    """增量摘要计算器"""

    def __init__(self, algorithm: DigestAlgorithm):
        self.algorithm = algorithm
        self._hash = hashlib.new(algorithm.value)
        self.size = 0

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)
        self.size += len(chunk)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def digest(self) -> Digest:
        return Digest(self.algorithm, self.hexdigest())

    def matches(self, expected: Digest) -> bool:
        """比较摘要，算法不同时视为不匹配"""
        if expected.algorithm is not self.algorithm:
            return False
        return hmac.compare_digest(self.hexdigest(), expected.value)


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_digest(
        file_path: Union[str, os.PathLike],
        algorithm: DigestAlgorithm = DigestAlgorithm.SHA1,
    ) -> Optional[Digest]:
        """
        计算文件摘要

        Args:
            file_path: 文件路径
            algorithm: 摘要算法

        Returns:
            摘要，文件不存在或无法读取时返回 None
        """
        if not os.path.isfile(file_path):
            return None

        hasher = DigestHasher(algorithm)
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(CHUNK_SIZE)
                    if not data:
                        break
                    hasher.update(data)
            return hasher.digest()
        except OSError:
            return None

    @staticmethod
    async def verify(file_path: Union[str, os.PathLike], expected: Digest) -> bool:
        """校验文件摘要是否匹配"""
        current = await FileVerifier.calc_digest(file_path, expected.algorithm)
        if current is None:
            return False
        return hmac.compare_digest(current.value, expected.value)
