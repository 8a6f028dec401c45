"""
制品数据模型

定义摘要、制品描述符、下载结果和安装报告。
"""

import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DigestAlgorithm(Enum):
    """支持的摘要算法"""

    SHA1 = "sha1"
    SHA256 = "sha256"

    @property
    def hex_length(self) -> int:
        """十六进制摘要长度"""
        return 40 if self is DigestAlgorithm.SHA1 else 64


_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class Digest:
    """内容摘要（算法 + 十六进制值）"""

    algorithm: DigestAlgorithm
    value: str

    def __post_init__(self):
        value = self.value.lower()
        if len(value) != self.algorithm.hex_length or not set(value) <= _HEX_DIGITS:
            raise ValueError(f"无效的 {self.algorithm.value} 摘要: {self.value!r}")
        object.__setattr__(self, "value", value)

    @classmethod
    def parse(cls, text: str, algorithm: Optional[str] = None) -> "Digest":
        """
        解析十六进制摘要

        未指定算法时按长度推断：20 字节为 SHA1，32 字节为 SHA256。

        Raises:
            ValueError: 摘要格式无效
        """
        if not isinstance(text, str):
            raise ValueError(f"摘要必须是字符串: {text!r}")
        if algorithm is not None:
            if not isinstance(algorithm, str):
                raise ValueError(f"不支持的摘要算法: {algorithm!r}")
            try:
                algo = DigestAlgorithm(algorithm.lower())
            except ValueError:
                raise ValueError(f"不支持的摘要算法: {algorithm}") from None
            return cls(algo, text)

        for algo in DigestAlgorithm:
            if len(text) == algo.hex_length:
                return cls(algo, text)
        raise ValueError(f"无法根据长度推断摘要算法: {text!r}")

    def __str__(self) -> str:
        return f"{self.algorithm.value}:{self.value}"


@dataclass(frozen=True)
class ArtifactDescriptor:
    """
    已解析的制品描述符

    path 为相对于安装根目录的 POSIX 路径。
    """

    id: str
    url: str
    path: str
    digest: Digest
    size: Optional[int] = None
    # 规则由只读映射组成，不可哈希，只参与相等比较
    rules: Tuple[Dict[str, Any], ...] = field(default=(), hash=False)
    category: str = "artifact"
    extract_exclude: Tuple[str, ...] = ()

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class FetchOutcome(Enum):
    """单个制品的最终下载结果"""

    CACHE_HIT = "cache_hit"
    FETCHED = "fetched"
    VERIFICATION_FAILED = "verification_failed"
    SOURCE_UNAVAILABLE = "source_unavailable"
    SKIPPED = "skipped"

    @property
    def succeeded(self) -> bool:
        return self in (FetchOutcome.CACHE_HIT, FetchOutcome.FETCHED)


@dataclass(frozen=True)
class FetchResult:
    """调度器为每个制品产出的结果"""

    artifact_id: str
    outcome: FetchOutcome
    attempts: int = 0
    bytes_fetched: int = 0
    reason: Optional[str] = None


@dataclass
class InstallReport:
    """安装报告"""

    total: int = 0
    cache_hits: int = 0
    fetched: int = 0
    skipped: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)
    results: List[FetchResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[FetchResult]) -> "InstallReport":
        """根据调度结果汇总报告"""
        report = cls()
        report.extend(results)
        return report

    def extend(self, results: List[FetchResult]) -> None:
        """合并一批调度结果"""
        for result in results:
            self.total += 1
            self.results.append(result)
            if result.outcome is FetchOutcome.CACHE_HIT:
                self.cache_hits += 1
            elif result.outcome is FetchOutcome.FETCHED:
                self.fetched += 1
            elif result.outcome is FetchOutcome.SKIPPED:
                self.skipped += 1
                self.failed.append((result.artifact_id, result.reason or "skipped"))
            else:
                self.failed.append(
                    (result.artifact_id, result.reason or result.outcome.value)
                )

    @property
    def ok(self) -> bool:
        """是否所有制品都已就绪"""
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "cache_hits": self.cache_hits,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "failed": [
                {"artifact_id": artifact_id, "reason": reason}
                for artifact_id, reason in self.failed
            ],
        }
