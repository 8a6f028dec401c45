"""
LaunchFetch 数据模型包

包含版本定义、制品描述符、运行环境和配置模型。
"""

from launchfetch.models.artifact import (
    DigestAlgorithm,
    Digest,
    ArtifactDescriptor,
    FetchOutcome,
    FetchResult,
    InstallReport,
)
from launchfetch.models.environment import (
    OsName,
    Arch,
    Environment,
)
from launchfetch.models.version import (
    RawEntry,
    VersionDefinition,
)
from launchfetch.models.config import (
    RetryPolicy,
    EnvironmentConfig,
    InstallConfig,
)

__all__ = [
    # 制品模型
    "DigestAlgorithm",
    "Digest",
    "ArtifactDescriptor",
    "FetchOutcome",
    "FetchResult",
    "InstallReport",
    # 环境模型
    "OsName",
    "Arch",
    "Environment",
    # 版本模型
    "RawEntry",
    "VersionDefinition",
    # 配置模型
    "RetryPolicy",
    "EnvironmentConfig",
    "InstallConfig",
]
