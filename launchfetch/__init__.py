"""
LaunchFetch - 游戏启动器制品解析与下载引擎

解析带继承关系的版本清单，得到去重后的制品集合，
并以流式校验、内容寻址缓存的方式下载和安装这些制品。
"""

__version__ = "0.1.0"

from launchfetch.exceptions import LaunchFetchError
from launchfetch.models import (
    ArtifactDescriptor,
    Digest,
    Environment,
    FetchOutcome,
    FetchResult,
    InstallConfig,
    InstallReport,
    RetryPolicy,
    VersionDefinition,
)
from launchfetch.services import ManifestResolver
from launchfetch.storage import ContentStore
from launchfetch.download import CancellationToken, DownloadScheduler
from launchfetch.orchestrator import InstallOrchestrator

__all__ = [
    "__version__",
    "LaunchFetchError",
    "ArtifactDescriptor",
    "Digest",
    "Environment",
    "FetchOutcome",
    "FetchResult",
    "InstallConfig",
    "InstallReport",
    "RetryPolicy",
    "VersionDefinition",
    "ManifestResolver",
    "ContentStore",
    "CancellationToken",
    "DownloadScheduler",
    "InstallOrchestrator",
]
