"""
LaunchFetch 下载层

包含任务队列、重试策略、协作式取消和下载调度器。
"""

from launchfetch.download.cancellation import CancellationToken
from launchfetch.download.queue import DownloadQueue, DownloadTask, Priority
from launchfetch.download.retry import (
    compute_backoff,
    is_retry_eligible,
    should_retry,
    terminal_outcome,
)
from launchfetch.download.scheduler import (
    ArtifactState,
    DownloadScheduler,
    DownloadStats,
)

__all__ = [
    "CancellationToken",
    "DownloadQueue",
    "DownloadTask",
    "Priority",
    "compute_backoff",
    "is_retry_eligible",
    "should_retry",
    "terminal_outcome",
    "ArtifactState",
    "DownloadScheduler",
    "DownloadStats",
]
