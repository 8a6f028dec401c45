"""
下载调度器

固定数量的工作协程从共享队列中取任务，流式校验后提交到内容存储，
再复制到安装目录。单个制品的失败不会影响其他制品。
"""

import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

from loguru import logger

from launchfetch.download.cancellation import CancellationToken
from launchfetch.download.queue import DownloadQueue
from launchfetch.download.retry import compute_backoff, should_retry, terminal_outcome
from launchfetch.exceptions import (
    FetchTimeoutError,
    NotPresentError,
    SizeMismatchError,
)
from launchfetch.models import (
    ArtifactDescriptor,
    FetchOutcome,
    FetchResult,
    RetryPolicy,
)
from launchfetch.sources.base import ByteSource
from launchfetch.storage import ContentStore


class ArtifactState(Enum):
    """单个制品的状态"""

    PENDING = "pending"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    FETCHING = "fetching"
    STREAMING_VERIFY = "streaming_verify"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    cache_hits: int = 0
    fetched: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_downloaded: int = 0


class DownloadScheduler:
    """下载调度器"""

    def __init__(
        self,
        store: ContentStore,
        byte_source: ByteSource,
        install_root: Union[str, os.PathLike],
        progress_callback: Optional[Callable[[FetchResult], None]] = None,
    ):
        self.store = store
        self.byte_source = byte_source
        self.install_root = Path(install_root)
        self.stats = DownloadStats()
        self._progress_callback = progress_callback
        self._states: Dict[str, ArtifactState] = {}

    def state_of(self, artifact_id: str) -> Optional[ArtifactState]:
        """获取制品当前状态"""
        return self._states.get(artifact_id)

    def destination_for(self, descriptor: ArtifactDescriptor) -> Path:
        return self.install_root.joinpath(*descriptor.path.split("/"))

    async def run(
        self,
        descriptors: Iterable[ArtifactDescriptor],
        max_concurrency: int,
        retry_policy: RetryPolicy,
        token: Optional[CancellationToken] = None,
    ) -> List[FetchResult]:
        """
        下载一组制品

        Args:
            descriptors: 制品描述符，相同 id 只处理一次
            max_concurrency: 最大并发数
            retry_policy: 重试策略
            token: 取消令牌，取消后未分发的制品记为 SKIPPED

        Returns:
            每个制品一个结果，顺序不保证与输入一致
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency 必须大于 0")

        queue = DownloadQueue()
        for descriptor in descriptors:
            if not queue.put(descriptor):
                logger.debug(f"[队列] 忽略重复的制品 {descriptor.id}")

        self.stats = DownloadStats(total=len(queue))
        self._states = {}
        results: Dict[str, FetchResult] = {}

        worker_count = min(max_concurrency, len(queue))
        logger.info(
            f"[启动] 开始处理 {len(queue)} 个制品，最大并发数: {max_concurrency}"
        )
        workers = [
            asyncio.create_task(
                self._worker(queue, retry_policy, token, results),
                name=f"downloader-{i}",
            )
            for i in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()

        for task in queue.drain():
            self._record(
                results,
                FetchResult(
                    task.artifact_id, FetchOutcome.SKIPPED, reason="已取消，未开始下载"
                ),
            )
        if self.stats.skipped:
            logger.warning(f"[取消] {self.stats.skipped} 个制品未下载")

        logger.info(
            f"[完成] 命中缓存 {self.stats.cache_hits}，下载 {self.stats.fetched}，"
            f"失败 {self.stats.failed}，跳过 {self.stats.skipped}"
        )
        return list(results.values())

    async def _worker(
        self,
        queue: DownloadQueue,
        policy: RetryPolicy,
        token: Optional[CancellationToken],
        results: Dict[str, FetchResult],
    ) -> None:
        """下载工作协程"""
        while token is None or not token.is_cancelled():
            task = queue.get_nowait()
            if task is None:
                break
            descriptor = task.descriptor
            try:
                result = await self._process(descriptor, policy)
            except Exception as e:
                # 工作协程不应该因为单个任务失败而退出
                logger.exception(f"[错误] 处理 '{descriptor.id}' 时发生意外: {e}")
                self._states[descriptor.id] = ArtifactState.FAILED
                result = FetchResult(
                    descriptor.id, FetchOutcome.SOURCE_UNAVAILABLE, reason=str(e)
                )
            finally:
                queue.task_done()
            self._record(results, result)

    def _record(self, results: Dict[str, FetchResult], result: FetchResult) -> None:
        results[result.artifact_id] = result
        if result.outcome is FetchOutcome.CACHE_HIT:
            self.stats.cache_hits += 1
        elif result.outcome is FetchOutcome.FETCHED:
            self.stats.fetched += 1
        elif result.outcome is FetchOutcome.SKIPPED:
            self.stats.skipped += 1
        else:
            self.stats.failed += 1
        if self._progress_callback:
            try:
                self._progress_callback(result)
            except Exception as e:
                # 回调出错不影响下载
                logger.exception(f"[错误] 进度回调处理 '{result.artifact_id}' 时出错: {e}")

    async def _process(
        self, descriptor: ArtifactDescriptor, policy: RetryPolicy
    ) -> FetchResult:
        """执行单个制品的状态机"""
        destination = self.destination_for(descriptor)
        attempt = 0
        fetched_bytes = 0
        committed = False

        while True:
            attempt += 1
            self._states[descriptor.id] = ArtifactState.CACHE_CHECK
            try:
                if self.store.has(descriptor.digest):
                    await self.store.materialize(descriptor.digest, destination)
                    if committed:
                        self._states[descriptor.id] = ArtifactState.COMMITTED
                        return self._success(
                            descriptor, FetchOutcome.FETCHED, attempt, fetched_bytes
                        )
                    self._states[descriptor.id] = ArtifactState.CACHE_HIT
                    logger.info(f"[跳过] '{descriptor.filename}' 已存在且校验通过")
                    return self._success(descriptor, FetchOutcome.CACHE_HIT, attempt, 0)

                self._states[descriptor.id] = ArtifactState.FETCHING
                fetched_bytes = await self._attempt(descriptor, policy)
                committed = True
                await self.store.materialize(descriptor.digest, destination)
                self._states[descriptor.id] = ArtifactState.COMMITTED
                logger.success(f"[完成] '{descriptor.filename}' 下载完成")
                return self._success(
                    descriptor, FetchOutcome.FETCHED, attempt, fetched_bytes
                )
            except NotPresentError as e:
                self._states[descriptor.id] = ArtifactState.FAILED
                logger.error(f"[错误] '{descriptor.id}' 存储状态异常: {e}")
                return FetchResult(
                    descriptor.id,
                    FetchOutcome.VERIFICATION_FAILED,
                    attempts=attempt,
                    reason=str(e),
                )
            except Exception as e:
                self._states[descriptor.id] = ArtifactState.FAILED
                if not should_retry(attempt, e, policy):
                    return self._failure(descriptor, e, attempt, policy)

                delay = compute_backoff(attempt, policy)
                logger.warning(
                    f"[重试] 下载 '{descriptor.filename}' 失败 (第 {attempt} 次): {e}. "
                    f"{delay:.1f}s 后重试..."
                )
                self._states[descriptor.id] = ArtifactState.PENDING
                await asyncio.sleep(delay)

    async def _attempt(self, descriptor: ArtifactDescriptor, policy: RetryPolicy) -> int:
        """单次下载尝试，受超时限制"""
        if policy.attempt_timeout is None:
            return await self._fetch_and_commit(descriptor)
        try:
            return await asyncio.wait_for(
                self._fetch_and_commit(descriptor),
                timeout=policy.attempt_timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(
                f"下载超时 ({policy.attempt_timeout}s)",
                context={"url": descriptor.url},
            ) from e

    async def _fetch_and_commit(self, descriptor: ArtifactDescriptor) -> int:
        logger.info(f"[开始] 下载: {descriptor.filename}")
        received = 0

        async with self.byte_source.open(descriptor.url) as stream:
            if (
                descriptor.size is not None
                and stream.length is not None
                and stream.length != descriptor.size
            ):
                raise SizeMismatchError(
                    f"大小不符: 预期 {descriptor.size}，来源声明 {stream.length}",
                    context={"url": descriptor.url},
                )

            async def counted() -> AsyncIterator[bytes]:
                nonlocal received
                async for chunk in stream:
                    received += len(chunk)
                    self.stats.bytes_downloaded += len(chunk)
                    yield chunk

            self._states[descriptor.id] = ArtifactState.STREAMING_VERIFY
            await self.store.commit(descriptor.digest, counted(), descriptor.size)

        return received

    def _success(
        self,
        descriptor: ArtifactDescriptor,
        outcome: FetchOutcome,
        attempt: int,
        fetched_bytes: int,
    ) -> FetchResult:
        return FetchResult(
            descriptor.id, outcome, attempts=attempt, bytes_fetched=fetched_bytes
        )

    def _failure(
        self,
        descriptor: ArtifactDescriptor,
        error: BaseException,
        attempt: int,
        policy: RetryPolicy,
    ) -> FetchResult:
        outcome = terminal_outcome(error)
        logger.error(
            f"[错误] 下载 '{descriptor.filename}' 最终失败 ({attempt}/{policy.max_attempts}): {error}"
        )
        return FetchResult(
            descriptor.id, outcome, attempts=attempt, reason=str(error)
        )

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats
