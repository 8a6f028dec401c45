"""
主协调器

串联清单解析、内容存储和下载调度，完成一次版本安装。
"""

from typing import Callable, List, Optional

from loguru import logger

from launchfetch.download import CancellationToken, DownloadScheduler
from launchfetch.exceptions import ConfigValidationError, MalformedSourceError
from launchfetch.models import (
    ArtifactDescriptor,
    Environment,
    FetchResult,
    InstallConfig,
    InstallReport,
)
from launchfetch.services import ManifestResolver, load_asset_index
from launchfetch.sources import (
    ByteSource,
    CachedManifestSource,
    DirectoryManifestSource,
    HttpManifestSource,
    ManifestSource,
    RoutingByteSource,
)
from launchfetch.storage import ContentStore


class InstallOrchestrator:
    """LaunchFetch 主协调器"""

    def __init__(
        self,
        manifest_source: ManifestSource,
        byte_source: ByteSource,
        config: InstallConfig,
        progress_callback: Optional[Callable[[FetchResult], None]] = None,
    ):
        self.manifest_source = manifest_source
        self.byte_source = byte_source
        self.config = config
        self.store = ContentStore(config.store_dir)
        self.scheduler = DownloadScheduler(
            self.store,
            byte_source,
            config.install_dir,
            progress_callback=progress_callback,
        )

    @classmethod
    def from_config(
        cls,
        config: InstallConfig,
        progress_callback: Optional[Callable[[FetchResult], None]] = None,
    ) -> "InstallOrchestrator":
        """
        根据配置创建来源并构建协调器

        Raises:
            ConfigValidationError: 未配置清单来源
        """
        manifest_source: ManifestSource
        if config.manifest_dir is not None:
            manifest_source = DirectoryManifestSource(config.manifest_dir)
        elif config.manifest_url:
            manifest_source = HttpManifestSource(config.manifest_url)
        else:
            raise ConfigValidationError("请配置 manifest_dir 或 manifest_url")

        if config.manifest_cache_dir is not None:
            manifest_source = CachedManifestSource(
                manifest_source, config.manifest_cache_dir
            )
        return cls(manifest_source, RoutingByteSource(), config, progress_callback)

    async def resolve(
        self, root_id: str, environment: Environment
    ) -> List[ArtifactDescriptor]:
        """加载继承链并解析出制品列表"""
        resolver = await ManifestResolver.from_source(self.manifest_source, root_id)
        return resolver.resolve(root_id, environment)

    async def install(
        self,
        root_id: str,
        environment: Environment,
        token: Optional[CancellationToken] = None,
    ) -> InstallReport:
        """
        安装一个版本

        解析错误直接抛出，不产生部分报告；单个制品的失败记录在报告中。

        Raises:
            ResolutionError: 继承链或条目无效
            SourceError: 清单无法获取
        """
        logger.info(f"[安装] 开始安装 {root_id} ({environment.platform_key})")
        descriptors = await self.resolve(root_id, environment)
        self.store.purge_temp()

        results = await self.scheduler.run(
            descriptors,
            self.config.max_concurrency,
            self.config.retry,
            token,
        )
        report = InstallReport.from_results(results)

        if self.config.include_assets:
            await self._install_assets(descriptors, results, report, token)

        if report.ok:
            logger.success(
                f"[完成] {root_id} 安装完成: {report.cache_hits} 个命中缓存, "
                f"{report.fetched} 个已下载"
            )
        else:
            logger.warning(
                f"[完成] {root_id} 安装结束，{len(report.failed)} 个制品未就绪"
            )
        return report

    async def _install_assets(
        self,
        descriptors: List[ArtifactDescriptor],
        results: List[FetchResult],
        report: InstallReport,
        token: Optional[CancellationToken],
    ) -> None:
        """展开资源索引并下载资源文件"""
        index = next((d for d in descriptors if d.category == "asset_index"), None)
        if index is None:
            return
        if token is not None and token.is_cancelled():
            return
        outcome = next(
            (r.outcome for r in results if r.artifact_id == index.id), None
        )
        if outcome is None or not outcome.succeeded:
            logger.warning("[资源] 资源索引不可用，跳过资源下载")
            return

        try:
            assets = await load_asset_index(
                self.store.path_for(index.digest), self.config.asset_base_url
            )
        except MalformedSourceError as e:
            logger.error(f"[错误] 资源索引无效: {e}")
            report.failed.append((index.id, str(e)))
            return

        logger.info(f"[资源] 共 {len(assets)} 个资源文件")
        asset_results = await self.scheduler.run(
            assets,
            self.config.max_concurrency,
            self.config.retry,
            token,
        )
        report.extend(asset_results)

    async def close(self):
        """关闭来源"""
        await self.manifest_source.close()
        await self.byte_source.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
