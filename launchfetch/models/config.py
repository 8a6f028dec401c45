"""
配置模型

所有策略（并发、重试、退避、超时）均以不可变值传入，运行期间不读取全局配置。
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from launchfetch.exceptions import ConfigValidationError
from launchfetch.models.environment import Environment

DEFAULT_ASSET_BASE_URL = "https://resources.download.minecraft.net"


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略"""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    attempt_timeout: Optional[float] = 60.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigValidationError("retry.max_attempts 必须大于 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigValidationError("retry 延迟不能为负数")
        if self.multiplier < 1:
            raise ConfigValidationError("retry.multiplier 不能小于 1")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ConfigValidationError("retry.attempt_timeout 必须大于 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RetryPolicy":
        try:
            return cls(
                max_attempts=int(data.get("max_attempts", 3)),
                base_delay=float(data.get("base_delay", 1.0)),
                multiplier=float(data.get("multiplier", 2.0)),
                max_delay=float(data.get("max_delay", 30.0)),
                attempt_timeout=(
                    None
                    if data.get("attempt_timeout", 60.0) is None
                    else float(data.get("attempt_timeout", 60.0))
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"retry 配置无效: {e}") from e


@dataclass(frozen=True)
class EnvironmentConfig:
    """环境配置，未指定的字段使用当前主机的值"""

    os: Optional[str] = None
    arch: Optional[str] = None
    os_version: Optional[str] = None
    features: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnvironmentConfig":
        features = data.get("features", [])
        if isinstance(features, str):
            features = [features]
        if not isinstance(features, (list, tuple)):
            raise ConfigValidationError("environment.features 必须是列表")
        return cls(
            os=data.get("os"),
            arch=data.get("arch"),
            os_version=data.get("os_version"),
            features=list(features),
        )

    def build(self) -> Environment:
        """生成运行环境"""
        try:
            host = Environment.current()
            return Environment.create(
                os_name=self.os or host.os_name.value,
                arch=self.arch or host.arch.value,
                os_version=self.os_version or host.os_version,
                features=self.features,
            )
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e


@dataclass(frozen=True)
class InstallConfig:
    """安装配置"""

    store_dir: Path
    install_dir: Path
    manifest_dir: Optional[Path] = None
    manifest_url: Optional[str] = None
    manifest_cache_dir: Optional[Path] = None
    max_concurrency: int = 8
    include_assets: bool = True
    asset_base_url: str = DEFAULT_ASSET_BASE_URL
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    environment: EnvironmentConfig = field(default_factory=EnvironmentConfig)

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ConfigValidationError("max_concurrency 必须大于 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstallConfig":
        """
        从配置字典构建

        Raises:
            ConfigValidationError: 缺少必填项或取值无效
        """
        missing = [key for key in ("store_dir", "install_dir") if not data.get(key)]
        if missing:
            raise ConfigValidationError(
                f"缺少必填配置项: {', '.join(missing)}",
                context={"missing": missing},
            )

        retry = data.get("retry", {})
        environment = data.get("environment", {})
        if not isinstance(retry, Mapping) or not isinstance(environment, Mapping):
            raise ConfigValidationError("retry 与 environment 必须是表")

        try:
            max_concurrency = int(data.get("max_concurrency", 8))
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"max_concurrency 无效: {e}") from e

        manifest_dir = data.get("manifest_dir")
        cache_dir = data.get("manifest_cache_dir")
        return cls(
            store_dir=Path(data["store_dir"]),
            install_dir=Path(data["install_dir"]),
            manifest_dir=Path(manifest_dir) if manifest_dir else None,
            manifest_url=data.get("manifest_url"),
            manifest_cache_dir=Path(cache_dir) if cache_dir else None,
            max_concurrency=max_concurrency,
            include_assets=bool(data.get("include_assets", True)),
            asset_base_url=str(data.get("asset_base_url", DEFAULT_ASSET_BASE_URL)),
            retry=RetryPolicy.from_dict(retry),
            environment=EnvironmentConfig.from_dict(environment),
        )

    def merged(self, **overrides: Any) -> "InstallConfig":
        """返回覆盖了部分字段的新配置，忽略值为 None 的项"""
        values: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)
