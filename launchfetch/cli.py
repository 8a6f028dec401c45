"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
import signal
from pathlib import Path
from typing import Any, Dict, Optional

import click
import toml
import yaml
from loguru import logger

from launchfetch import __version__
from launchfetch.download import CancellationToken
from launchfetch.exceptions import ConfigParseError, LaunchFetchError
from launchfetch.logger import setup_logger
from launchfetch.models import InstallConfig
from launchfetch.orchestrator import InstallOrchestrator
from launchfetch.storage import ContentStore


def load_config(config_path: str) -> dict:
    """
    加载配置文件

    Raises:
        ConfigParseError: 文件不存在、格式不支持或内容无法解析
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigParseError(f"配置文件不存在: {config_path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            data = toml.load(config_path)
        elif suffix == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        else:
            raise ConfigParseError(f"不支持的配置文件格式: {suffix}")
    except (OSError, ValueError, toml.TomlDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"无法解析配置文件 {config_path}: {e}", context={"path": config_path}
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(f"配置文件顶层必须是表: {config_path}")
    return data


def build_config(config_path: Optional[str], **overrides: Any) -> InstallConfig:
    """读取配置文件并用命令行参数覆盖"""
    data: Dict[str, Any] = load_config(config_path) if config_path else {}

    environment = dict(data.get("environment") or {})
    for key in ("os", "arch", "os_version"):
        value = overrides.pop(key, None)
        if value:
            environment[key] = value
    features = overrides.pop("features", ())
    if features:
        environment["features"] = list(environment.get("features", [])) + list(features)
    data["environment"] = environment

    for key, value in overrides.items():
        if value is not None:
            data[key] = value
    return InstallConfig.from_dict(data)


def config_options(func):
    """install / resolve 共用的配置选项"""
    options = [
        click.option("-c", "--config", "config_path", type=click.Path(), help="配置文件 (toml/json/yaml)"),
        click.option("--manifests", "manifest_dir", type=click.Path(), help="本地清单目录"),
        click.option("--manifest-url", help="远程清单根地址"),
        click.option("--manifest-cache", "manifest_cache_dir", type=click.Path(), help="清单缓存目录"),
        click.option("--store", "store_dir", type=click.Path(), help="内容存储目录"),
        click.option("--install-dir", type=click.Path(), help="安装目录"),
        click.option("--os", "os_name", help="目标操作系统 (windows/linux/osx)"),
        click.option("--arch", help="目标架构 (x86_64/x86/arm64/arm32)"),
        click.option("--os-version", help="目标系统版本"),
        click.option("-f", "--feature", "features", multiple=True, help="启用的功能"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


async def run_install(
    config: InstallConfig, version_id: str, token: CancellationToken
):
    """异步运行安装"""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # Windows 事件循环不支持信号处理
        logger.debug("当前平台不支持 SIGINT 处理，Ctrl+C 将直接中断")
        handler_installed = False

    try:
        async with InstallOrchestrator.from_config(config) as orchestrator:
            return await orchestrator.install(
                version_id, config.environment.build(), token
            )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


async def run_resolve(config: InstallConfig, version_id: str):
    """异步运行解析"""
    async with InstallOrchestrator.from_config(config) as orchestrator:
        return await orchestrator.resolve(version_id, config.environment.build())


@click.group()
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    help="同时将完整日志写入文件（按 10 MB 轮转）",
)
@click.version_option(version=__version__)
def main(debug: bool, log_file: Optional[str]):
    """LaunchFetch - 游戏启动器制品解析与下载工具"""
    setup_logger(level="DEBUG" if debug else None, log_file=log_file)
    if debug:
        logger.debug("调试模式已启用")


@main.command()
@click.argument("version_id")
@config_options
@click.option("-j", "--concurrency", "max_concurrency", type=int, help="最大并发数")
@click.option("--no-assets", is_flag=True, help="不下载资源文件")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出安装报告")
@click.pass_context
def install(ctx, version_id: str, config_path, no_assets: bool, as_json: bool, **options):
    """安装指定版本"""
    try:
        config = build_config(
            config_path,
            os=options.pop("os_name"),
            include_assets=False if no_assets else None,
            **options,
        )
        token = CancellationToken()
        report = asyncio.run(run_install(config, version_id, token))
    except LaunchFetchError as e:
        logger.error(f"安装失败: {e}")
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        click.echo(
            f"共 {report.total} 个制品: {report.cache_hits} 个命中缓存, "
            f"{report.fetched} 个已下载, {len(report.failed)} 个失败 "
            f"(其中 {report.skipped} 个已取消)"
        )
        for artifact_id, reason in report.failed:
            click.echo(f"  ✗ {artifact_id}: {reason}")

    if not report.ok:
        ctx.exit(1)


@main.command()
@click.argument("version_id")
@config_options
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出")
def resolve(version_id: str, config_path, as_json: bool, **options):
    """解析指定版本的制品列表（不下载）"""
    try:
        config = build_config(config_path, os=options.pop("os_name"), **options)
        descriptors = asyncio.run(run_resolve(config, version_id))
    except LaunchFetchError as e:
        logger.error(f"解析失败: {e}")
        raise click.ClickException(str(e))

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "id": d.id,
                        "url": d.url,
                        "path": d.path,
                        "digest": str(d.digest),
                        "size": d.size,
                        "category": d.category,
                    }
                    for d in descriptors
                ],
                ensure_ascii=False,
                indent=2,
            )
        )
        return

    for d in descriptors:
        size = "-" if d.size is None else str(d.size)
        click.echo(f"{d.id}\t{d.path}\t{d.digest}\t{size}")


@main.command()
@click.option("--store", "store_dir", type=click.Path(), required=True, help="内容存储目录")
@click.option("--repair", is_flag=True, help="删除校验失败的内容")
@click.pass_context
def verify(ctx, store_dir: str, repair: bool):
    """重新校验内容存储"""
    try:
        checked, corrupt = asyncio.run(ContentStore(store_dir).audit(repair))
    except LaunchFetchError as e:
        raise click.ClickException(str(e))

    click.echo(f"已校验 {checked} 个文件，{len(corrupt)} 个损坏")
    for digest in corrupt:
        click.echo(f"  ✗ {digest}")
    if corrupt and not repair:
        ctx.exit(1)


@main.command()
@click.option("--store", "store_dir", type=click.Path(), required=True, help="内容存储目录")
def gc(store_dir: str):
    """清理内容存储中遗留的临时文件"""
    try:
        removed = ContentStore(store_dir).purge_temp()
    except LaunchFetchError as e:
        raise click.ClickException(str(e))
    click.echo(f"删除了 {removed} 个临时文件")


if __name__ == "__main__":
    main()
