"""
LaunchFetch 服务层

包含清单解析、条目解析、规则匹配和资源索引展开。
"""

from launchfetch.services.rules import RuleMatcher
from launchfetch.services.entries import EntryParser, MavenCoordinate, ParsedEntry
from launchfetch.services.manifest_resolver import ManifestResolver
from launchfetch.services.asset_index import load_asset_index, parse_asset_index

__all__ = [
    "RuleMatcher",
    "EntryParser",
    "MavenCoordinate",
    "ParsedEntry",
    "ManifestResolver",
    "load_asset_index",
    "parse_asset_index",
]
