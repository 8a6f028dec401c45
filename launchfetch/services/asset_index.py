"""
资源索引展开

将资源索引 JSON 中的 objects 转换为按哈希寻址的资源制品。
"""

import json
import os
from collections.abc import Mapping
from typing import Any, Dict, List, Union

import aiofiles

from launchfetch.exceptions import MalformedSourceError
from launchfetch.models import ArtifactDescriptor, Digest


def parse_asset_index(data: Any, base_url: str) -> List[ArtifactDescriptor]:
    """
    解析资源索引

    Args:
        data: 索引 JSON，形如 {"objects": {name: {"hash": ..., "size": ...}}}
        base_url: 资源下载根地址

    Returns:
        资源制品列表，同一哈希只出现一次

    Raises:
        MalformedSourceError: 索引结构无效
    """
    if not isinstance(data, Mapping) or not isinstance(data.get("objects"), Mapping):
        raise MalformedSourceError("资源索引缺少 objects 字段")

    base_url = base_url.rstrip("/")
    descriptors: Dict[str, ArtifactDescriptor] = {}
    for name, obj in data["objects"].items():
        if not isinstance(obj, Mapping):
            raise MalformedSourceError(f"资源 {name} 的描述无效")
        try:
            digest = Digest.parse(obj.get("hash"), "sha1")
        except ValueError as e:
            raise MalformedSourceError(f"资源 {name} 的哈希无效: {e}") from e
        size = obj.get("size")
        if size is not None and (not isinstance(size, int) or size < 0):
            raise MalformedSourceError(f"资源 {name} 的大小无效: {size!r}")

        value = digest.value
        if value in descriptors:
            continue
        descriptors[value] = ArtifactDescriptor(
            id=f"asset:{value}",
            url=f"{base_url}/{value[:2]}/{value}",
            path=f"assets/objects/{value[:2]}/{value}",
            digest=digest,
            size=size,
            category="asset",
        )
    return list(descriptors.values())


async def load_asset_index(
    path: Union[str, os.PathLike], base_url: str
) -> List[ArtifactDescriptor]:
    """读取本地资源索引文件并展开"""
    try:
        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()
    except OSError as e:
        raise MalformedSourceError(f"无法读取资源索引 {path}: {e}") from e

    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedSourceError(f"资源索引不是有效的 JSON: {e}") from e
    return parse_asset_index(data, base_url)
