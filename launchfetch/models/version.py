"""
版本定义模型

一个版本清单节点：id、可选的父版本、有序的原始制品条目以及透传的元数据。
"""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional, Tuple, Union

from launchfetch.exceptions import MalformedSourceError


class RawEntry(NamedTuple):
    """未经解析的清单条目"""

    kind: str  # client, asset_index, main_jar, library, maven_file, artifact
    data: Mapping[str, Any]


# 作为条目处理的顶层字段，其余字段作为元数据透传
_ENTRY_KEYS = (
    "downloads",
    "assetIndex",
    "mainJar",
    "libraries",
    "mavenFiles",
    "artifacts",
)
_PARENT_KEYS = ("inheritsFrom", "parent")
_LIST_KEYS = (
    ("libraries", "library"),
    ("mavenFiles", "maven_file"),
    ("artifacts", "artifact"),
)


def _freeze(value: Any) -> Any:
    """递归冻结 JSON 值"""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class VersionDefinition:
    """版本定义，加载后只读"""

    id: str
    parent_id: Optional[str] = None
    entries: Tuple[RawEntry, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Any) -> "VersionDefinition":
        """
        从清单 JSON 对象构建版本定义

        Raises:
            MalformedSourceError: 清单结构无效
        """
        if not isinstance(data, dict):
            raise MalformedSourceError("版本清单必须是 JSON 对象")

        version_id = data.get("id")
        if not isinstance(version_id, str) or not version_id:
            raise MalformedSourceError("版本清单缺少 id 字段")

        parent_id = None
        for key in _PARENT_KEYS:
            if data.get(key) is not None:
                parent_id = data[key]
                break
        if parent_id is not None and not isinstance(parent_id, str):
            raise MalformedSourceError(
                f"版本 {version_id} 的父版本必须是字符串",
                context={"version": version_id},
            )

        entries = []

        downloads = data.get("downloads") or {}
        if not isinstance(downloads, dict):
            raise MalformedSourceError(
                f"版本 {version_id} 的 downloads 必须是对象",
                context={"version": version_id},
            )
        if downloads.get("client") is not None:
            entries.append(RawEntry("client", _freeze(downloads["client"])))

        if data.get("assetIndex") is not None:
            entries.append(RawEntry("asset_index", _freeze(data["assetIndex"])))

        if data.get("mainJar") is not None:
            entries.append(RawEntry("main_jar", _freeze(data["mainJar"])))

        for key, kind in _LIST_KEYS:
            items = data.get(key) or []
            if not isinstance(items, list):
                raise MalformedSourceError(
                    f"版本 {version_id} 的 {key} 必须是列表",
                    context={"version": version_id},
                )
            entries.extend(RawEntry(kind, _freeze(item)) for item in items)

        metadata = {
            k: v
            for k, v in data.items()
            if k not in _ENTRY_KEYS and k not in _PARENT_KEYS and k != "id"
        }

        return cls(
            id=version_id,
            parent_id=parent_id,
            entries=tuple(entries),
            metadata=_freeze(metadata),
        )

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "VersionDefinition":
        """从 JSON 文本构建版本定义"""
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise MalformedSourceError(f"版本清单不是有效的 JSON: {e}") from e
        return cls.from_dict(data)
