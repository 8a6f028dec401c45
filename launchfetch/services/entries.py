"""
清单条目解析

将原始条目（客户端、资源索引、依赖库、主 jar、Maven 文件、通用制品）
转换为制品描述符。
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, List, NamedTuple, Optional, Tuple

from launchfetch.exceptions import MalformedEntryError
from launchfetch.models import ArtifactDescriptor, Digest, Environment, RawEntry

LIBRARY_DIR = "libraries"
MAIN_JAR_ID = "main-jar"
MAVEN_FILE_PREFIX = "maven-file:"


class ParsedEntry(NamedTuple):
    """解析后的条目，一个条目可能展开为多个制品（如依赖库及其 natives）"""

    logical_id: str
    rules: Tuple[Any, ...]
    descriptors: Tuple[ArtifactDescriptor, ...]


@dataclass(frozen=True)
class MavenCoordinate:
    """Maven 坐标 group:artifact:version[:classifier][@extension]"""

    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None
    extension: str = "jar"

    @classmethod
    def parse(cls, name: str) -> "MavenCoordinate":
        if not isinstance(name, str):
            raise MalformedEntryError(f"无效的 Maven 坐标: {name!r}")
        coordinate, _, extension = name.partition("@")
        parts = coordinate.split(":")
        if len(parts) not in (3, 4) or not all(parts):
            raise MalformedEntryError(f"无效的 Maven 坐标: {name!r}")
        return cls(
            group=parts[0],
            artifact=parts[1],
            version=parts[2],
            classifier=parts[3] if len(parts) == 4 else None,
            extension=extension or "jar",
        )

    @property
    def key(self) -> str:
        """不含版本号的标识，子版本升级依赖库版本时据此覆盖父版本条目"""
        if self.classifier:
            return f"{self.group}:{self.artifact}:{self.classifier}"
        return f"{self.group}:{self.artifact}"

    def with_classifier(self, classifier: str) -> "MavenCoordinate":
        return MavenCoordinate(
            self.group, self.artifact, self.version, classifier, self.extension
        )

    @property
    def path(self) -> str:
        suffix = f"-{self.classifier}" if self.classifier else ""
        return "/".join(
            [
                *self.group.split("."),
                self.artifact,
                self.version,
                f"{self.artifact}-{self.version}{suffix}.{self.extension}",
            ]
        )


def safe_relative_path(path: Any) -> str:
    """
    校验并规范化相对路径

    Raises:
        MalformedEntryError: 绝对路径、包含 .. 或为空
    """
    if not isinstance(path, str) or not path.strip():
        raise MalformedEntryError(f"无效的目标路径: {path!r}")
    normalized = path.replace("\\", "/")
    pure = PurePosixPath(normalized)
    if pure.is_absolute() or (len(normalized) > 1 and normalized[1] == ":"):
        raise MalformedEntryError(f"目标路径不能是绝对路径: {path!r}")
    parts = [part for part in pure.parts if part != "."]
    if not parts or ".." in parts:
        raise MalformedEntryError(f"目标路径不安全: {path!r}")
    return "/".join(parts)


def parse_digest(data: Mapping, context: str) -> Digest:
    """从条目中读取摘要，优先 sha256"""
    try:
        if data.get("sha256"):
            return Digest.parse(data["sha256"], "sha256")
        if data.get("sha1"):
            return Digest.parse(data["sha1"], "sha1")
        digest = data.get("digest") or data.get("hash")
        if isinstance(digest, Mapping):
            return Digest.parse(digest.get("value"), digest.get("algorithm") or None)
        if isinstance(digest, str):
            return Digest.parse(digest)
    except ValueError as e:
        raise MalformedEntryError(f"{context}: {e}") from e
    raise MalformedEntryError(f"{context}: 缺少摘要")


def parse_size(data: Mapping, context: str) -> Optional[int]:
    size = data.get("size")
    if size is None:
        return None
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise MalformedEntryError(f"{context}: 无效的大小 {size!r}")
    return size


def _require_url(data: Mapping, context: str) -> str:
    url = data.get("url")
    if not isinstance(url, str) or not url:
        raise MalformedEntryError(f"{context}: 缺少 url")
    return url


def _rules_of(data: Mapping) -> Tuple[Any, ...]:
    rules = data.get("rules") or ()
    if isinstance(rules, (str, bytes)) or not isinstance(rules, Sequence):
        raise MalformedEntryError(f"rules 必须是列表: {rules!r}")
    return tuple(rules)


class EntryParser:
    """条目解析器"""

    def __init__(self, environment: Environment):
        self.environment = environment

    def parse(self, entry: RawEntry, version_id: str) -> ParsedEntry:
        """
        解析单个原始条目

        Raises:
            MalformedEntryError: 条目格式无效
        """
        if not isinstance(entry.data, Mapping):
            raise MalformedEntryError(
                f"版本 {version_id} 的 {entry.kind} 条目必须是对象",
                context={"version": version_id},
            )
        handler = getattr(self, f"_parse_{entry.kind}", None)
        if handler is None:
            raise MalformedEntryError(f"未知的条目类型: {entry.kind}")
        try:
            return handler(entry.data, version_id)
        except MalformedEntryError as e:
            e.context.setdefault("version", version_id)
            raise

    def _parse_client(self, data: Mapping, version_id: str) -> ParsedEntry:
        context = f"版本 {version_id} 的客户端"
        descriptor = ArtifactDescriptor(
            id="client",
            url=_require_url(data, context),
            path=safe_relative_path(f"versions/{version_id}/{version_id}.jar"),
            digest=parse_digest(data, context),
            size=parse_size(data, context),
            category="client",
        )
        return ParsedEntry("client", (), (descriptor,))

    def _parse_asset_index(self, data: Mapping, version_id: str) -> ParsedEntry:
        context = f"版本 {version_id} 的资源索引"
        index_id = data.get("id")
        if not isinstance(index_id, str) or not index_id:
            raise MalformedEntryError(f"{context}: 缺少 id")
        descriptor = ArtifactDescriptor(
            id="asset-index",
            url=_require_url(data, context),
            path=safe_relative_path(f"assets/indexes/{index_id}.json"),
            digest=parse_digest(data, context),
            size=parse_size(data, context),
            category="asset_index",
        )
        return ParsedEntry("asset-index", (), (descriptor,))

    def _parse_artifact(self, data: Mapping, version_id: str) -> ParsedEntry:
        artifact_id = data.get("id")
        if not isinstance(artifact_id, str) or not artifact_id:
            raise MalformedEntryError(f"版本 {version_id} 的制品缺少 id")
        context = f"制品 {artifact_id}"
        rules = _rules_of(data)
        descriptor = ArtifactDescriptor(
            id=artifact_id,
            url=_require_url(data, context),
            path=safe_relative_path(data.get("path")),
            digest=parse_digest(data, context),
            size=parse_size(data, context),
            rules=rules,
            category="artifact",
        )
        return ParsedEntry(artifact_id, rules, (descriptor,))

    def _parse_library(self, data: Mapping, version_id: str) -> ParsedEntry:
        return self._library_entry(data, "library")

    def _parse_main_jar(self, data: Mapping, version_id: str) -> ParsedEntry:
        """主 jar（mainJar），子版本的主 jar 替换父版本的"""
        return self._library_entry(data, "main_jar", logical_id=MAIN_JAR_ID)

    def _parse_maven_file(self, data: Mapping, version_id: str) -> ParsedEntry:
        """Forge/NeoForge 安装器使用的 Maven 文件（mavenFiles），与依赖库分开折叠"""
        coordinate = MavenCoordinate.parse(data.get("name"))
        return self._library_entry(
            data, "maven_file", logical_id=f"{MAVEN_FILE_PREFIX}{coordinate.key}"
        )

    def _library_entry(
        self, data: Mapping, category: str, logical_id: Optional[str] = None
    ) -> ParsedEntry:
        coordinate = MavenCoordinate.parse(data.get("name"))
        if logical_id is None:
            explicit_id = data.get("id")
            if explicit_id is not None and (
                not isinstance(explicit_id, str) or not explicit_id
            ):
                raise MalformedEntryError(
                    f"依赖库 {data.get('name')}: 无效的 id {explicit_id!r}"
                )
            logical_id = explicit_id or coordinate.key
        context = f"依赖库 {data.get('name')}"
        rules = _rules_of(data)
        descriptors: List[ArtifactDescriptor] = []

        downloads = data.get("downloads")
        if downloads is not None:
            if not isinstance(downloads, Mapping):
                raise MalformedEntryError(f"{context}: downloads 必须是对象")
            artifact = downloads.get("artifact")
            if artifact is not None:
                descriptors.append(
                    self._library_download(
                        logical_id, artifact, coordinate, context, rules, category
                    )
                )
            native = self._native_download(data, downloads, logical_id, coordinate, context, rules)
            if native is not None:
                descriptors.append(native)
        elif data.get("url") is not None:
            # Maven 仓库形式，url 为仓库根地址
            repository = _require_url(data, context)
            path = coordinate.path
            descriptors.append(
                ArtifactDescriptor(
                    id=logical_id,
                    url=f"{repository.rstrip('/')}/{path}",
                    path=safe_relative_path(f"{LIBRARY_DIR}/{path}"),
                    digest=parse_digest(data, context),
                    size=parse_size(data, context),
                    rules=rules,
                    category=category,
                )
            )
        else:
            raise MalformedEntryError(f"{context}: 缺少下载信息")

        return ParsedEntry(logical_id, rules, tuple(descriptors))

    def _library_download(
        self,
        artifact_id: str,
        download: Any,
        coordinate: MavenCoordinate,
        context: str,
        rules: Tuple[Any, ...],
        category: str,
        extract_exclude: Tuple[str, ...] = (),
    ) -> ArtifactDescriptor:
        if not isinstance(download, Mapping):
            raise MalformedEntryError(f"{context}: 下载信息必须是对象")
        path = download.get("path") or coordinate.path
        if not isinstance(path, str):
            raise MalformedEntryError(f"{context}: 无效的路径 {path!r}")
        return ArtifactDescriptor(
            id=artifact_id,
            url=_require_url(download, context),
            path=safe_relative_path(f"{LIBRARY_DIR}/{path}"),
            digest=parse_digest(download, context),
            size=parse_size(download, context),
            rules=rules,
            category=category,
            extract_exclude=extract_exclude,
        )

    def _native_download(
        self,
        data: Mapping,
        downloads: Mapping,
        logical_id: str,
        coordinate: MavenCoordinate,
        context: str,
        rules: Tuple[Any, ...],
    ) -> Optional[ArtifactDescriptor]:
        """按当前系统选择 natives 分类器"""
        natives = data.get("natives") or {}
        if not isinstance(natives, Mapping):
            raise MalformedEntryError(f"{context}: natives 必须是对象")
        classifier = natives.get(self.environment.os_name.value)
        if not classifier:
            return None
        if not isinstance(classifier, str):
            raise MalformedEntryError(f"{context}: 无效的 natives 分类器 {classifier!r}")
        classifier = classifier.replace("${arch}", self.environment.arch.bits)

        classifiers = downloads.get("classifiers") or {}
        download = classifiers.get(classifier) if isinstance(classifiers, Mapping) else None
        if download is None:
            raise MalformedEntryError(f"{context}: 缺少 natives 分类器 {classifier}")

        return self._library_download(
            f"{logical_id}:{classifier}",
            download,
            coordinate.with_classifier(classifier),
            context,
            rules,
            "native",
            _extract_exclude(data, context),
        )


def _extract_exclude(data: Mapping, context: str) -> Tuple[str, ...]:
    extract = data.get("extract") or {}
    if not isinstance(extract, Mapping):
        raise MalformedEntryError(f"{context}: extract 必须是对象")
    exclude = extract.get("exclude") or ()
    if isinstance(exclude, str) or not isinstance(exclude, Sequence) or not all(
        isinstance(item, str) for item in exclude
    ):
        raise MalformedEntryError(f"{context}: extract.exclude 必须是字符串列表")
    return tuple(exclude)
