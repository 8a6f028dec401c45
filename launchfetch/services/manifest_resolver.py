"""
清单解析服务

合并继承链上的版本定义，得到去重后的制品描述符列表。
"""

from typing import Dict, List, Mapping, Set, Tuple

from loguru import logger

from launchfetch.exceptions import (
    CycleDetectedError,
    ManifestNotFoundError,
    MissingParentError,
)
from launchfetch.models import ArtifactDescriptor, Environment, VersionDefinition
from launchfetch.services.entries import EntryParser, ParsedEntry
from launchfetch.services.rules import RuleMatcher
from launchfetch.sources.base import ManifestSource


class ManifestResolver:
    """
    清单解析器

    版本定义按 id 存放在映射中，沿父指针迭代遍历并用已访问集合检测循环。
    resolve 是纯函数：相同的定义和环境总是得到相同顺序、相同内容的结果。
    """

    def __init__(self, definitions: Mapping[str, VersionDefinition]):
        self._definitions: Dict[str, VersionDefinition] = dict(definitions)
        self.matcher = RuleMatcher()

    @classmethod
    async def from_source(
        cls, source: ManifestSource, root_id: str
    ) -> "ManifestResolver":
        """
        从清单来源加载整条继承链

        Raises:
            ManifestNotFoundError: 根版本不存在
            MissingParentError: 父版本不存在
            CycleDetectedError: 继承链存在循环
        """
        definitions: Dict[str, VersionDefinition] = {}
        path: List[str] = []
        current = root_id

        while current is not None:
            if current in definitions:
                raise CycleDetectedError(
                    f"继承链存在循环: {' -> '.join(path + [current])}",
                    cycle=path + [current],
                )
            try:
                definition = await source.load(current)
            except ManifestNotFoundError as e:
                if not path:
                    raise
                raise MissingParentError(
                    f"版本 {path[-1]} 的父版本 {current} 不存在",
                    context={"version": path[-1], "parent": current},
                ) from e

            logger.debug(f"[清单] 已加载 {current}")
            definitions[current] = definition
            path.append(current)
            current = definition.parent_id

        return cls(definitions)

    def chain(self, root_id: str) -> List[VersionDefinition]:
        """
        获取继承链，祖先在前

        Raises:
            ManifestNotFoundError: 根版本不存在
            MissingParentError: 父版本不存在
            CycleDetectedError: 继承链存在循环
        """
        if root_id not in self._definitions:
            raise ManifestNotFoundError(
                f"版本 {root_id} 不存在", context={"version": root_id}
            )

        visited: Set[str] = set()
        path: List[str] = []
        current = root_id
        while current is not None:
            if current in visited:
                raise CycleDetectedError(
                    f"继承链存在循环: {' -> '.join(path + [current])}",
                    cycle=path + [current],
                )
            definition = self._definitions.get(current)
            if definition is None:
                raise MissingParentError(
                    f"版本 {path[-1]} 的父版本 {current} 不存在",
                    context={"version": path[-1], "parent": current},
                )
            visited.add(current)
            path.append(current)
            current = definition.parent_id

        return [self._definitions[version_id] for version_id in reversed(path)]

    def resolve(
        self, root_id: str, environment: Environment
    ) -> List[ArtifactDescriptor]:
        """
        解析版本的完整制品列表

        每个条目先按适用性规则过滤，再从最远的祖先开始按逻辑 id 折叠
        （子版本覆盖父版本，保留首次出现的位置），最后保证目标路径唯一
        （后折叠的条目优先）。不适用的条目不参与折叠，因此同一定义中
        按系统区分版本的同名依赖库（如只用于 osx 的 lwjgl）不会遮蔽适用的那一个。

        Raises:
            ResolutionError: 继承链或条目无效，不返回部分结果
        """
        parser = EntryParser(environment)

        folded: Dict[str, Tuple[int, ParsedEntry]] = {}
        sequence = 0
        for definition in self.chain(root_id):
            for raw in definition.entries:
                parsed = parser.parse(raw, definition.id)
                sequence += 1
                if not self.matcher.should_include(parsed.rules, environment):
                    logger.debug(f"[清单] 条目 {parsed.logical_id} 不适用于当前环境")
                    continue
                if parsed.logical_id in folded:
                    logger.debug(
                        f"[清单] {definition.id} 覆盖了条目 {parsed.logical_id}"
                    )
                folded[parsed.logical_id] = (sequence, parsed)

        applicable = list(folded.values())

        # 路径或 id 冲突时，折叠顺序靠后的条目胜出
        claimed_paths: Set[str] = set()
        claimed_ids: Set[str] = set()
        winners: Set[Tuple[int, str]] = set()
        for seq, parsed in sorted(applicable, key=lambda item: item[0], reverse=True):
            for descriptor in parsed.descriptors:
                if descriptor.path in claimed_paths or descriptor.id in claimed_ids:
                    logger.debug(f"[清单] 制品 {descriptor.id} 被同路径条目遮蔽")
                    continue
                claimed_paths.add(descriptor.path)
                claimed_ids.add(descriptor.id)
                winners.add((seq, descriptor.id))

        resolved = [
            descriptor
            for seq, parsed in applicable
            for descriptor in parsed.descriptors
            if (seq, descriptor.id) in winners
        ]
        logger.info(f"[清单] {root_id} 解析完成，共 {len(resolved)} 个制品")
        return resolved
