"""
适用性规则匹配

根据操作系统、架构、系统版本和功能开关判断清单条目是否适用于当前环境。
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

from launchfetch.exceptions import MalformedEntryError
from launchfetch.models import Environment
from launchfetch.models.environment import parse_arch, parse_os

_ACTIONS = ("allow", "disallow")


class RuleMatcher:
    """规则匹配器"""

    def matches_os(self, condition: Any, environment: Environment) -> bool:
        """
        检查 os 条件

        字符串形式为平台标识（linux、linux-arm64、osx-arm64 ...），
        对象形式为 {name, arch, version}，version 为正则表达式。
        """
        if isinstance(condition, str):
            return condition.lower() == environment.platform_key

        if not isinstance(condition, Mapping):
            raise MalformedEntryError(f"无效的 os 规则: {condition!r}")

        name = condition.get("name")
        arch = condition.get("arch")
        version = condition.get("version")
        for key, value in (("name", name), ("arch", arch), ("version", version)):
            if value is not None and not isinstance(value, str):
                raise MalformedEntryError(f"无效的 os.{key} 规则: {value!r}")

        if name:
            try:
                if parse_os(name) is not environment.os_name:
                    return False
            except ValueError:
                return False

        if arch:
            try:
                if parse_arch(arch) is not environment.arch:
                    return False
            except ValueError:
                return False

        if version:
            if environment.os_version is None:
                return False
            try:
                if not re.search(version, environment.os_version):
                    return False
            except re.error as e:
                raise MalformedEntryError(f"无效的系统版本正则 {version!r}: {e}") from e

        return True

    def matches_features(self, condition: Any, environment: Environment) -> bool:
        """检查功能开关条件，每个开关的启用状态都必须与要求一致"""
        if not isinstance(condition, Mapping):
            raise MalformedEntryError(f"无效的 features 规则: {condition!r}")
        return all(
            (name in environment.features) == bool(required)
            for name, required in condition.items()
        )

    def rule_matches(self, rule: Any, environment: Environment) -> bool:
        """单条规则的所有条件是否都满足"""
        if "os" in rule and not self.matches_os(rule["os"], environment):
            return False
        if "features" in rule and not self.matches_features(
            rule["features"], environment
        ):
            return False
        return True

    def should_include(self, rules: Any, environment: Environment) -> bool:
        """
        判断条目是否适用

        没有规则时适用；否则初始为不允许，依次应用匹配的规则，以最后一条为准。

        Raises:
            MalformedEntryError: 规则格式无效
        """
        if not rules:
            return True
        if isinstance(rules, (str, bytes)) or not isinstance(rules, Sequence):
            raise MalformedEntryError(f"rules 必须是列表: {rules!r}")

        allowed = False
        for rule in rules:
            if not isinstance(rule, Mapping):
                raise MalformedEntryError(f"无效的规则: {rule!r}")
            action = rule.get("action")
            if action not in _ACTIONS:
                raise MalformedEntryError(f"未知的规则动作: {action!r}")
            if self.rule_matches(rule, environment):
                allowed = action == "allow"
        return allowed
