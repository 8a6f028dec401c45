"""
运行环境模型

描述目标操作系统、架构和启用的功能，用于判断清单条目是否适用。
"""

import platform
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional


class OsName(Enum):
    """操作系统"""

    WINDOWS = "windows"
    LINUX = "linux"
    OSX = "osx"


class Arch(Enum):
    """CPU 架构"""

    X86_64 = "x86_64"
    X86 = "x86"
    ARM64 = "arm64"
    ARM32 = "arm32"

    @property
    def bits(self) -> str:
        """natives 分类器中 ${arch} 占位符的取值"""
        return "32" if self in (Arch.X86, Arch.ARM32) else "64"


_MACHINE_ALIASES = {
    "x86_64": Arch.X86_64,
    "amd64": Arch.X86_64,
    "x64": Arch.X86_64,
    "i386": Arch.X86,
    "i686": Arch.X86,
    "x86": Arch.X86,
    "aarch64": Arch.ARM64,
    "arm64": Arch.ARM64,
    "armv7l": Arch.ARM32,
    "armv6l": Arch.ARM32,
    "arm": Arch.ARM32,
    "arm32": Arch.ARM32,
}

_SYSTEM_ALIASES = {
    "windows": OsName.WINDOWS,
    "linux": OsName.LINUX,
    "darwin": OsName.OSX,
    "osx": OsName.OSX,
    "macos": OsName.OSX,
}


def parse_os(value: str) -> OsName:
    """解析操作系统名称"""
    try:
        return _SYSTEM_ALIASES[value.lower()]
    except KeyError:
        raise ValueError(f"未知的操作系统: {value}") from None


def parse_arch(value: str) -> Arch:
    """解析 CPU 架构名称"""
    try:
        return _MACHINE_ALIASES[value.lower()]
    except KeyError:
        raise ValueError(f"未知的架构: {value}") from None


@dataclass(frozen=True)
class Environment:
    """目标运行环境"""

    os_name: OsName
    arch: Arch = Arch.X86_64
    os_version: Optional[str] = None
    features: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        os_name: str,
        arch: str = "x86_64",
        os_version: Optional[str] = None,
        features: Iterable[str] = (),
    ) -> "Environment":
        """从字符串参数构建环境"""
        return cls(
            os_name=parse_os(os_name),
            arch=parse_arch(arch),
            os_version=os_version,
            features=frozenset(features),
        )

    @classmethod
    def current(cls, features: Iterable[str] = ()) -> "Environment":
        """探测当前主机环境"""
        return cls(
            os_name=parse_os(platform.system()),
            arch=parse_arch(platform.machine() or "x86_64"),
            os_version=platform.release() or None,
            features=frozenset(features),
        )

    @property
    def platform_key(self) -> str:
        """
        平台标识，例如 linux、linux-arm64、osx-arm64、windows-arm64

        x86 系列架构不带后缀。
        """
        if self.arch in (Arch.X86_64, Arch.X86):
            return self.os_name.value
        return f"{self.os_name.value}-{self.arch.value}"
