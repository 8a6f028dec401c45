"""
LaunchFetch 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional


class LaunchFetchError(Exception):
    """LaunchFetch 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(LaunchFetchError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class ResolutionError(LaunchFetchError):
    """清单解析错误，对单次 resolve 调用是致命的"""

    def _get_default_code(self) -> str:
        return "E200"


class CycleDetectedError(ResolutionError):
    """继承链中出现循环"""

    def __init__(self, message: str, cycle: List[str], **kwargs):
        super().__init__(message, **kwargs)
        self.cycle = list(cycle)
        self.context.setdefault("cycle", self.cycle)

    def _get_default_code(self) -> str:
        return "E201"


class MissingParentError(ResolutionError):
    """父版本不存在"""

    def _get_default_code(self) -> str:
        return "E202"


class MalformedEntryError(ResolutionError):
    """清单条目格式错误"""

    def _get_default_code(self) -> str:
        return "E203"


class SourceError(LaunchFetchError):
    """版本清单来源错误"""

    def _get_default_code(self) -> str:
        return "E250"


class ManifestNotFoundError(SourceError):
    """版本清单不存在"""

    def _get_default_code(self) -> str:
        return "E251"


class MalformedSourceError(SourceError):
    """版本清单内容无法解析"""

    def _get_default_code(self) -> str:
        return "E252"


class FetchError(LaunchFetchError):
    """下载相关错误，可以重试"""

    def _get_default_code(self) -> str:
        return "E300"


class SourceUnavailableError(FetchError):
    """下载源不可达"""

    def _get_default_code(self) -> str:
        return "E301"


class FetchTimeoutError(FetchError):
    """单次下载尝试超时"""

    def _get_default_code(self) -> str:
        return "E302"


class DigestMismatchError(FetchError):
    """下载内容摘要校验失败"""

    def _get_default_code(self) -> str:
        return "E303"


class SizeMismatchError(FetchError):
    """下载内容大小与预期不符"""

    def _get_default_code(self) -> str:
        return "E304"


class HttpStatusError(SourceUnavailableError):
    """下载源返回了非 200 状态码"""

    def __init__(self, message: str, status: int, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        self.context.setdefault("status", status)

    def _get_default_code(self) -> str:
        return "E305"


class StoreError(LaunchFetchError):
    """内容存储错误"""

    def _get_default_code(self) -> str:
        return "E600"


class IoFailureError(StoreError):
    """文件读写失败"""

    def _get_default_code(self) -> str:
        return "E601"


class NotPresentError(StoreError):
    """存储中不存在该摘要对应的内容"""

    def _get_default_code(self) -> str:
        return "E602"


__all__ = [
    # 基础异常
    "LaunchFetchError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # 解析异常
    "ResolutionError",
    "CycleDetectedError",
    "MissingParentError",
    "MalformedEntryError",
    # 来源异常
    "SourceError",
    "ManifestNotFoundError",
    "MalformedSourceError",
    # 下载异常
    "FetchError",
    "SourceUnavailableError",
    "FetchTimeoutError",
    "DigestMismatchError",
    "SizeMismatchError",
    "HttpStatusError",
    # 存储异常
    "StoreError",
    "IoFailureError",
    "NotPresentError",
]
