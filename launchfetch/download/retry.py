"""
重试策略

退避计算是纯函数，便于独立测试。
"""

from launchfetch.exceptions import (
    DigestMismatchError,
    FetchError,
    IoFailureError,
    SizeMismatchError,
)
from launchfetch.models import FetchOutcome, RetryPolicy


def compute_backoff(attempt: int, policy: RetryPolicy) -> float:
    """
    第 attempt 次失败后的等待时间（秒）

    attempt 从 1 开始: base_delay * multiplier ** (attempt - 1)，不超过 max_delay。
    """
    if attempt < 1:
        return 0.0
    delay = policy.base_delay * (policy.multiplier ** (attempt - 1))
    return min(delay, policy.max_delay)


def is_retry_eligible(error: BaseException) -> bool:
    """网络、超时、校验和写入失败都可以重试"""
    return isinstance(error, (FetchError, IoFailureError))


def should_retry(attempt: int, error: BaseException, policy: RetryPolicy) -> bool:
    return is_retry_eligible(error) and attempt < policy.max_attempts


def terminal_outcome(error: BaseException) -> FetchOutcome:
    """重试耗尽后的最终结果"""
    if isinstance(error, (DigestMismatchError, SizeMismatchError)):
        return FetchOutcome.VERIFICATION_FAILED
    return FetchOutcome.SOURCE_UNAVAILABLE
