"""
协作式取消

取消后调度器不再分发新任务，已开始的下载自然完成或失败。
"""

import threading


class CancellationToken:
    """线程安全的取消令牌，可以在信号处理函数中调用 cancel"""

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """请求取消"""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def reset(self) -> None:
        """重置为未取消状态，仅用于测试或复用令牌"""
        self._is_cancelled.clear()
