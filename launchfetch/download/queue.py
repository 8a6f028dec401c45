"""
下载任务队列

实现优先级队列、按逻辑 id 去重，每个任务只会被取出一次。
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from launchfetch.models import ArtifactDescriptor


class Priority(Enum):
    """下载优先级"""

    HIGH = 0
    NORMAL = 1
    LOW = 2


CATEGORY_PRIORITY = {
    "asset_index": Priority.HIGH,
    "client": Priority.HIGH,
    "main_jar": Priority.HIGH,
    "library": Priority.NORMAL,
    "native": Priority.NORMAL,
    "maven_file": Priority.NORMAL,
    "artifact": Priority.NORMAL,
    "asset": Priority.LOW,
}


@dataclass(order=True)
class DownloadTask:
    """下载任务"""

    priority: int
    sequence: int
    descriptor: ArtifactDescriptor = field(compare=False)

    @property
    def artifact_id(self) -> str:
        return self.descriptor.id


class DownloadQueue:
    """下载队列"""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._tasks: Dict[str, DownloadTask] = {}  # 用于去重
        self._counter = itertools.count()

    def put(
        self,
        descriptor: ArtifactDescriptor,
        priority: Optional[Priority] = None,
    ) -> bool:
        """
        添加任务到队列

        Returns:
            True 如果任务是新添加的，False 如果是重复任务
        """
        if descriptor.id in self._tasks:
            return False

        if priority is None:
            priority = CATEGORY_PRIORITY.get(descriptor.category, Priority.NORMAL)
        task = DownloadTask(priority.value, next(self._counter), descriptor)
        self._tasks[descriptor.id] = task
        self._queue.put_nowait(task)
        return True

    def get_nowait(self) -> Optional[DownloadTask]:
        """取出下一个任务，队列为空时返回 None"""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self):
        """标记任务完成"""
        self._queue.task_done()

    def drain(self) -> List[DownloadTask]:
        """取出所有尚未分发的任务"""
        remaining = []
        while True:
            task = self.get_nowait()
            if task is None:
                break
            remaining.append(task)
            self._queue.task_done()
        return remaining

    def empty(self) -> bool:
        """检查队列是否为空"""
        return self._queue.empty()

    def __len__(self) -> int:
        return len(self._tasks)
