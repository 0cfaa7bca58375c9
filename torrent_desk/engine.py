"""
传输引擎接口
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable

from .events import SessionEvent
from .models import TorrentDescriptor

EventSink = Callable[[SessionEvent], None]


class TransferEngine(ABC):
    """核心依赖的引擎能力：添加、元数据搜索、暂停以及事件泵"""

    @abstractmethod
    async def add_torrent(self, descriptor: TorrentDescriptor) -> bool:
        """提交一个描述符

        descriptor.duplicate_is_error 为真时，重复的种子抛出 DuplicateTorrentError。
        """

    @abstractmethod
    async def add_metadata_search(self, hashes: Iterable[str]):
        """请求引擎为这些哈希查找元数据，结果以 MetadataFound 事件返回"""

    @abstractmethod
    async def pause_torrent(self, info_hash: str) -> bool:
        pass

    @abstractmethod
    async def events(self, sink: EventSink):
        """持续产生引擎事件并交给 sink，直到任务被取消"""


__all__ = ["TransferEngine", "EventSink"]
