"""
元数据等待登记表

记录正在等待引擎解析元数据的哈希，并把解析结果分发给所有订阅者。
同一哈希可以有多个订阅者（例如同一磁力链接在解析完成前被添加了两次），
分发是扇出式的，而不是"取走一次即消费"。
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Set

from .models import TorrentDescription

MetadataCallback = Callable[[str, TorrentDescription], None]


class MetadataPendingRegistry:
    """哈希 -> 订阅者列表 的多重映射

    只在所有者事件循环上被修改，内部不加锁。
    """

    def __init__(self):
        self.logger = logging.getLogger('MetadataRegistry')
        self._pending: Set[str] = set()
        self._subscribers: Dict[str, List[MetadataCallback]] = defaultdict(list)

    def register(self, hashes: Iterable[str]):
        """登记等待解析的哈希，重复登记无副作用"""
        for info_hash in hashes:
            if info_hash:
                self._pending.add(info_hash)

    def subscribe(self, info_hash: str, callback: MetadataCallback) -> Callable[[], None]:
        """订阅某个哈希的解析结果，返回取消订阅函数

        订阅可以发生在 register 之前或之后。
        """
        self._subscribers[info_hash].append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(info_hash)
            if not callbacks:
                return
            try:
                callbacks.remove(callback)
            except ValueError:
                return
            if not callbacks:
                del self._subscribers[info_hash]

        return unsubscribe

    def resolve(self, info_hash: str, description: TorrentDescription) -> int:
        """投递解析结果，返回成功投递的订阅者数量

        未登记的哈希直接忽略（没有人在等它）。
        """
        if info_hash not in self._pending:
            self.logger.debug(f"忽略未登记的元数据: {info_hash}")
            return 0

        self._pending.discard(info_hash)
        delivered = 0
        for callback in list(self._subscribers.get(info_hash, ())):
            try:
                callback(info_hash, description)
                delivered += 1
            except Exception as e:
                self.logger.error(f"元数据订阅者处理失败 {info_hash}: {str(e)}")

        self.logger.info(f"元数据已解析: {description.name} ({info_hash[:8]}), 投递 {delivered} 个订阅者")
        return delivered

    def discard(self, info_hash: str):
        """取消等待：用户取消或种子被移除"""
        self._pending.discard(info_hash)
        self._subscribers.pop(info_hash, None)

    def reset(self):
        self._pending.clear()
        self._subscribers.clear()

    def is_pending(self, info_hash: str) -> bool:
        return info_hash in self._pending

    def pending_hashes(self) -> Set[str]:
        return set(self._pending)

    def subscriber_count(self, info_hash: str) -> int:
        return len(self._subscribers.get(info_hash, ()))


__all__ = ["MetadataPendingRegistry", "MetadataCallback"]
