"""
显示层接口

核心只通过这些信号与显示层交互，不依赖任何界面技术。
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import LabelMap, TorrentHandle


class Display(ABC):

    @abstractmethod
    def selection_changed(self, selection: Dict[str, TorrentHandle]):
        pass

    @abstractmethod
    def selection_reset(self):
        pass

    @abstractmethod
    def refresh(self, subset: Dict[str, TorrentHandle]):
        """刷新既被选中又被更新的种子"""

    @abstractmethod
    def update_torrent_count(self, count: int):
        pass

    @abstractmethod
    def update_transfer_rates(self, download_rate: int, upload_rate: int):
        pass

    @abstractmethod
    def update_dht_nodes(self, nodes: int):
        """nodes 为 -1 表示DHT已禁用"""

    @abstractmethod
    def update_progress(self, progress: Optional[float]):
        """progress 为 None 表示没有正在下载的种子"""

    @abstractmethod
    def update_labels(self, labels: LabelMap, use_color: bool):
        pass


def format_size(size: float) -> str:
    """格式化字节数"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


class ConsoleDisplay(Display):
    """把显示信号写入日志的控制台实现"""

    def __init__(self):
        self.logger = logging.getLogger('ConsoleDisplay')
        self.torrent_count = 0
        self.labels: LabelMap = {}
        self.use_label_color = False
        self._last_status: Optional[str] = None

    def _label_name(self, handle: TorrentHandle) -> str:
        if handle.label_id is None or handle.label_id not in self.labels:
            return "-"
        name, color = self.labels[handle.label_id]
        return f"{name} ({color})" if self.use_label_color else name

    def selection_changed(self, selection):
        self.logger.info(f"已选中 {len(selection)} 个种子")
        for handle in selection.values():
            self.logger.info(f"  [{self._label_name(handle)}] {handle.name} {handle.progress:.1%}")

    def selection_reset(self):
        self.logger.info("选中集合已清空")

    def refresh(self, subset):
        for handle in subset.values():
            self.logger.debug(
                f"刷新 {handle.name}: {handle.state.value} {handle.progress:.1%} "
                f"↓{format_size(handle.download_rate)}/s ↑{format_size(handle.upload_rate)}/s"
            )

    def update_torrent_count(self, count: int):
        self.torrent_count = count
        self.logger.debug(f"种子总数: {count}")

    def update_transfer_rates(self, download_rate: int, upload_rate: int):
        status = f"↓{format_size(download_rate)}/s ↑{format_size(upload_rate)}/s"
        if status != self._last_status:
            self._last_status = status
            self.logger.debug(f"传输速率: {status}")

    def update_dht_nodes(self, nodes: int):
        if nodes < 0:
            self.logger.debug("DHT: 已禁用")
        else:
            self.logger.debug(f"DHT节点: {nodes}")

    def update_progress(self, progress):
        if progress is not None:
            self.logger.debug(f"总进度: {progress:.1%}")

    def update_labels(self, labels, use_color: bool):
        self.labels = dict(labels)
        self.use_label_color = use_color
        self.logger.info(f"标签已更新: {len(self.labels)} 个")


__all__ = ["Display", "ConsoleDisplay", "format_size"]
