"""
磁盘空间保护

每批"更新"事件评估一次：种子保存路径所在磁盘的可用比例低于阈值时，
暂停该种子并发出一次性通知。同一个暂停周期内不会重复暂停、重复通知。
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Tuple

import psutil

from .exceptions import DiskSpaceQueryError
from .models import DiskSpaceThreshold, TorrentHandle

LOW_DISK_SPACE_TITLE = "磁盘空间不足，已暂停种子"

DiskQuery = Callable[[str], Tuple[int, int]]

# 暂停命令发出后最多等待的评估轮数，超过后视为暂停未生效
PENDING_PAUSE_PASSES = 3


def query_disk_space(path: str) -> Tuple[int, int]:
    """返回 (可用字节数, 总字节数)"""
    if not path:
        raise DiskSpaceQueryError("保存路径为空", path=path)
    usage = psutil.disk_usage(path)
    return usage.free, usage.total


@dataclass
class PauseEpisode:
    confirmed: bool = False
    pending_passes: int = 0


class DiskSpaceGovernor:
    """磁盘空间阈值控制

    暂停周期按哈希记录：
    - 由本模块发出暂停后周期开启（未确认）
    - 观察到种子处于暂停状态后周期被确认
    - 确认后再观察到种子重新下载，周期结束，重新参与评估
    - 暂停命令失败，或连续 PENDING_PAUSE_PASSES 轮仍未生效，周期作废
    """

    def __init__(self,
                 pause: Callable[[TorrentHandle], None],
                 notify: Callable[[str, str], None],
                 query: DiskQuery = query_disk_space):
        self.pause = pause
        self.notify = notify
        self.query = query
        self.logger = logging.getLogger('DiskSpaceGovernor')
        self._episodes: Dict[str, PauseEpisode] = {}

    def in_episode(self, info_hash: str) -> bool:
        return info_hash in self._episodes

    def forget(self, info_hash: str):
        self._episodes.pop(info_hash, None)

    def pause_failed(self, info_hash: str):
        """暂停命令执行失败，下一轮重新评估该种子"""
        episode = self._episodes.get(info_hash)
        if episode is not None and not episode.confirmed:
            del self._episodes[info_hash]
            self.logger.warning(f"暂停命令未成功，将重新评估: {info_hash}")

    def _skip_for_episode(self, handle: TorrentHandle) -> bool:
        episode = self._episodes.get(handle.info_hash)
        if episode is None:
            return False

        if handle.is_paused:
            episode.confirmed = True
            return True

        if episode.confirmed:
            if not handle.is_downloading:
                # 例如移动或校验中，仍属于本次暂停周期
                return True
            del self._episodes[handle.info_hash]
            self.logger.debug(f"种子已恢复下载，暂停周期结束: {handle.info_hash}")
            return False

        episode.pending_passes += 1
        if episode.pending_passes < PENDING_PAUSE_PASSES:
            return True

        del self._episodes[handle.info_hash]
        self.logger.warning(f"暂停命令未生效，重新评估: {handle.info_hash}")
        return False

    def evaluate(self, handles: Iterable[TorrentHandle], threshold: DiskSpaceThreshold) -> List[str]:
        """评估一批种子，返回本轮被暂停的哈希"""
        if not threshold.enabled:
            return []

        limit = threshold.limit_ratio
        paused: List[str] = []

        for handle in handles:
            if self._skip_for_episode(handle):
                continue
            if handle.is_paused:
                continue

            try:
                free, total = self.query(handle.save_path)
            except (OSError, DiskSpaceQueryError) as e:
                self.logger.debug(f"无法查询磁盘空间 {handle.save_path}: {e}")
                continue

            if total <= 0:
                continue

            available = free / float(total)
            if available >= limit:
                continue

            self.logger.info(
                f"磁盘空间不足，暂停种子 {handle.info_hash} "
                f"(可用: {available:.4f}, 阈值: {limit:.4f})"
            )
            self._episodes[handle.info_hash] = PauseEpisode()
            try:
                self.pause(handle)
            except Exception as e:
                self.logger.error(f"暂停种子失败 {handle.info_hash}: {str(e)}")
                self.forget(handle.info_hash)
                continue

            try:
                self.notify(LOW_DISK_SPACE_TITLE, handle.name)
            except Exception as e:
                self.logger.error(f"发送磁盘空间通知失败: {str(e)}")
            paused.append(handle.info_hash)

        return paused


__all__ = ["DiskSpaceGovernor", "PauseEpisode", "PENDING_PAUSE_PASSES", "query_disk_space", "LOW_DISK_SPACE_TITLE"]
