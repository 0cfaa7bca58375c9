"""
选中集合跟踪
"""

import logging
from typing import Dict, Iterable, Optional

from .models import TorrentHandle


class SelectionTracker:
    """维护用户当前选中的种子，并随引擎事件保持一致

    Selection 中的每个键都对应引擎中仍存在的种子；种子被移除时同步删除。
    """

    def __init__(self, display):
        self.display = display
        self.logger = logging.getLogger('SelectionTracker')
        self._selection: Dict[str, TorrentHandle] = {}
        self._torrent_count = 0

    @property
    def selection(self) -> Dict[str, TorrentHandle]:
        return dict(self._selection)

    @property
    def torrent_count(self) -> int:
        return self._torrent_count

    def __contains__(self, info_hash: str) -> bool:
        return info_hash in self._selection

    def __len__(self) -> int:
        return len(self._selection)

    def on_added(self, handle: TorrentHandle):
        # 新种子不会被自动选中
        self._torrent_count += 1
        self.display.update_torrent_count(self._torrent_count)

    def on_removed(self, info_hash: str):
        if self._torrent_count > 0:
            self._torrent_count -= 1
        self.display.update_torrent_count(self._torrent_count)

        if info_hash not in self._selection:
            return

        del self._selection[info_hash]
        self.logger.debug(f"已选中的种子被移除: {info_hash}")

        if not self._selection:
            self.display.selection_reset()
        else:
            self.display.selection_changed(self.selection)

    def on_updated(self, handles: Iterable[TorrentHandle]):
        subset: Dict[str, TorrentHandle] = {}
        for handle in handles:
            if handle.info_hash in self._selection:
                self._selection[handle.info_hash] = handle
                subset[handle.info_hash] = handle

        if subset:
            self.display.refresh(subset)

    def set_selection(self, items: Optional[Iterable[TorrentHandle]]):
        """整体替换选中集合"""
        self._selection.clear()
        for handle in items or ():
            self._selection[handle.info_hash] = handle

        if not self._selection:
            self.display.selection_reset()
        else:
            self.display.selection_changed(self.selection)


__all__ = ["SelectionTracker"]
