"""
会话状态同步

SessionSynchronizer 是选中集合、元数据登记表和磁盘空间保护的唯一所有者。
引擎事件可以从任意线程通过 post() 投递，统一排队到所有者事件循环上，
按到达顺序逐个应用，任意两次状态调和不会并发执行。
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from .config import AppConfig
from .disk_space import DiskSpaceGovernor, DiskQuery, query_disk_space
from .display import Display
from .engine import TransferEngine
from .events import (
    MetadataFound, SessionEvent, StatisticsUpdated, TorrentAdded,
    TorrentFinished, TorrentRemoved, TorrentsUpdated
)
from .labels import label_map
from .metadata import MetadataPendingRegistry
from .models import TorrentHandle
from .notifications import NotificationManager
from .selection import SelectionTracker

TORRENT_FINISHED_TITLE = "种子下载完成"


class SessionSynchronizer:
    """单一所有者的事件调和循环"""

    def __init__(self,
                 engine: TransferEngine,
                 display: Display,
                 config_provider: Callable[[], AppConfig],
                 notifier: Optional[NotificationManager] = None,
                 registry: Optional[MetadataPendingRegistry] = None,
                 disk_query: DiskQuery = query_disk_space):
        self.engine = engine
        self.display = display
        self.config_provider = config_provider
        self.notifier = notifier or NotificationManager()
        self.registry = registry or MetadataPendingRegistry()
        self.selection = SelectionTracker(display)
        self.governor = DiskSpaceGovernor(
            pause=self._schedule_pause,
            notify=self.notifier.notify,
            query=disk_query,
        )
        self.logger = logging.getLogger('SessionSynchronizer')

        self.torrents: Dict[str, TorrentHandle] = {}
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending_tasks: Set[asyncio.Task] = set()
        self._stopped = False

    def _ensure_queue(self) -> asyncio.Queue:
        if self._queue is None:
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
        return self._queue

    def post(self, event: SessionEvent):
        """投递事件，可在任意线程调用"""
        if self._queue is None or self._loop is None:
            raise RuntimeError("同步循环尚未启动")

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    async def start(self):
        """在所有者事件循环上准备队列，并推送初始标签"""
        self._ensure_queue()
        self.refresh_labels(self.config_provider())

    async def run(self):
        """消费事件队列直到 stop()"""
        queue = self._ensure_queue()
        self.logger.info("会话同步循环已启动")

        while not self._stopped:
            event = await queue.get()
            try:
                if event is None:
                    continue
                self.dispatch(event)
            finally:
                queue.task_done()

        self.logger.info("会话同步循环已停止")

    def stop(self):
        self._stopped = True
        if self._queue is not None and self._loop is not None:
            # 唤醒阻塞在 get() 上的循环
            self.post(None)

    async def drain(self):
        """等待已投递的事件全部应用完毕"""
        if self._queue is not None:
            await self._queue.join()

    def dispatch(self, event: SessionEvent):
        try:
            if isinstance(event, TorrentAdded):
                self._on_added(event)
            elif isinstance(event, TorrentRemoved):
                self._on_removed(event)
            elif isinstance(event, TorrentsUpdated):
                self._on_updated(event)
            elif isinstance(event, StatisticsUpdated):
                self._on_statistics(event)
            elif isinstance(event, MetadataFound):
                self.registry.resolve(event.info_hash, event.description)
            elif isinstance(event, TorrentFinished):
                self.notifier.notify(TORRENT_FINISHED_TITLE, event.handle.name)
            else:
                self.logger.warning(f"未知事件类型: {type(event).__name__}")
        except Exception as e:
            self.logger.error(f"处理事件 {type(event).__name__} 失败: {str(e)}")

    def _on_added(self, event: TorrentAdded):
        handle = event.handle
        self.torrents[handle.info_hash] = handle
        self.selection.on_added(handle)

    def _on_removed(self, event: TorrentRemoved):
        info_hash = event.info_hash
        self.registry.discard(info_hash)
        self.governor.forget(info_hash)

        if self.torrents.pop(info_hash, None) is None:
            self.logger.debug(f"忽略未知种子的移除事件: {info_hash}")
            return
        self.selection.on_removed(info_hash)

    def _on_updated(self, event: TorrentsUpdated):
        # 引擎不会在"新增"之前发出"更新"，出现时忽略即可
        known: List[TorrentHandle] = [h for h in event.handles if h.info_hash in self.torrents]
        if not known:
            return

        for handle in known:
            self.torrents[handle.info_hash] = handle

        self.selection.on_updated(known)
        self.governor.evaluate(known, self.config_provider().disk_space_threshold())

    def _on_statistics(self, event: StatisticsUpdated):
        stats = event.stats
        config = self.config_provider()

        self.display.update_transfer_rates(stats.download_rate, stats.upload_rate)
        self.display.update_dht_nodes(stats.dht_nodes if config.enable_dht else -1)
        self.display.update_progress(stats.progress)

    def _schedule_pause(self, handle: TorrentHandle):
        info_hash = handle.info_hash
        task = asyncio.get_running_loop().create_task(self.engine.pause_torrent(info_hash))
        self._pending_tasks.add(task)
        task.add_done_callback(lambda t: self._pause_done(info_hash, t))

    def _pause_done(self, info_hash: str, task: asyncio.Task):
        self._pending_tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            self.logger.error(f"暂停种子失败 {info_hash}: {str(exc)}")
        elif task.result() is False:
            self.logger.error(f"暂停种子失败 {info_hash}: 引擎未接受暂停命令")
        else:
            return
        self.governor.pause_failed(info_hash)

    def select(self, hashes: Iterable[str]):
        """按哈希设置选中集合，未知哈希被忽略"""
        handles = []
        for info_hash in hashes:
            handle = self.torrents.get(info_hash)
            if handle is None:
                self.logger.warning(f"无法选中未知的种子: {info_hash}")
                continue
            handles.append(handle)
        self.selection.set_selection(handles)

    def refresh_labels(self, config: AppConfig):
        self.display.update_labels(label_map(config.labels), config.use_label_as_list_bgcolor)

    async def on_config_reloaded(self, old_config: Optional[AppConfig], new_config: AppConfig):
        self.refresh_labels(new_config)


__all__ = ["SessionSynchronizer", "TORRENT_FINISHED_TITLE"]
