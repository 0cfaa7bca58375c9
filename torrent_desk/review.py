"""
添加前的交互式审核

每个待添加的描述符对应一个 ReviewSession。等待元数据的会话在哈希登记之前
就向登记表订阅，解析结果到达时即可获得名称等信息。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

import click

from .config import LabelConfig
from .display import format_size
from .labels import LabelMatcher
from .metadata import MetadataPendingRegistry
from .models import TorrentDescription, TorrentDescriptor


class ReviewSession:
    """单个描述符的审核会话"""

    def __init__(self, descriptor: TorrentDescriptor,
                 registry: MetadataPendingRegistry,
                 labels: Sequence[LabelConfig] = ()):
        self.descriptor = descriptor
        self.registry = registry
        self.labels: List[LabelConfig] = list(labels)
        self.metadata: Optional[TorrentDescription] = descriptor.description
        self.edited = False
        self._metadata_event = asyncio.Event()
        self._unsubscribe: Optional[Callable[[], None]] = None

        if self.metadata is not None:
            self._metadata_event.set()

    @property
    def info_hash(self) -> Optional[str]:
        return self.descriptor.info_hash

    @property
    def waiting_for_metadata(self) -> bool:
        return self.descriptor.is_metadata_pending and self.metadata is None

    def open(self):
        if self.waiting_for_metadata and self._unsubscribe is None:
            self._unsubscribe = self.registry.subscribe(self.info_hash, self._on_metadata)

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_metadata(self, info_hash: str, description: TorrentDescription):
        self.metadata = description
        descriptor = self.descriptor

        # 分类时名称未知，拿到名称后补一次标签匹配
        if not self.edited and descriptor.label_id is None and not descriptor.derived_name:
            assignment = LabelMatcher(self.labels).match(description.name)
            if assignment.matched:
                descriptor.label_id = assignment.label_id
                if assignment.save_path:
                    descriptor.save_path = assignment.save_path

        self._metadata_event.set()

    async def wait_for_metadata(self, timeout: float) -> bool:
        if self._metadata_event.is_set():
            return True
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._metadata_event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def apply_edits(self, save_path: str, label_id: Optional[int]):
        """用户的显式修改优先于标签规则给出的保存路径"""
        self.descriptor.save_path = save_path
        self.descriptor.label_id = label_id
        self.edited = True


class Reviewer(ABC):

    @abstractmethod
    async def review(self, session: ReviewSession) -> Optional[TorrentDescriptor]:
        """返回最终要提交的描述符，None 表示用户取消"""


class ConsoleReviewer(Reviewer):
    """基于click提示的控制台审核"""

    def __init__(self, metadata_wait_timeout: float = 30.0):
        self.metadata_wait_timeout = metadata_wait_timeout
        self.logger = logging.getLogger('ConsoleReviewer')
        self._lock = asyncio.Lock()

    async def review(self, session: ReviewSession) -> Optional[TorrentDescriptor]:
        async with self._lock:
            if session.waiting_for_metadata:
                click.echo(f"⏳ 等待元数据: {session.info_hash} (最多 {self.metadata_wait_timeout:.0f}s)")
                if not await session.wait_for_metadata(self.metadata_wait_timeout):
                    self.logger.info(f"元数据未及时到达，继续审核: {session.info_hash}")

            edits = await asyncio.to_thread(self._prompt, session)

        if edits is None:
            return None
        save_path, label_id = edits
        session.apply_edits(save_path, label_id)
        return session.descriptor

    def _prompt(self, session: ReviewSession) -> Optional[Tuple[str, Optional[int]]]:
        descriptor = session.descriptor
        metadata = session.metadata

        click.echo(f"\n📁 名称: {metadata.name if metadata and not descriptor.name else descriptor.display_name}")
        click.echo(f"🔗 哈希: {descriptor.info_hash}")
        if metadata is not None and metadata.total_size:
            click.echo(f"💾 大小: {format_size(metadata.total_size)}")
            for torrent_file in metadata.files[:10]:
                click.echo(f"    {torrent_file.path} ({format_size(torrent_file.size)})")

        if not click.confirm("添加该种子?", default=True):
            return None

        save_path = click.prompt("保存路径", default=descriptor.save_path)

        label_id = descriptor.label_id
        if session.labels:
            for label in session.labels:
                click.echo(f"  [{label.id}] {label.name}")
            choices = ['-'] + [str(label.id) for label in session.labels]
            choice = click.prompt(
                "标签 (- 表示无标签)",
                default=str(label_id) if label_id is not None else '-',
                type=click.Choice(choices),
            )
            label_id = None if choice == '-' else int(choice)

        return save_path, label_id


__all__ = ["ReviewSession", "Reviewer", "ConsoleReviewer"]
