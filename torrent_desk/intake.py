"""
种子接收与分类

IntakeClassifier 是纯函数式的分类步骤：套用默认值、匹配标签、区分
已解析与等待元数据的描述符。IntakeService 在此之上决定直接提交还是
逐个交给审核步骤，并负责元数据登记与提交结果汇总。
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from .config import AppConfig, LabelConfig
from .engine import TransferEngine
from .exceptions import DuplicateTorrentError, EngineError
from .labels import LabelMatcher
from .metadata import MetadataPendingRegistry
from .models import IntakeDefaults, IntakeResult, TorrentDescriptor
from .notifications import NotificationManager
from .parsing import parse_inputs
from .review import Reviewer, ReviewSession


class IntakeClassifier:
    """把一批描述符分为可提交列表和等待元数据的哈希列表

    - ready 与输入等长且保持输入顺序
    - pending_hashes 保持输入顺序，批内重复不去重
    - 已带完整元数据的描述符不会出现在 pending_hashes 中
    """

    def __init__(self):
        self.logger = logging.getLogger('IntakeClassifier')

    def classify(self, batch: Sequence[TorrentDescriptor],
                 labels: Sequence[LabelConfig],
                 defaults: IntakeDefaults) -> IntakeResult:
        result = IntakeResult()
        if not batch:
            return result

        matcher = LabelMatcher(labels)

        for descriptor in batch:
            descriptor.save_path = defaults.default_save_path
            # 重复检测交给引擎：已存在的同一种子应报错而不是静默忽略
            descriptor.duplicate_is_error = True

            assignment = matcher.match_descriptor(descriptor)
            descriptor.label_id = assignment.label_id
            if assignment.save_path:
                descriptor.save_path = assignment.save_path

            if descriptor.is_metadata_pending:
                result.pending_hashes.append(descriptor.info_hash)

            result.ready.append(descriptor)

        self.logger.debug(f"分类完成: {len(result.ready)} 个描述符, {len(result.pending_hashes)} 个等待元数据")
        return result


@dataclass
class IntakeReport:
    submitted: List[TorrentDescriptor] = field(default_factory=list)
    failed: List[TorrentDescriptor] = field(default_factory=list)
    duplicates: List[TorrentDescriptor] = field(default_factory=list)
    cancelled: List[TorrentDescriptor] = field(default_factory=list)
    pending_hashes: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.submitted) + len(self.failed) + len(self.duplicates) + len(self.cancelled)


class IntakeService:
    """添加流程：分类 → 登记元数据等待 → 直接提交或逐个审核"""

    def __init__(self,
                 engine: TransferEngine,
                 registry: MetadataPendingRegistry,
                 config_provider: Callable[[], AppConfig],
                 notifier: Optional[NotificationManager] = None,
                 reviewer: Optional[Reviewer] = None,
                 classifier: Optional[IntakeClassifier] = None):
        self.engine = engine
        self.registry = registry
        self.config_provider = config_provider
        self.notifier = notifier or NotificationManager()
        self.reviewer = reviewer
        self.classifier = classifier or IntakeClassifier()
        self.logger = logging.getLogger('IntakeService')

    async def handle_params(self, files: Iterable[Union[str, Path]] = (),
                            magnets: Iterable[str] = ()) -> IntakeReport:
        """解析文件与磁力链接后添加"""
        return await self.add_torrents(parse_inputs(files, magnets))

    async def add_torrents(self, batch: Iterable[TorrentDescriptor]) -> IntakeReport:
        batch = list(batch)
        report = IntakeReport()
        if not batch:
            return report

        # 整批处理期间使用同一份配置快照
        config = self.config_provider()
        result = self.classifier.classify(batch, config.labels, config.intake_defaults())
        report.pending_hashes = list(result.pending_hashes)

        if config.skip_add_torrent_dialog or self.reviewer is None:
            self.registry.register(result.pending_hashes)
            for descriptor in result.ready:
                await self._submit(descriptor, config, report)
        else:
            await self._review_all(result, config, report)

        self.logger.info(
            f"添加完成: 成功 {len(report.submitted)}, 失败 {len(report.failed)}, "
            f"重复 {len(report.duplicates)}, 取消 {len(report.cancelled)}"
        )
        return report

    async def _review_all(self, result: IntakeResult, config: AppConfig, report: IntakeReport):
        sessions = [ReviewSession(d, self.registry, config.labels) for d in result.ready]

        # 先订阅再登记，避免在两者之间到达的解析结果丢失
        for session in sessions:
            session.open()

        try:
            self.registry.register(result.pending_hashes)
            if result.pending_hashes:
                await self.engine.add_metadata_search(result.pending_hashes)

            for session in sessions:
                try:
                    descriptor = await self.reviewer.review(session)
                finally:
                    session.close()

                if descriptor is None:
                    self._cancel(session, report)
                else:
                    await self._submit(descriptor, config, report)
        finally:
            for session in sessions:
                session.close()

    def _cancel(self, session: ReviewSession, report: IntakeReport):
        descriptor = session.descriptor
        report.cancelled.append(descriptor)
        self.logger.info(f"用户取消添加: {descriptor.display_name}")

        info_hash = descriptor.info_hash
        if descriptor.is_metadata_pending and self.registry.subscriber_count(info_hash) == 0:
            self.registry.discard(info_hash)

    async def _submit(self, descriptor: TorrentDescriptor, config: AppConfig, report: IntakeReport):
        name = descriptor.display_name
        try:
            added = await self.engine.add_torrent(descriptor)
        except DuplicateTorrentError as e:
            self.logger.warning(f"重复种子: {name}")
            report.duplicates.append(descriptor)
            self.notifier.duplicate(name, e.info_hash or descriptor.info_hash)
            return
        except EngineError as e:
            self.logger.error(f"添加种子失败 {name}: {str(e)}")
            report.failed.append(descriptor)
            self.notifier.torrent_failed(name, str(e))
            return
        except Exception as e:
            self.logger.error(f"添加种子时发生意外错误 {name}: {str(e)}")
            report.failed.append(descriptor)
            self.notifier.torrent_failed(name, str(e))
            return

        if not added:
            report.duplicates.append(descriptor)
            return

        report.submitted.append(descriptor)
        label = LabelMatcher(config.labels).get_label(descriptor.label_id)
        self.notifier.torrent_added(name, descriptor.save_path, label.name if label else "")


__all__ = ["IntakeClassifier", "IntakeReport", "IntakeService"]
