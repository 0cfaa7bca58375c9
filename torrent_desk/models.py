"""
核心数据模型

包含：
- 待添加种子描述（TorrentDescriptor）及其完整元数据（TorrentDescription）
- 引擎侧种子快照（TorrentHandle）和会话统计（SessionStats）
- 标签匹配结果、磁盘空间阈值、分类器输入输出
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

V1_HASH_LENGTH = 40
V2_HASH_LENGTH = 64


def is_placeholder_hash(value: Optional[str]) -> bool:
    """哈希缺失或为全零占位值"""
    if not value:
        return True
    return set(value) == {'0'}


@dataclass
class TorrentFile:
    path: str
    size: int = 0


@dataclass
class TorrentDescription:
    """种子的完整元数据（info字典已知）"""
    name: str
    info_hash_v1: Optional[str] = None
    total_size: int = 0
    files: List[TorrentFile] = field(default_factory=list)
    metainfo: Optional[bytes] = None  # 从文件解析时保留原始bencode数据


@dataclass
class TorrentDescriptor:
    """一次待提交给引擎的添加请求"""
    info_hash_v1: Optional[str] = None
    info_hash_v2: Optional[str] = None
    name: str = ""
    save_path: str = ""
    description: Optional[TorrentDescription] = None
    source: Optional[str] = None  # 磁力链接或种子文件路径
    trackers: List[str] = field(default_factory=list)
    flags: Dict[str, Any] = field(default_factory=dict)
    duplicate_is_error: bool = False
    label_id: Optional[int] = None

    @property
    def info_hash(self) -> Optional[str]:
        """标识哈希：优先v1，其次截断到40位的v2（与qBittorrent的torrent id一致）"""
        if not is_placeholder_hash(self.info_hash_v1):
            return self.info_hash_v1
        if not is_placeholder_hash(self.info_hash_v2):
            return self.info_hash_v2[:V1_HASH_LENGTH]
        return None

    @property
    def is_resolved(self) -> bool:
        return self.description is not None

    @property
    def is_metadata_pending(self) -> bool:
        return self.description is None and self.info_hash is not None

    @property
    def derived_name(self) -> str:
        if self.name:
            return self.name
        if self.description is not None and self.description.name:
            return self.description.name
        return ""

    @property
    def display_name(self) -> str:
        name = self.derived_name
        if name:
            return name
        return f"未命名_{(self.info_hash or '')[:8]}"


class TorrentState(Enum):
    """引擎上报的种子状态"""
    ERROR = "error"
    MISSING_FILES = "missingFiles"
    UPLOADING = "uploading"
    PAUSED_UP = "pausedUP"
    STOPPED_UP = "stoppedUP"
    QUEUED_UP = "queuedUP"
    STALLED_UP = "stalledUP"
    CHECKING_UP = "checkingUP"
    FORCED_UP = "forcedUP"
    ALLOCATING = "allocating"
    DOWNLOADING = "downloading"
    META_DL = "metaDL"
    FORCED_META_DL = "forcedMetaDL"
    PAUSED_DL = "pausedDL"
    STOPPED_DL = "stoppedDL"
    QUEUED_DL = "queuedDL"
    STALLED_DL = "stalledDL"
    CHECKING_DL = "checkingDL"
    FORCED_DL = "forcedDL"
    CHECKING_RESUME_DATA = "checkingResumeData"
    MOVING = "moving"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TorrentState":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


PAUSED_STATES = frozenset({
    TorrentState.PAUSED_DL, TorrentState.PAUSED_UP,
    TorrentState.STOPPED_DL, TorrentState.STOPPED_UP,
    TorrentState.ERROR, TorrentState.MISSING_FILES,
})

DOWNLOADING_STATES = frozenset({
    TorrentState.DOWNLOADING, TorrentState.FORCED_DL, TorrentState.STALLED_DL,
    TorrentState.QUEUED_DL, TorrentState.META_DL, TorrentState.FORCED_META_DL,
    TorrentState.ALLOCATING, TorrentState.CHECKING_DL,
})

METADATA_STATES = frozenset({TorrentState.META_DL, TorrentState.FORCED_META_DL})


@dataclass(frozen=True)
class TorrentHandle:
    """引擎中某个种子的只读快照，同一种子每次更新都可能是新对象"""
    info_hash: str
    name: str = ""
    save_path: str = ""
    state: TorrentState = TorrentState.DOWNLOADING
    progress: float = 0.0
    download_rate: int = 0
    upload_rate: int = 0
    total_wanted: int = 0
    total_wanted_done: int = 0
    label_id: Optional[int] = None

    @property
    def is_paused(self) -> bool:
        return self.state in PAUSED_STATES

    @property
    def is_downloading(self) -> bool:
        return self.state in DOWNLOADING_STATES

    @property
    def is_finished(self) -> bool:
        return self.progress >= 1.0


@dataclass
class SessionStats:
    """引擎周期性上报的汇总统计"""
    download_rate: int = 0
    upload_rate: int = 0
    dht_nodes: int = 0
    total_wanted: int = 0
    total_wanted_done: int = 0
    is_downloading_any: bool = False

    @property
    def progress(self) -> Optional[float]:
        if not self.is_downloading_any or self.total_wanted <= 0:
            return None
        return self.total_wanted_done / float(self.total_wanted)


@dataclass(frozen=True)
class LabelAssignment:
    """标签匹配结果：最多一个标签，外加实际生效的保存路径"""
    label_id: Optional[int] = None
    save_path: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.label_id is not None


NO_LABEL = LabelAssignment()


@dataclass(frozen=True)
class DiskSpaceThreshold:
    enabled: bool = False
    limit_percent: int = 0

    @property
    def limit_ratio(self) -> float:
        return self.limit_percent / 100.0


@dataclass(frozen=True)
class IntakeDefaults:
    default_save_path: str = ""


@dataclass
class IntakeResult:
    ready: List[TorrentDescriptor] = field(default_factory=list)
    pending_hashes: List[str] = field(default_factory=list)

    def __iter__(self):
        # 支持 ready, pending = classifier.classify(...)
        return iter((self.ready, self.pending_hashes))


LabelMap = Dict[int, Tuple[str, str]]
