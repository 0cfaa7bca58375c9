"""
引擎事件定义

引擎（可能在工作线程中）产生这些事件，经由 SessionSynchronizer.post()
转交到唯一的所有者事件循环上按到达顺序应用。
"""

from dataclasses import dataclass, field
from typing import List, Union

from .models import SessionStats, TorrentDescription, TorrentHandle


@dataclass(frozen=True)
class TorrentAdded:
    handle: TorrentHandle


@dataclass(frozen=True)
class TorrentRemoved:
    info_hash: str


@dataclass(frozen=True)
class TorrentsUpdated:
    handles: List[TorrentHandle] = field(default_factory=list)


@dataclass(frozen=True)
class StatisticsUpdated:
    stats: SessionStats


@dataclass(frozen=True)
class MetadataFound:
    info_hash: str
    description: TorrentDescription


@dataclass(frozen=True)
class TorrentFinished:
    handle: TorrentHandle


SessionEvent = Union[
    TorrentAdded,
    TorrentRemoved,
    TorrentsUpdated,
    StatisticsUpdated,
    MetadataFound,
    TorrentFinished,
]

__all__ = [
    "TorrentAdded",
    "TorrentRemoved",
    "TorrentsUpdated",
    "StatisticsUpdated",
    "MetadataFound",
    "TorrentFinished",
    "SessionEvent",
]
