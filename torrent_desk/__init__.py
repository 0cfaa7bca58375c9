"""
TorrentDesk 种子添加分类与会话同步工具

提供种子/磁力链接解析、标签自动匹配、元数据等待、选中集合同步和磁盘空间保护等功能。
"""

# 导入版本信息
from .__version__ import (
    __version__,
    __version_info__,
    PROJECT_NAME,
    PROJECT_DESCRIPTION,
    AUTHOR,
    get_version_string,
    get_version_info
)
from .config import AppConfig, ConfigManager, LabelConfig
from .disk_space import DiskSpaceGovernor
from .exceptions import ConfigError, EngineError, TorrentDeskError, TorrentParseError
from .intake import IntakeClassifier, IntakeService
from .labels import LabelMatcher
from .metadata import MetadataPendingRegistry
from .qbittorrent_client import QBittorrentEngine
from .selection import SelectionTracker
from .session import SessionSynchronizer

__author__ = AUTHOR
__all__ = [
    # 版本信息
    "__version__",
    "__version_info__",
    "PROJECT_NAME",
    "PROJECT_DESCRIPTION",
    "get_version_string",
    "get_version_info",
    # 核心类
    "ConfigManager",
    "AppConfig",
    "LabelConfig",
    "LabelMatcher",
    "IntakeClassifier",
    "IntakeService",
    "MetadataPendingRegistry",
    "SelectionTracker",
    "DiskSpaceGovernor",
    "SessionSynchronizer",
    "QBittorrentEngine",
    # 异常类
    "TorrentDeskError",
    "ConfigError",
    "EngineError",
    "TorrentParseError",
]
