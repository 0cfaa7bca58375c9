"""
测试配置和共享工具
"""

import json
from typing import Any, List, Optional, Tuple

import pytest

from torrent_desk.config import AppConfig, LabelConfig
from torrent_desk.display import Display
from torrent_desk.engine import TransferEngine
from torrent_desk.exceptions import DuplicateTorrentError, EngineError
from torrent_desk.models import TorrentHandle, TorrentState

HASH_A = "a" * 40
HASH_B = "b" * 40
HASH_C = "c" * 40


@pytest.fixture
def mock_config_data():
    """模拟配置数据"""
    return {
        "default_save_path": "/downloads",
        "skip_add_torrent_dialog": True,
        "pause_on_low_disk_space": True,
        "pause_on_low_disk_space_limit": 50,
        "enable_dht": True,
        "labels": [
            {
                "id": 1,
                "name": "Linux ISO",
                "color": "#2E7D32",
                "savePath": "/iso",
                "savePathEnabled": True,
                "applyFilter": "ubuntu",
                "applyFilterEnabled": True
            },
            {
                "id": 2,
                "name": "TV",
                "color": "#1565C0",
                "savePath": "/tv",
                "savePathEnabled": True,
                "applyFilter": r"S\d{2}E\d{2}",
                "applyFilterEnabled": True
            }
        ],
        "qbittorrent": {
            "host": "localhost",
            "port": 8080,
            "username": "test_user",
            "password": "test_pass",
            "use_https": False,
            "verify_ssl": False
        },
        "hot_reload": False,
        "log_level": "INFO",
        "log_file": None
    }


@pytest.fixture
def app_config(mock_config_data):
    """由模拟数据构建的应用配置"""
    return AppConfig(**mock_config_data)


@pytest.fixture
def config_file(tmp_path, mock_config_data):
    """写入临时目录的JSON配置文件"""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(mock_config_data), encoding="utf-8")
    return path


def make_label(label_id: int, pattern: str = "", save_path: str = "",
               filter_enabled: bool = True, save_path_enabled: bool = True,
               name: Optional[str] = None) -> LabelConfig:
    return LabelConfig(
        id=label_id,
        name=name or f"label-{label_id}",
        save_path=save_path,
        save_path_enabled=save_path_enabled,
        apply_filter=pattern,
        apply_filter_enabled=filter_enabled,
    )


def make_handle(info_hash: str = HASH_A, name: str = "torrent",
                state: TorrentState = TorrentState.DOWNLOADING,
                save_path: str = "/downloads", **kwargs) -> TorrentHandle:
    return TorrentHandle(info_hash=info_hash, name=name, state=state, save_path=save_path, **kwargs)


class RecordingDisplay(Display):
    """记录所有显示信号"""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def last(self, name: str):
        for call_name, args in reversed(self.calls):
            if call_name == name:
                return args
        return None

    def selection_changed(self, selection):
        self.calls.append(("selection_changed", selection))

    def selection_reset(self):
        self.calls.append(("selection_reset", None))

    def refresh(self, subset):
        self.calls.append(("refresh", subset))

    def update_torrent_count(self, count):
        self.calls.append(("update_torrent_count", count))

    def update_transfer_rates(self, download_rate, upload_rate):
        self.calls.append(("update_transfer_rates", (download_rate, upload_rate)))

    def update_dht_nodes(self, nodes):
        self.calls.append(("update_dht_nodes", nodes))

    def update_progress(self, progress):
        self.calls.append(("update_progress", progress))

    def update_labels(self, labels, use_color):
        self.calls.append(("update_labels", (labels, use_color)))


class RecordingNotifier:
    """记录通知调用"""

    def __init__(self):
        self.notifications: List[Tuple[str, str]] = []
        self.added: List[str] = []
        self.failed: List[str] = []
        self.duplicates: List[str] = []

    def notify(self, title: str, message: str):
        self.notifications.append((title, message))

    def torrent_added(self, name, save_path, label=""):
        self.added.append(name)

    def torrent_failed(self, name, error_message):
        self.failed.append(name)

    def duplicate(self, name, info_hash):
        self.duplicates.append(name)


class MockEngine(TransferEngine):
    """模拟传输引擎"""

    def __init__(self):
        self.added = []
        self.metadata_searches: List[List[str]] = []
        self.paused: List[str] = []
        self.existing = set()
        self.fail_hashes = set()

    async def add_torrent(self, descriptor):
        if descriptor.info_hash in self.fail_hashes:
            raise EngineError("模拟失败")
        if descriptor.info_hash in self.existing:
            if descriptor.duplicate_is_error:
                raise DuplicateTorrentError("已存在", info_hash=descriptor.info_hash)
            return False
        self.existing.add(descriptor.info_hash)
        self.added.append(descriptor)
        return True

    async def add_metadata_search(self, hashes):
        self.metadata_searches.append(list(hashes))

    async def pause_torrent(self, info_hash):
        self.paused.append(info_hash)
        return True

    async def events(self, sink):
        return None


@pytest.fixture
def display():
    return RecordingDisplay()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine():
    return MockEngine()


@pytest.fixture
def mock_magnet_link():
    """模拟磁力链接"""
    return f"magnet:?xt=urn:btih:{'0123456789abcdef' * 2}01234567&dn=Ubuntu.ISO&tr=udp%3A%2F%2Ftracker.example.com%3A80"
