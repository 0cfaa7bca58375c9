"""
配置管理模块

支持：
- 多种配置格式（JSON, YAML, TOML）
- 环境变量覆盖
- 配置热加载（watchdog）
- 配置验证
- 读时复制的配置快照
"""

import asyncio
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError
from .models import DiskSpaceThreshold, IntakeDefaults


class LabelConfig(BaseModel):
    """用户标签配置，列表顺序即匹配顺序"""
    id: int
    name: str
    color: str = "#000000"
    save_path: str = Field(default="", alias='savePath')
    save_path_enabled: bool = Field(default=False, alias='savePathEnabled')
    apply_filter: str = Field(default="", alias='applyFilter')
    apply_filter_enabled: bool = Field(default=False, alias='applyFilterEnabled')

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """验证标签名称"""
        if not v or not v.strip():
            raise ValueError('标签名称不能为空')
        return v.strip()

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: str) -> str:
        """验证显示颜色"""
        v = v.strip()
        if not v.startswith('#') or len(v) not in (4, 7):
            raise ValueError('颜色必须是 #RGB 或 #RRGGBB 格式')
        return v


class QBittorrentConfig(BaseModel):
    """qBittorrent配置数据模型"""
    host: str = "localhost"
    port: int = 8080
    username: str = "admin"
    password: str = "adminadmin"
    use_https: bool = False
    verify_ssl: bool = True
    poll_interval: float = 1.5

    @field_validator('host')
    @classmethod
    def validate_host(cls, v: str) -> str:
        """验证主机地址"""
        if not v or not v.strip():
            raise ValueError('主机地址不能为空')
        return v.strip()

    @field_validator('port')
    @classmethod
    def validate_port(cls, v: int) -> int:
        """验证端口号"""
        if not (1 <= v <= 65535):
            raise ValueError('端口号必须在1-65535之间')
        return v

    @field_validator('poll_interval')
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        """验证轮询间隔"""
        if v <= 0 or v > 60:
            raise ValueError('轮询间隔必须在0-60秒之间')
        return v

    @property
    def base_url(self) -> str:
        return f"{'https' if self.use_https else 'http'}://{self.host}:{self.port}"


class ConsoleNotificationConfig(BaseModel):
    """控制台通知配置"""
    enabled: bool = True
    colored: bool = True


class NotificationConfig(BaseModel):
    """通知配置"""
    enabled: bool = True
    console: ConsoleNotificationConfig = ConsoleNotificationConfig()


class AppConfig(BaseModel):
    """应用配置数据模型"""
    default_save_path: str = str(Path.home() / "Downloads")
    skip_add_torrent_dialog: bool = False
    add_torrents_paused: bool = False
    # 磁盘空间保护
    pause_on_low_disk_space: bool = False
    pause_on_low_disk_space_limit: int = 5
    # 标签
    labels: List[LabelConfig] = []
    use_label_as_list_bgcolor: bool = False
    # 会话
    enable_dht: bool = True
    metadata_wait_timeout: float = 30.0
    qbittorrent: QBittorrentConfig = QBittorrentConfig()
    notifications: NotificationConfig = NotificationConfig()
    # 热加载配置
    hot_reload: bool = True
    # 日志配置
    log_level: str = "INFO"
    log_file: Optional[str] = "torrent_desk.log"

    @field_validator('pause_on_low_disk_space_limit')
    @classmethod
    def validate_disk_space_limit(cls, v: int) -> int:
        """验证磁盘空间百分比"""
        if v < 0 or v > 100:
            raise ValueError('磁盘空间限制必须在0-100之间')
        return v

    @field_validator('metadata_wait_timeout')
    @classmethod
    def validate_metadata_wait_timeout(cls, v: float) -> float:
        """验证元数据等待时间"""
        if v < 0:
            raise ValueError('元数据等待时间不能为负数')
        return v

    @model_validator(mode='after')
    def validate_label_ids(self) -> "AppConfig":
        """标签ID必须唯一"""
        seen = set()
        for label in self.labels:
            if label.id in seen:
                raise ValueError(f'标签ID重复: {label.id}')
            seen.add(label.id)
        return self

    def disk_space_threshold(self) -> DiskSpaceThreshold:
        return DiskSpaceThreshold(
            enabled=self.pause_on_low_disk_space,
            limit_percent=self.pause_on_low_disk_space_limit,
        )

    def intake_defaults(self) -> IntakeDefaults:
        return IntakeDefaults(default_save_path=self.default_save_path)


class ConfigFileHandler(FileSystemEventHandler):
    """配置文件变化监控处理器"""

    def __init__(self, config_manager: "ConfigManager"):
        self.config_manager = config_manager
        self.logger = logging.getLogger('Config.FileHandler')

    def on_modified(self, event):
        if event.is_directory:
            return

        if Path(event.src_path) == self.config_manager.config_path:
            self.logger.info(f"配置文件已修改: {event.src_path}")
            self._trigger_reload()

    def _trigger_reload(self):
        """watchdog线程中调用，把重载调度回加载配置时所在的事件循环"""
        loop = self.config_manager.loop
        if loop is None or loop.is_closed():
            self.logger.warning("没有可用的事件循环，忽略本次配置变化")
            return
        asyncio.run_coroutine_threadsafe(self.config_manager.reload_config(), loop)


class ConfigManager:
    """配置管理器"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.logger = logging.getLogger('ConfigManager')

        if config_path is None:
            self.config_path = get_config_path()
        else:
            self.config_path = Path(config_path)

        self.config: Optional[AppConfig] = None
        self.observer: Optional[Observer] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._reload_callbacks: List[Callable] = []
        self._lock = threading.Lock()

    async def load_config(self) -> AppConfig:
        """加载配置文件"""
        try:
            self.loop = asyncio.get_running_loop()

            if self.config is None and not self.config_path.exists():
                self._create_default_config()

            config_data = self._load_config_file()
            config_data = self._apply_env_overrides(config_data)
            self._validate_config_data(config_data)

            config = AppConfig(**config_data)
            with self._lock:
                self.config = config

            if config.hot_reload:
                self._start_file_watcher()

            self.logger.info(f"配置加载成功: {self.config_path} (标签数: {len(config.labels)})")
            return config

        except ValidationError as e:
            raise ConfigValidationError(f"配置验证失败: {str(e)}", e.errors()) from e
        except ConfigError:
            raise
        except Exception as e:
            raise ConfigError(f"配置加载失败: {str(e)}") from e

    def snapshot(self) -> AppConfig:
        """返回当前配置的深拷贝，批处理期间不会看到并发的配置修改"""
        with self._lock:
            if self.config is None:
                raise ConfigError("配置尚未加载")
            return self.config.model_copy(deep=True)

    def _load_config_file(self) -> Dict[str, Any]:
        """根据文件扩展名加载不同格式的配置文件"""
        suffix = self.config_path.suffix.lower()

        try:
            if suffix == '.toml':
                import tomllib
                with open(self.config_path, 'rb') as f:
                    return tomllib.load(f)
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if suffix in ['.yaml', '.yml']:
                    import yaml
                    return yaml.safe_load(f) or {}
                return json.load(f)
        except FileNotFoundError as e:
            raise ConfigNotFoundError(f"配置文件不存在: {self.config_path}") from e
        except Exception as e:
            raise ConfigError(f"配置文件格式错误: {str(e)}") from e

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """应用环境变量覆盖"""
        qbt_config = dict(config_data.get('qbittorrent') or {})
        env_map = {
            'host': 'TORRENT_DESK_QBIT_HOST',
            'port': 'TORRENT_DESK_QBIT_PORT',
            'username': 'TORRENT_DESK_QBIT_USER',
            'password': 'TORRENT_DESK_QBIT_PASS',
        }
        for key, env_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                qbt_config[key] = int(value) if key == 'port' else value
        config_data['qbittorrent'] = qbt_config

        save_path = os.getenv('TORRENT_DESK_SAVE_PATH')
        if save_path:
            config_data['default_save_path'] = save_path

        return config_data

    def _validate_config_data(self, config_data: Dict[str, Any]):
        """验证配置数据结构"""
        if not isinstance(config_data, dict):
            raise ConfigError("配置文件顶层必须是对象")

        labels = config_data.get('labels', [])
        if not isinstance(labels, list):
            raise ConfigError("labels 必须是列表，列表顺序即匹配顺序")

        for index, label in enumerate(labels):
            if not isinstance(label, dict) or 'id' not in label:
                raise ConfigError(f"第 {index + 1} 个标签缺少 id")

    def _start_file_watcher(self):
        """启动配置文件监控"""
        if self.observer is not None:
            return

        self.observer = Observer()
        event_handler = ConfigFileHandler(self)
        self.observer.schedule(
            event_handler,
            str(self.config_path.parent),
            recursive=False
        )
        self.observer.start()
        self.logger.info("配置文件热加载监控已启动")

    async def reload_config(self):
        """重新加载配置并通知回调"""
        try:
            old_config = self.config
            new_config = await self.load_config()

            for callback in self._reload_callbacks:
                try:
                    if asyncio.iscoroutinefunction(callback):
                        await callback(old_config, new_config)
                    else:
                        callback(old_config, new_config)
                except Exception as e:
                    self.logger.error(f"配置重载回调执行失败: {str(e)}")

            self.logger.info("配置重载完成")

        except ConfigError as e:
            self.logger.error(f"配置重载失败，继续使用旧配置: {str(e)}")

    def register_reload_callback(self, callback: Callable):
        """注册配置重载回调函数"""
        self._reload_callbacks.append(callback)

    def stop_file_watcher(self):
        """停止配置文件监控"""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
            self.logger.info("配置文件监控已停止")

    def validate_config_file(self, config_path: Optional[Path] = None) -> bool:
        """验证配置文件"""
        path = Path(config_path) if config_path else self.config_path

        try:
            if not path.exists():
                self.logger.error(f"配置文件不存在: {path}")
                return False

            temp_manager = ConfigManager(path)
            config_data = temp_manager._load_config_file()
            config_data = temp_manager._apply_env_overrides(config_data)
            temp_manager._validate_config_data(config_data)
            AppConfig(**config_data)

            self.logger.info(f"配置文件验证通过: {path}")
            return True

        except (ConfigError, ValidationError) as e:
            self.logger.error(f"配置文件验证失败: {path}, 错误: {str(e)}")
            return False

    def cleanup(self):
        """清理资源"""
        self.stop_file_watcher()
        self._reload_callbacks.clear()
        self.logger.info("ConfigManager资源已清理")

    def _create_default_config(self):
        """创建默认配置文件"""
        default_config = {
            "default_save_path": str(Path.home() / "Downloads"),
            "skip_add_torrent_dialog": False,
            "add_torrents_paused": False,
            "pause_on_low_disk_space": False,
            "pause_on_low_disk_space_limit": 5,
            "use_label_as_list_bgcolor": False,
            "enable_dht": True,
            "metadata_wait_timeout": 30,
            "labels": [
                {
                    "id": 1,
                    "name": "Linux ISO",
                    "color": "#2E7D32",
                    "savePath": str(Path.home() / "Downloads" / "iso"),
                    "savePathEnabled": True,
                    "applyFilter": r"ubuntu|debian|fedora|\.iso$",
                    "applyFilterEnabled": True
                },
                {
                    "id": 2,
                    "name": "TV",
                    "color": "#1565C0",
                    "savePath": str(Path.home() / "Downloads" / "tv"),
                    "savePathEnabled": True,
                    "applyFilter": r"S\d{1,2}E\d{1,3}",
                    "applyFilterEnabled": True
                },
                {
                    "id": 3,
                    "name": "Misc",
                    "color": "#9E9E9E",
                    "savePath": "",
                    "savePathEnabled": False,
                    "applyFilter": "",
                    "applyFilterEnabled": False
                }
            ],
            "qbittorrent": {
                "host": "localhost",
                "port": 8080,
                "username": "admin",
                "password": "adminadmin",
                "use_https": False,
                "verify_ssl": True,
                "poll_interval": 1.5
            },
            "notifications": {
                "enabled": True,
                "console": {
                    "enabled": True,
                    "colored": True
                }
            },
            "hot_reload": True,
            "log_level": "INFO",
            "log_file": "torrent_desk.log"
        }

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(default_config, f, indent=4, ensure_ascii=False)
            self.logger.info(f"已创建默认配置文件: {self.config_path}")
        except OSError as e:
            raise ConfigError(f"创建默认配置失败: {str(e)}") from e


def get_config_path() -> Path:
    """获取默认配置文件路径"""
    config_path = os.getenv('TORRENT_DESK_CONFIG')
    if config_path:
        return Path(config_path)

    current_dir = Path.cwd()
    for config_file in ['config.json', 'config.yaml', 'config.yml', 'config.toml']:
        candidate = current_dir / config_file
        if candidate.exists():
            return candidate

    return current_dir / 'config.json'
