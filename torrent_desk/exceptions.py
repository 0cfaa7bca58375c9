"""
统一异常处理模块

定义项目中使用的各种异常类型。核心流程中的错误全部降级为"跳过该项、继续批处理"，
这里的异常主要出现在配置加载、引擎通信和输入解析的边界上。
"""

from typing import Optional, Any, Dict, List


class TorrentDeskError(Exception):
    """项目基础异常类"""

    def __init__(self, message: str, details: Optional[Any] = None, retry_after: Optional[int] = None):
        super().__init__(message)
        self.details = details
        self.retry_after = retry_after
        self.error_code = None

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式，便于日志记录"""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "details": self.details,
            "retry_after": self.retry_after,
            "error_code": self.error_code,
        }


class ConfigError(TorrentDeskError):
    """配置相关异常"""
    pass


class ConfigValidationError(ConfigError):
    """配置验证异常"""

    def __init__(self, message: str, validation_errors: List[Dict[str, Any]]):
        super().__init__(message, details={"validation_errors": validation_errors})
        self.validation_errors = validation_errors
        self.error_code = "CONFIG_VALIDATION_ERROR"


class ConfigNotFoundError(ConfigError):
    """配置文件未找到异常"""

    def __init__(self, config_path: str):
        super().__init__(f"配置文件未找到: {config_path}", details={"path": config_path})
        self.config_path = config_path
        self.error_code = "CONFIG_NOT_FOUND"


class EngineError(TorrentDeskError):
    """传输引擎操作异常基类"""

    def __init__(self, message: str, details: Optional[Any] = None,
                 retry_after: Optional[int] = None, engine_error_code: Optional[str] = None):
        super().__init__(message, details, retry_after)
        self.engine_error_code = engine_error_code
        self.error_code = engine_error_code or "ENGINE_ERROR"


class NetworkError(EngineError):
    """网络通信异常"""

    def __init__(self, message: str, url: Optional[str] = None,
                 status_code: Optional[int] = None, retry_after: Optional[int] = None):
        super().__init__(message, details={"url": url, "status_code": status_code}, retry_after=retry_after)
        self.url = url
        self.status_code = status_code
        self.error_code = "NETWORK_ERROR"


class EngineAuthError(EngineError):
    """引擎认证异常"""

    def __init__(self, message: str, auth_details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=auth_details)
        self.error_code = "ENGINE_AUTH_ERROR"


class EngineRateLimitError(EngineError):
    """引擎API限速异常"""

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, retry_after=retry_after)
        self.error_code = "ENGINE_RATE_LIMIT"


class EnginePermissionError(EngineError):
    """引擎权限异常"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message, details={"operation": operation})
        self.operation = operation
        self.error_code = "ENGINE_PERMISSION_ERROR"


class DuplicateTorrentError(EngineError):
    """重复添加种子异常（由引擎判定）"""

    def __init__(self, message: str, info_hash: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message, details={"info_hash": info_hash, "name": name})
        self.info_hash = info_hash
        self.name = name
        self.error_code = "DUPLICATE_TORRENT"


class TorrentParseError(TorrentDeskError):
    """种子解析异常"""

    def __init__(self, message: str, torrent_data: Optional[str] = None, parse_step: Optional[str] = None):
        super().__init__(message, details={"torrent_data": torrent_data, "parse_step": parse_step})
        self.torrent_data = torrent_data
        self.parse_step = parse_step
        self.error_code = "TORRENT_PARSE_ERROR"


class MagnetParseError(TorrentParseError):
    """磁力链接解析异常"""

    def __init__(self, message: str, magnet_link: Optional[str] = None):
        super().__init__(message, torrent_data=magnet_link, parse_step="magnet")
        self.magnet_link = magnet_link
        self.error_code = "MAGNET_PARSE_ERROR"


class TorrentFileError(TorrentParseError):
    """种子文件读取异常"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, torrent_data=path, parse_step="file")
        self.path = path
        self.error_code = "TORRENT_FILE_ERROR"


class DiskSpaceQueryError(TorrentDeskError):
    """磁盘空间查询异常"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, details={"path": path})
        self.path = path
        self.error_code = "DISK_SPACE_QUERY_ERROR"


class NotificationError(TorrentDeskError):
    """通知发送异常"""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message, details={"channel": channel})
        self.channel = channel
        self.error_code = "NOTIFICATION_ERROR"


__all__ = [
    "TorrentDeskError",
    "ConfigError",
    "ConfigValidationError",
    "ConfigNotFoundError",
    "EngineError",
    "NetworkError",
    "EngineAuthError",
    "EngineRateLimitError",
    "EnginePermissionError",
    "DuplicateTorrentError",
    "TorrentParseError",
    "MagnetParseError",
    "TorrentFileError",
    "DiskSpaceQueryError",
    "NotificationError",
]
