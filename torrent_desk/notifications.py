"""
通知管理模块
"""

import logging
from datetime import datetime
from typing import Optional

from colorama import init, Fore, Style

from .config import NotificationConfig
from .exceptions import NotificationError

init(autoreset=True)


class NotificationManager:
    """简化的控制台通知管理器

    notify() 是"发出即忘"的调用，任何输出失败都只记录日志，不会抛给调用方。
    """

    def __init__(self, config: Optional[NotificationConfig] = None):
        self.config = config or NotificationConfig()
        self.logger = logging.getLogger('NotificationManager')

    @property
    def use_colors(self) -> bool:
        return self.config.console.colored

    @property
    def console_enabled(self) -> bool:
        return self.config.enabled and self.config.console.enabled

    def _get_timestamp(self) -> str:
        return datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    def _truncate_name(self, name: str, limit: int = 80) -> str:
        return name if len(name) <= limit else name[:limit - 3] + '...'

    def _print_block(self, color: str, lines):
        if self.use_colors:
            for label, value in lines:
                if label is None:
                    print(f"{color}{value}")
                else:
                    print(f"{Fore.CYAN}{label}: {Fore.WHITE}{value}")
            print(f"{color}{'─'*60}{Style.RESET_ALL}")
        else:
            for label, value in lines:
                print(value if label is None else f"{label}: {value}")
            print(f"{'─'*60}")

    def _emit(self, color: str, lines):
        if not self.console_enabled:
            return
        try:
            self._print_block(color, lines)
        except (OSError, ValueError) as e:
            error = NotificationError(f"控制台通知输出失败: {e}", channel="console")
            self.logger.warning(str(error))

    def notify(self, title: str, message: str):
        """发送一条简短通知（标题 + 消息）"""
        self.logger.info(f"通知: {title} - {message}")
        self._emit(Fore.BLUE, [
            (None, f"\n🔔 {title}"),
            ("📁 名称", self._truncate_name(message)),
            ("⏰ 时间", self._get_timestamp()),
        ])

    def torrent_added(self, name: str, save_path: str, label: str = ""):
        self._emit(Fore.GREEN, [
            (None, "\n✅ 种子添加成功!"),
            ("📁 名称", self._truncate_name(name)),
            ("📂 标签", label or "无"),
            ("💾 路径", save_path),
            ("⏰ 时间", self._get_timestamp()),
        ])

    def torrent_failed(self, name: str, error_message: str):
        self._emit(Fore.RED, [
            (None, "\n❌ 种子添加失败!"),
            ("📁 名称", self._truncate_name(name)),
            ("❌ 错误", error_message),
            ("⏰ 时间", self._get_timestamp()),
        ])

    def duplicate(self, name: str, info_hash: Optional[str]):
        self._emit(Fore.YELLOW, [
            (None, "\n⚠️  检测到重复种子"),
            ("📁 种子名称", self._truncate_name(name)),
            ("🔗 种子哈希", f"{(info_hash or '')[:16]}..."),
            ("⏰ 检测时间", self._get_timestamp()),
            (None, "💡 该种子已存在于qBittorrent中"),
        ])


__all__ = ["NotificationManager"]
