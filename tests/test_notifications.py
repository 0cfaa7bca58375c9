"""
通知管理测试
"""

from torrent_desk.config import ConsoleNotificationConfig, NotificationConfig
from torrent_desk.notifications import NotificationManager


def test_notify_prints_plain_block(capsys):
    manager = NotificationManager(NotificationConfig(console=ConsoleNotificationConfig(colored=False)))
    manager.notify("磁盘空间不足，已暂停种子", "ubuntu.iso")

    out = capsys.readouterr().out
    assert "磁盘空间不足，已暂停种子" in out
    assert "📁 名称: ubuntu.iso" in out
    assert "─" * 60 in out


def test_disabled_console_is_silent(capsys):
    manager = NotificationManager(NotificationConfig(enabled=False))
    manager.notify("title", "message")
    manager.torrent_added("a", "/downloads")
    manager.torrent_failed("a", "error")
    manager.duplicate("a", "f" * 40)
    assert capsys.readouterr().out == ""


def test_long_names_are_truncated(capsys):
    manager = NotificationManager(NotificationConfig(console=ConsoleNotificationConfig(colored=False)))
    manager.torrent_added("x" * 200, "/downloads", "ISO")

    out = capsys.readouterr().out
    assert "x" * 77 + "..." in out
    assert "📂 标签: ISO" in out


def test_duplicate_shows_short_hash(capsys):
    manager = NotificationManager(NotificationConfig(console=ConsoleNotificationConfig(colored=False)))
    manager.duplicate("ubuntu.iso", "0123456789abcdef" * 2 + "01234567")
    assert "0123456789abcdef..." in capsys.readouterr().out
