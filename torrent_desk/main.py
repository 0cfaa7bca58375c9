"""主程序模块

支持：
- CLI界面
- 一次性添加与长期同步两种运行方式
- 优雅关闭
- 配置热加载
"""

import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

import click

from .__version__ import __version__
from .config import AppConfig, ConfigManager, get_config_path
from .display import ConsoleDisplay
from .exceptions import ConfigError, EngineError
from .intake import IntakeReport, IntakeService
from .logging_config import setup_logging
from .notifications import NotificationManager
from .qbittorrent_client import QBittorrentEngine
from .review import ConsoleReviewer
from .session import SessionSynchronizer


class TorrentDeskApp:
    """主应用程序类"""

    def __init__(self, config_path: Optional[str] = None, skip_review: Optional[bool] = None):
        self.config_path = config_path
        self.skip_review = skip_review
        self.config_manager: Optional[ConfigManager] = None
        self.config: Optional[AppConfig] = None
        self.engine: Optional[QBittorrentEngine] = None
        self.synchronizer: Optional[SessionSynchronizer] = None
        self.intake: Optional[IntakeService] = None
        self.logger: Optional[logging.Logger] = None
        self.shutdown_event = asyncio.Event()
        self._tasks = []

    def config_snapshot(self) -> AppConfig:
        config = self.config_manager.snapshot()
        if self.skip_review is not None:
            config.skip_add_torrent_dialog = self.skip_review
        return config

    async def initialize(self):
        """初始化应用程序"""
        self.config_manager = ConfigManager(self.config_path)
        self.config = await self.config_manager.load_config()
        self.logger = setup_logging(self.config.log_level, self.config.log_file)

        self.engine = QBittorrentEngine(self.config.qbittorrent, add_paused=self.config.add_torrents_paused)
        await self.engine.__aenter__()

        notifier = NotificationManager(self.config.notifications)
        self.synchronizer = SessionSynchronizer(
            self.engine,
            ConsoleDisplay(),
            self.config_snapshot,
            notifier=notifier,
        )
        self.intake = IntakeService(
            self.engine,
            self.synchronizer.registry,
            self.config_snapshot,
            notifier=notifier,
            reviewer=ConsoleReviewer(self.config.metadata_wait_timeout),
        )

        self.config_manager.register_reload_callback(self._on_config_reload)
        await self.synchronizer.start()

        self._tasks = [
            asyncio.create_task(self.synchronizer.run()),
            asyncio.create_task(self.engine.events(self.synchronizer.post)),
        ]
        self.logger.info("应用程序初始化完成")

    async def _wait_for_first_sync(self, timeout: float):
        """等待第一次全量同步被应用"""
        deadline = time.monotonic() + timeout
        while self.engine.tracker.rid == 0 and time.monotonic() < deadline:
            await asyncio.sleep(0.1)
        await self.synchronizer.drain()

    async def _wait_for_submitted(self, report: IntakeReport, timeout: float):
        """等待提交的种子出现在会话中"""
        expected = {d.info_hash for d in report.submitted if d.info_hash}
        deadline = time.monotonic() + timeout
        while expected - set(self.synchronizer.torrents) and time.monotonic() < deadline:
            await asyncio.sleep(0.2)

        missing = expected - set(self.synchronizer.torrents)
        if missing:
            self.logger.warning(f"{len(missing)} 个种子未在超时时间内出现在会话中")

    async def add(self, files: Sequence[str], magnets: Sequence[str]) -> IntakeReport:
        """一次性添加后退出"""
        try:
            await self.initialize()
            report = await self.intake.handle_params(files, magnets)
            await self._wait_for_submitted(report, max(self.config.metadata_wait_timeout, 5.0))
            return report
        finally:
            await self.cleanup()

    async def run(self, files: Sequence[str] = (), magnets: Sequence[str] = (),
                  selection: Sequence[str] = ()):
        """启动长期同步循环"""
        try:
            await self.initialize()

            self.logger.info("=" * 60)
            self.logger.info("TorrentDesk 会话同步启动")
            self.logger.info(f"qBittorrent: {self.config.qbittorrent.host}:{self.config.qbittorrent.port}")
            self.logger.info(f"标签数量: {len(self.config.labels)}")
            self.logger.info("=" * 60)

            self._setup_signal_handlers()

            if files or magnets:
                await self.intake.handle_params(files, magnets)

            if selection:
                await self._wait_for_first_sync(self.config.qbittorrent.poll_interval * 4)
                self.synchronizer.select(selection)

            await self.shutdown_event.wait()
            self.logger.info("收到关闭信号，正在优雅关闭...")
        finally:
            await self.cleanup()

    def _setup_signal_handlers(self):
        """设置信号处理器"""
        loop = asyncio.get_running_loop()

        def signal_handler(signum, frame):
            self.logger.info(f"收到信号 {signum}")
            loop.call_soon_threadsafe(self.shutdown_event.set)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def cleanup(self):
        """清理所有资源"""
        if self.synchronizer is not None:
            self.synchronizer.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self.engine is not None:
            await self.engine.__aexit__(None, None, None)

        if self.config_manager is not None:
            self.config_manager.cleanup()

        if self.logger:
            self.logger.info("应用程序资源清理完成")

    async def _on_config_reload(self, old_config: Optional[AppConfig], new_config: AppConfig):
        """配置重载回调"""
        self.logger.info("检测到配置变更")
        self.config = new_config

        if old_config is not None and old_config.log_level != new_config.log_level:
            logging.getLogger().setLevel(getattr(logging, new_config.log_level.upper(), logging.INFO))
            self.logger.info(f"日志级别已更新为: {new_config.log_level}")

        if self.synchronizer is not None:
            await self.synchronizer.on_config_reloaded(old_config, new_config)


def _load_config(config: Optional[str]) -> AppConfig:
    config_manager = ConfigManager(config)
    try:
        return asyncio.run(config_manager.load_config())
    finally:
        config_manager.cleanup()


def _run_app(coro):
    try:
        return asyncio.run(coro)
    except ConfigError as e:
        click.echo(f"配置错误: {str(e)}", err=True)
        sys.exit(1)
    except EngineError as e:
        click.echo(f"qBittorrent错误: {str(e)}", err=True)
        sys.exit(1)


# CLI命令
@click.group()
@click.version_option(version=__version__)
def cli():
    """TorrentDesk：种子添加分类与会话同步工具"""
    pass


@cli.command()
@click.argument('files', nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option('--magnet', '-m', 'magnets', multiple=True, help='磁力链接，可重复')
@click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')
@click.option('--skip-review/--review', default=None, help='是否跳过逐个审核（默认读取配置）')
def add(files, magnets, config: Optional[str], skip_review: Optional[bool]):
    """添加种子文件或磁力链接"""
    if not files and not magnets:
        click.echo("❌ 没有需要添加的种子", err=True)
        sys.exit(1)

    app = TorrentDeskApp(config, skip_review=skip_review)
    try:
        report = _run_app(app.add(list(files), list(magnets)))
    except KeyboardInterrupt:
        click.echo("\n已取消")
        return

    click.echo(
        f"✅ 成功 {len(report.submitted)} | ❌ 失败 {len(report.failed)} | "
        f"⚠️ 重复 {len(report.duplicates)} | 取消 {len(report.cancelled)}"
    )
    if report.failed:
        sys.exit(1)


@cli.command()
@click.argument('files', nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option('--magnet', '-m', 'magnets', multiple=True, help='启动时添加的磁力链接')
@click.option('--select', 'selection', multiple=True, help='启动后选中的种子哈希')
@click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')
def run(files, magnets, selection, config: Optional[str]):
    """启动会话同步"""
    app = TorrentDeskApp(config)
    try:
        _run_app(app.run(list(files), list(magnets), list(selection)))
    except KeyboardInterrupt:
        click.echo("\n同步已停止")


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')
def labels(config: Optional[str]):
    """按匹配顺序列出标签"""
    try:
        app_config = _load_config(config)
    except ConfigError as e:
        click.echo(f"❌ 配置错误: {str(e)}", err=True)
        sys.exit(1)

    if not app_config.labels:
        click.echo("未配置任何标签")
        return

    click.echo(f"{'ID':>4}  {'名称':<16} {'颜色':<8} {'过滤规则':<30} 保存路径")
    for label in app_config.labels:
        pattern = label.apply_filter if label.apply_filter_enabled else "-"
        save_path = label.save_path if label.save_path_enabled else "-"
        click.echo(f"{label.id:>4}  {label.name:<16} {label.color:<8} {pattern:<30} {save_path}")


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')
def validate_config(config: Optional[str]):
    """验证配置文件"""
    config_path = config or get_config_path()

    try:
        app_config = _load_config(config_path)
        click.echo(f"✅ 配置文件验证通过: {config_path}")
        click.echo(f"   - qBittorrent: {app_config.qbittorrent.host}:{app_config.qbittorrent.port}")
        click.echo(f"   - 标签数量: {len(app_config.labels)}")
        click.echo(f"   - 默认保存路径: {app_config.default_save_path}")

    except ConfigError as e:
        click.echo(f"❌ 配置文件验证失败: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='配置文件路径')
def test_connection(config: Optional[str]):
    """测试qBittorrent连接"""
    async def test():
        config_manager = ConfigManager(config)
        try:
            app_config = await config_manager.load_config()

            click.echo("正在测试qBittorrent连接...")
            async with QBittorrentEngine(app_config.qbittorrent) as engine:
                version = await engine.get_version()
                click.echo(f"✅ 连接成功！qBittorrent版本: {version}")
        finally:
            config_manager.cleanup()

    try:
        asyncio.run(test())
    except (ConfigError, EngineError) as e:
        click.echo(f"❌ 连接失败: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
def create_config():
    """创建默认配置文件"""
    config_path = Path(get_config_path())

    if config_path.exists():
        if not click.confirm(f"配置文件 {config_path} 已存在，是否覆盖？"):
            return

    try:
        config_manager = ConfigManager(config_path)
        config_manager._create_default_config()
        click.echo(f"✅ 默认配置文件已创建: {config_path}")
        click.echo("请编辑配置文件并设置：")
        click.echo("   - qBittorrent连接信息")
        click.echo("   - 默认保存路径")
        click.echo("   - 标签及其过滤规则")

    except ConfigError as e:
        click.echo(f"❌ 创建配置文件失败: {str(e)}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
