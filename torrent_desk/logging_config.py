"""
日志配置模块
"""

import logging
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = 'TorrentDesk'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """配置日志系统

    组件各自使用具名logger（如 ``LabelMatcher``），处理器挂在root上，
    所有组件的输出都会经过同一组控制台/文件处理器。
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    root = logging.getLogger()

    if getattr(root, '_torrent_desk_configured', False):
        return logger

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as exc:
            logger.warning(f"无法创建日志文件 {log_file}: {exc}")

    root._torrent_desk_configured = True
    return logger
