"""
输入解析模块

把种子文件路径和磁力链接转换为 TorrentDescriptor。
格式错误的输入逐个跳过并记录日志，不会中断整批处理。
"""

import io
import logging
import re
import urllib.parse
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import torf

from .exceptions import MagnetParseError, TorrentFileError
from .models import TorrentDescription, TorrentDescriptor, TorrentFile

logger = logging.getLogger('Parsing')

_BTMH_PREFIX = 'urn:btmh:1220'
_HEX64 = re.compile(r'^[0-9a-fA-F]{64}$')
# torf 只接受这些参数，其余（x.pe、so 等）在解析前去掉
_TORF_PARAMS = frozenset({"xt", "dn", "xl", "tr", "ws", "as", "xs", "kt"})


def parse_torrent_file(path: Union[str, Path]) -> TorrentDescriptor:
    """读取单个 .torrent 文件，返回已解析的描述符"""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise TorrentFileError(f"无法读取种子文件: {e}", path=str(path)) from e

    try:
        torrent = torf.Torrent.read_stream(io.BytesIO(data))
    except torf.TorfError as e:
        raise TorrentFileError(f"种子文件格式错误: {e}", path=str(path)) from e

    files = [TorrentFile(path=str(f), size=f.size) for f in torrent.files]
    description = TorrentDescription(
        name=torrent.name or "",
        info_hash_v1=torrent.infohash.lower(),
        total_size=torrent.size or 0,
        files=files,
        metainfo=data,
    )
    trackers = [url for tier in (torrent.trackers or ()) for url in tier]

    return TorrentDescriptor(
        info_hash_v1=description.info_hash_v1,
        name=description.name,
        description=description,
        source=str(path),
        trackers=trackers,
    )


def _split_magnet(uri: str) -> Tuple[str, Optional[str]]:
    """取出 v2 主题（btmh），并去掉 torf 不识别的参数"""
    base, sep, query = uri.partition('?')
    if not sep:
        return uri, None

    info_hash_v2 = None
    kept = []
    for param in query.split('&'):
        key, _, value = param.partition('=')
        if key == 'xt':
            topic = urllib.parse.unquote(value)
            if topic.lower().startswith(_BTMH_PREFIX):
                digest = topic[len(_BTMH_PREFIX):]
                if not _HEX64.match(digest):
                    raise MagnetParseError("无效的v2哈希", magnet_link=uri)
                info_hash_v2 = digest.lower()
                continue
        if key not in _TORF_PARAMS:
            continue
        kept.append(param)

    return f"{base}?{'&'.join(kept)}", info_hash_v2


def _has_btih(uri: str) -> bool:
    query = urllib.parse.urlsplit(uri).query
    return any(
        key == 'xt' and value.lower().startswith('urn:btih:')
        for key, value in urllib.parse.parse_qsl(query)
    )


def parse_magnet_link(uri: str) -> TorrentDescriptor:
    """解析单个磁力链接，返回等待元数据的描述符"""
    uri = (uri or "").strip()
    if not uri.lower().startswith('magnet:?'):
        raise MagnetParseError("不是磁力链接", magnet_link=uri)

    stripped, info_hash_v2 = _split_magnet(uri)

    if not _has_btih(stripped):
        if info_hash_v2 is None:
            raise MagnetParseError("磁力链接缺少哈希", magnet_link=uri)
        # 仅包含v2哈希
        params = urllib.parse.parse_qs(urllib.parse.urlsplit(stripped).query)
        return TorrentDescriptor(
            info_hash_v2=info_hash_v2,
            name=(params.get('dn') or [""])[0],
            source=uri,
            trackers=params.get('tr', []),
        )

    try:
        magnet = torf.Magnet.from_string(stripped)
    except torf.TorfError as e:
        raise MagnetParseError(f"磁力链接格式错误: {e}", magnet_link=uri) from e

    return TorrentDescriptor(
        info_hash_v1=magnet.infohash.lower(),
        info_hash_v2=info_hash_v2,
        name=magnet.dn or "",
        source=uri,
        trackers=list(magnet.tr or []),
    )


def parse_torrent_files(paths: Iterable[Union[str, Path]]) -> List[TorrentDescriptor]:
    descriptors = []
    for path in paths:
        try:
            descriptors.append(parse_torrent_file(path))
        except TorrentFileError as e:
            logger.error(f"跳过种子文件 {path}: {str(e)}")
    return descriptors


def parse_magnet_links(links: Iterable[str]) -> List[TorrentDescriptor]:
    descriptors = []
    for link in links:
        try:
            descriptors.append(parse_magnet_link(link))
        except MagnetParseError as e:
            logger.warning(f"跳过磁力链接 {link[:60] if link else link!r}: {str(e)}")
    return descriptors


def parse_inputs(files: Iterable[Union[str, Path]] = (), magnets: Iterable[str] = ()) -> List[TorrentDescriptor]:
    """先解析文件，再解析磁力链接"""
    return parse_torrent_files(files) + parse_magnet_links(magnets)


__all__ = [
    "parse_torrent_file",
    "parse_magnet_link",
    "parse_torrent_files",
    "parse_magnet_links",
    "parse_inputs",
]
