"""
qBittorrent传输引擎适配器

支持：
- 登录、添加、暂停（带tenacity重试）
- 轮询 sync/maindata 增量数据
- 把增量快照转换为会话事件（MainDataTracker）
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import aiohttp
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log
)

from .config import QBittorrentConfig
from .engine import EventSink, TransferEngine
from .events import (
    MetadataFound, SessionEvent, StatisticsUpdated, TorrentAdded,
    TorrentFinished, TorrentRemoved, TorrentsUpdated
)
from .exceptions import (
    DuplicateTorrentError, EngineAuthError, EngineError, EnginePermissionError,
    EngineRateLimitError, NetworkError
)
from .models import (
    METADATA_STATES, SessionStats, TorrentDescription, TorrentDescriptor,
    TorrentHandle, TorrentState
)

LABEL_TAG_PREFIX = 'label:'


def label_tag(label_id: int) -> str:
    return f"{LABEL_TAG_PREFIX}{label_id}"


def parse_label_tag(tags: Optional[str]) -> Optional[int]:
    """从qBittorrent的逗号分隔标签中取出标签ID"""
    for tag in (tags or "").split(','):
        tag = tag.strip()
        if tag.startswith(LABEL_TAG_PREFIX):
            try:
                return int(tag[len(LABEL_TAG_PREFIX):])
            except ValueError:
                continue
    return None


def handle_from_info(info_hash: str, info: Dict[str, Any]) -> TorrentHandle:
    return TorrentHandle(
        info_hash=info_hash,
        name=info.get('name', ''),
        save_path=info.get('save_path', ''),
        state=TorrentState.parse(info.get('state')),
        progress=float(info.get('progress', 0.0)),
        download_rate=int(info.get('dlspeed', 0)),
        upload_rate=int(info.get('upspeed', 0)),
        total_wanted=int(info.get('size', 0)),
        total_wanted_done=int(info.get('completed', 0)),
        label_id=parse_label_tag(info.get('tags')),
    )


class MainDataTracker:
    """合并 sync/maindata 的增量数据并产生会话事件

    事件顺序：新增、移除、更新、元数据已解析、下载完成、统计。
    """

    def __init__(self):
        self.rid = 0
        self.logger = logging.getLogger('MainDataTracker')
        self._torrents: Dict[str, Dict[str, Any]] = {}
        self._server_state: Dict[str, Any] = {}
        self._watched: Set[str] = set()

    @property
    def known_hashes(self) -> Set[str]:
        return set(self._torrents)

    def watch_metadata(self, hashes: Iterable[str]):
        self._watched.update(h for h in hashes if h)

    def _metadata_ready(self, info_hash: str, info: Dict[str, Any], old_state: Optional[str]) -> bool:
        state = TorrentState.parse(info.get('state'))
        if state in METADATA_STATES or not info.get('name'):
            return False
        if old_state is not None and TorrentState.parse(old_state) in METADATA_STATES:
            return True
        return info_hash in self._watched

    def _description(self, info_hash: str, info: Dict[str, Any]) -> TorrentDescription:
        return TorrentDescription(
            name=info.get('name', ''),
            info_hash_v1=info.get('infohash_v1') or info_hash,
            total_size=int(info.get('total_size', info.get('size', 0))),
        )

    def _statistics(self) -> SessionStats:
        handles = [handle_from_info(h, info) for h, info in self._torrents.items()]
        downloading = [h for h in handles if h.is_downloading]
        return SessionStats(
            download_rate=int(self._server_state.get('dl_info_speed', 0)),
            upload_rate=int(self._server_state.get('up_info_speed', 0)),
            dht_nodes=int(self._server_state.get('dht_nodes', 0)),
            total_wanted=sum(h.total_wanted for h in downloading),
            total_wanted_done=sum(h.total_wanted_done for h in downloading),
            is_downloading_any=bool(downloading),
        )

    def apply(self, data: Dict[str, Any]) -> List[SessionEvent]:
        self.rid = data.get('rid', self.rid)
        full_update = bool(data.get('full_update', False))
        incoming: Dict[str, Dict[str, Any]] = data.get('torrents') or {}

        removed = [h for h in (data.get('torrents_removed') or []) if h in self._torrents]
        if full_update:
            removed += [h for h in self._torrents if h not in incoming and h not in removed]

        added: List[TorrentHandle] = []
        updated: List[TorrentHandle] = []
        metadata: List[MetadataFound] = []
        finished: List[TorrentFinished] = []

        for info_hash, partial in incoming.items():
            previous = self._torrents.get(info_hash)

            if previous is None:
                info = dict(partial)
                self._torrents[info_hash] = info
                added.append(handle_from_info(info_hash, info))
                old_state, old_progress = None, None
            else:
                old_state = previous.get('state')
                old_progress = float(previous.get('progress', 0.0))
                info = dict(partial) if full_update else {**previous, **partial}
                self._torrents[info_hash] = info
                updated.append(handle_from_info(info_hash, info))

            if self._metadata_ready(info_hash, info, old_state):
                self._watched.discard(info_hash)
                metadata.append(MetadataFound(info_hash, self._description(info_hash, info)))

            if old_progress is not None and old_progress < 1.0 <= float(info.get('progress', 0.0)):
                finished.append(TorrentFinished(handle_from_info(info_hash, info)))

        for info_hash in removed:
            self._torrents.pop(info_hash, None)
            self._watched.discard(info_hash)

        self._server_state.update(data.get('server_state') or {})

        events: List[SessionEvent] = [TorrentAdded(handle) for handle in added]
        events.extend(TorrentRemoved(info_hash) for info_hash in removed)
        if updated:
            events.append(TorrentsUpdated(updated))
        events.extend(metadata)
        events.extend(finished)
        events.append(StatisticsUpdated(self._statistics()))
        return events


class QBittorrentEngine(TransferEngine):
    """通过WebUI API驱动qBittorrent"""

    def __init__(self, config: QBittorrentConfig, add_paused: bool = False):
        self.config = config
        self.add_paused = add_paused
        self.session: Optional[aiohttp.ClientSession] = None
        self.tracker = MainDataTracker()
        self.logger = logging.getLogger('QBittorrentEngine')
        self._base_url = config.base_url
        self._authenticated = False

    async def __aenter__(self):
        timeout = aiohttp.ClientTimeout(total=30, connect=10)
        connector = aiohttp.TCPConnector(ssl=None if self.config.verify_ssl else False)
        self.session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        try:
            await self.login()
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
        self._authenticated = False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((NetworkError, EngineRateLimitError)),
        before_sleep=before_sleep_log(logging.getLogger('QBittorrent.Retry'), logging.INFO),
        reraise=True
    )
    async def login(self):
        """登录qBittorrent"""
        url = f"{self._base_url}/api/v2/auth/login"
        data = {
            'username': self.config.username,
            'password': self.config.password
        }

        try:
            self.logger.info(f"尝试登录qBittorrent: {self.config.host}:{self.config.port}")
            async with self.session.post(url, data=data) as resp:
                if resp.status == 200:
                    response_text = await resp.text()
                    if response_text == "Ok.":
                        self._authenticated = True
                        self.logger.info("成功登录qBittorrent")
                        return
                    raise EngineAuthError(f"登录失败: {response_text}")
                elif resp.status == 403:
                    raise EngineAuthError("登录失败: 用户名或密码错误")
                elif resp.status == 429:
                    raise EngineRateLimitError("登录失败: API请求过于频繁")
                else:
                    error_text = await resp.text()
                    raise EngineError(f"登录失败: HTTP {resp.status} - {error_text}")

        except aiohttp.ClientError as e:
            raise NetworkError(f"网络连接失败: {str(e)}", url=url) from e

    async def get_version(self) -> str:
        """获取qBittorrent版本信息"""
        url = f"{self._base_url}/api/v2/app/version"
        try:
            async with self.session.get(url) as resp:
                if resp.status == 200:
                    return await resp.text()
                raise EngineError(f"获取版本失败: HTTP {resp.status}")
        except aiohttp.ClientError as e:
            raise NetworkError(f"获取版本失败: {str(e)}", url=url) from e

    def _add_form(self, descriptor: TorrentDescriptor) -> aiohttp.FormData:
        form = aiohttp.FormData()
        description = descriptor.description

        if description is not None and description.metainfo:
            form.add_field(
                'torrents',
                description.metainfo,
                filename=f"{descriptor.info_hash or 'upload'}.torrent",
                content_type='application/x-bittorrent'
            )
        elif descriptor.source:
            form.add_field('urls', descriptor.source)
        elif descriptor.info_hash_v1:
            form.add_field('urls', f"magnet:?xt=urn:btih:{descriptor.info_hash_v1}")
        else:
            form.add_field('urls', f"magnet:?xt=urn:btmh:1220{descriptor.info_hash_v2}")

        if descriptor.save_path:
            form.add_field('savepath', descriptor.save_path)
        if descriptor.name:
            form.add_field('rename', descriptor.name)
        if descriptor.label_id is not None:
            form.add_field('tags', label_tag(descriptor.label_id))

        paused = 'true' if self.add_paused else 'false'
        # qBittorrent 5 把 paused 改名为 stopped
        form.add_field('paused', paused)
        form.add_field('stopped', paused)

        for key, value in descriptor.flags.items():
            form.add_field(key, str(value))
        return form

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=3),
        retry=retry_if_exception_type((NetworkError, EngineRateLimitError)),
        before_sleep=before_sleep_log(logging.getLogger('QBittorrent.AddTorrent'), logging.INFO),
        reraise=True
    )
    async def add_torrent(self, descriptor: TorrentDescriptor) -> bool:
        """添加种子，重复种子按 duplicate_is_error 决定是否抛出异常"""
        url = f"{self._base_url}/api/v2/torrents/add"
        display_name = descriptor.display_name

        try:
            async with self.session.post(url, data=self._add_form(descriptor)) as resp:
                response_text = await resp.text()

                if resp.status == 200 and response_text.strip() != "Fails.":
                    self.logger.info(f"成功添加种子: {display_name} -> {descriptor.save_path}")
                    return True
                elif resp.status in (200, 409):
                    if descriptor.duplicate_is_error:
                        raise DuplicateTorrentError(
                            f"种子已存在: {display_name}",
                            info_hash=descriptor.info_hash,
                            name=display_name
                        )
                    self.logger.info(f"跳过重复种子: {display_name}")
                    return False
                elif resp.status == 403:
                    raise EnginePermissionError("添加种子失败: 权限不足", operation="torrents/add")
                elif resp.status == 429:
                    raise EngineRateLimitError("添加种子失败: API请求过于频繁")
                else:
                    raise EngineError(f"添加种子失败: HTTP {resp.status} - {response_text}")

        except aiohttp.ClientError as e:
            raise NetworkError(f"添加种子网络错误: {str(e)}", url=url) from e

    async def add_metadata_search(self, hashes: Iterable[str]):
        # qBittorrent只会为已添加的种子下载元数据，这里记录需要关注的哈希
        hashes = list(hashes)
        self.tracker.watch_metadata(hashes)
        self.logger.debug(f"关注元数据: {len(hashes)} 个哈希")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=3),
        retry=retry_if_exception_type((NetworkError, EngineRateLimitError)),
        before_sleep=before_sleep_log(logging.getLogger('QBittorrent.Pause'), logging.INFO),
        reraise=True
    )
    async def pause_torrent(self, info_hash: str) -> bool:
        """暂停种子（新版API为 stop，旧版为 pause）"""
        try:
            for endpoint in ('pause', 'stop'):
                url = f"{self._base_url}/api/v2/torrents/{endpoint}"
                async with self.session.post(url, data={'hashes': info_hash}) as resp:
                    if resp.status == 200:
                        self.logger.info(f"已暂停种子: {info_hash}")
                        return True
                    if resp.status == 404:
                        continue
                    if resp.status == 403:
                        raise EnginePermissionError("暂停种子失败: 权限不足", operation=endpoint)
                    error_text = await resp.text()
                    raise EngineError(f"暂停种子失败: HTTP {resp.status} - {error_text}")
            return False
        except aiohttp.ClientError as e:
            raise NetworkError(f"暂停种子网络错误: {str(e)}") from e

    async def sync_maindata(self, rid: int = 0) -> Dict[str, Any]:
        url = f"{self._base_url}/api/v2/sync/maindata"
        try:
            async with self.session.get(url, params={'rid': rid}) as resp:
                if resp.status == 200:
                    return await resp.json(content_type=None)
                if resp.status == 403:
                    self._authenticated = False
                    raise EngineAuthError("同步失败: 登录已失效")
                raise EngineError(f"同步失败: HTTP {resp.status}")
        except aiohttp.ClientError as e:
            raise NetworkError(f"同步网络错误: {str(e)}", url=url) from e

    async def events(self, sink: EventSink):
        """轮询增量数据直到任务被取消"""
        self.logger.info(f"开始同步qBittorrent会话 (间隔 {self.config.poll_interval}s)")
        while True:
            try:
                data = await self.sync_maindata(self.tracker.rid)
                for event in self.tracker.apply(data):
                    sink(event)
            except EngineAuthError:
                self.logger.warning("会话已失效，重新登录")
                try:
                    await self.login()
                except EngineError as e:
                    self.logger.error(f"重新登录失败: {str(e)}")
            except EngineError as e:
                self.logger.warning(f"同步失败: {str(e)}")

            await asyncio.sleep(self.config.poll_interval)


__all__ = [
    "QBittorrentEngine",
    "MainDataTracker",
    "handle_from_info",
    "label_tag",
    "parse_label_tag",
]
