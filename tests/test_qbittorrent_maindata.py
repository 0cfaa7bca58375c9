"""
sync/maindata 增量合并测试
"""

from conftest import HASH_A, HASH_B

from torrent_desk.events import (
    MetadataFound, StatisticsUpdated, TorrentAdded, TorrentFinished,
    TorrentRemoved, TorrentsUpdated
)
from torrent_desk.models import TorrentState
from torrent_desk.qbittorrent_client import MainDataTracker, handle_from_info, label_tag, parse_label_tag


def torrent_info(**overrides):
    info = {
        "name": "ubuntu.iso",
        "save_path": "/iso",
        "state": "downloading",
        "progress": 0.25,
        "dlspeed": 1000,
        "upspeed": 10,
        "size": 400,
        "completed": 100,
        "tags": "label:1",
    }
    info.update(overrides)
    return info


def kinds(events):
    return [type(e).__name__ for e in events]


class TestMainDataTracker:

    def test_full_update_adds_torrents_and_statistics(self):
        tracker = MainDataTracker()
        events = tracker.apply({
            "rid": 1,
            "full_update": True,
            "torrents": {HASH_A: torrent_info()},
            "server_state": {"dl_info_speed": 2048, "up_info_speed": 512, "dht_nodes": 42},
        })

        assert kinds(events) == ["TorrentAdded", "StatisticsUpdated"]
        handle = events[0].handle
        assert handle.info_hash == HASH_A
        assert handle.label_id == 1
        assert handle.state == TorrentState.DOWNLOADING

        stats = events[-1].stats
        assert (stats.download_rate, stats.upload_rate, stats.dht_nodes) == (2048, 512, 42)
        assert stats.progress == 0.25
        assert tracker.rid == 1

    def test_partial_update_merges_fields(self):
        tracker = MainDataTracker()
        tracker.apply({"rid": 1, "full_update": True, "torrents": {HASH_A: torrent_info()}})

        events = tracker.apply({"rid": 2, "torrents": {HASH_A: {"progress": 0.5}}})

        updated = [e for e in events if isinstance(e, TorrentsUpdated)]
        assert len(updated) == 1
        handle = updated[0].handles[0]
        assert handle.progress == 0.5
        assert handle.name == "ubuntu.iso"

    def test_event_order(self):
        tracker = MainDataTracker()
        tracker.apply({
            "rid": 1,
            "full_update": True,
            "torrents": {
                HASH_A: torrent_info(state="metaDL", name=HASH_A, progress=0.99),
                HASH_B: torrent_info(),
            },
        })

        events = tracker.apply({
            "rid": 2,
            "torrents": {
                "c" * 40: torrent_info(),
                HASH_A: {"state": "uploading", "name": "ubuntu.iso", "progress": 1.0},
            },
            "torrents_removed": [HASH_B],
        })

        assert kinds(events) == [
            "TorrentAdded", "TorrentRemoved", "TorrentsUpdated",
            "MetadataFound", "TorrentFinished", "StatisticsUpdated",
        ]
        assert events[1].info_hash == HASH_B
        assert events[3].description.name == "ubuntu.iso"

    def test_full_update_reconciles_removals(self):
        tracker = MainDataTracker()
        tracker.apply({"rid": 1, "full_update": True, "torrents": {HASH_A: torrent_info(), HASH_B: torrent_info()}})

        events = tracker.apply({"rid": 2, "full_update": True, "torrents": {HASH_A: torrent_info()}})

        removed = [e.info_hash for e in events if isinstance(e, TorrentRemoved)]
        assert removed == [HASH_B]
        assert tracker.known_hashes == {HASH_A}

    def test_unknown_removal_is_ignored(self):
        tracker = MainDataTracker()
        events = tracker.apply({"rid": 1, "torrents_removed": [HASH_A]})
        assert kinds(events) == ["StatisticsUpdated"]

    def test_watched_hash_reports_metadata_when_first_seen(self):
        tracker = MainDataTracker()
        tracker.watch_metadata([HASH_A])

        events = tracker.apply({"rid": 1, "torrents": {HASH_A: torrent_info(state="stalledDL")}})

        found = [e for e in events if isinstance(e, MetadataFound)]
        assert len(found) == 1
        assert found[0].info_hash == HASH_A

        # 只报告一次
        events = tracker.apply({"rid": 2, "torrents": {HASH_A: {"progress": 0.3}}})
        assert not any(isinstance(e, MetadataFound) for e in events)

    def test_still_fetching_metadata_is_not_reported(self):
        tracker = MainDataTracker()
        tracker.watch_metadata([HASH_A])
        events = tracker.apply({"rid": 1, "torrents": {HASH_A: torrent_info(state="metaDL")}})
        assert not any(isinstance(e, MetadataFound) for e in events)

    def test_finished_only_on_transition(self):
        tracker = MainDataTracker()
        events = tracker.apply({"rid": 1, "torrents": {HASH_A: torrent_info(progress=1.0)}})
        assert not any(isinstance(e, TorrentFinished) for e in events)

        events = tracker.apply({"rid": 2, "torrents": {HASH_A: {"upspeed": 5}}})
        assert not any(isinstance(e, TorrentFinished) for e in events)

    def test_statistics_without_downloads_has_no_progress(self):
        tracker = MainDataTracker()
        events = tracker.apply({"rid": 1, "torrents": {HASH_A: torrent_info(state="pausedDL")}})
        stats = [e for e in events if isinstance(e, StatisticsUpdated)][0].stats
        assert stats.progress is None


def test_label_tags_round_trip():
    assert parse_label_tag(label_tag(7)) == 7
    assert parse_label_tag("foo, label:3 ,bar") == 3
    assert parse_label_tag("label:x") is None
    assert parse_label_tag(None) is None


def test_handle_from_info_unknown_state():
    handle = handle_from_info(HASH_A, {"state": "somethingNew"})
    assert handle.state == TorrentState.UNKNOWN
    assert handle.label_id is None
