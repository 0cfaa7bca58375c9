"""
配置管理测试
"""

import json

import pytest
from pydantic import ValidationError

from torrent_desk.config import AppConfig, ConfigManager, LabelConfig, QBittorrentConfig, get_config_path
from torrent_desk.exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError


class TestModels:

    def test_label_aliases(self):
        label = LabelConfig(**{
            "id": 3, "name": " ISO ", "savePath": "/iso", "savePathEnabled": True,
            "applyFilter": "ubuntu", "applyFilterEnabled": True,
        })
        assert label.name == "ISO"
        assert label.save_path == "/iso"
        assert label.apply_filter_enabled is True
        assert label.model_dump(by_alias=True)["applyFilter"] == "ubuntu"

    def test_invalid_color_rejected(self):
        with pytest.raises(ValidationError):
            LabelConfig(id=1, name="x", color="red")

    def test_duplicate_label_ids_rejected(self):
        with pytest.raises(ValidationError):
            AppConfig(labels=[{"id": 1, "name": "a"}, {"id": 1, "name": "b"}])

    @pytest.mark.parametrize("limit", [-1, 101])
    def test_disk_space_limit_range(self, limit):
        with pytest.raises(ValidationError):
            AppConfig(pause_on_low_disk_space_limit=limit)

    def test_port_range(self):
        with pytest.raises(ValidationError):
            QBittorrentConfig(port=70000)

    def test_base_url(self):
        assert QBittorrentConfig(host="nas", port=9090, use_https=True).base_url == "https://nas:9090"

    def test_derived_values(self, app_config):
        threshold = app_config.disk_space_threshold()
        assert threshold.enabled is True
        assert threshold.limit_percent == 50
        assert threshold.limit_ratio == 0.5
        assert app_config.intake_defaults().default_save_path == "/downloads"


class TestConfigManager:

    @pytest.mark.asyncio
    async def test_load_json(self, config_file):
        manager = ConfigManager(config_file)
        config = await manager.load_config()

        assert config.default_save_path == "/downloads"
        assert [label.id for label in config.labels] == [1, 2]
        assert manager.observer is None
        manager.cleanup()

    @pytest.mark.asyncio
    async def test_load_yaml(self, tmp_path, mock_config_data):
        import yaml

        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(mock_config_data, allow_unicode=True), encoding="utf-8")

        config = await ConfigManager(path).load_config()
        assert config.labels[1].apply_filter == r"S\d{2}E\d{2}"

    @pytest.mark.asyncio
    async def test_load_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'default_save_path = "/data"\n'
            'hot_reload = false\n'
            '[[labels]]\n'
            'id = 5\n'
            'name = "Music"\n'
            'applyFilter = "flac"\n'
            'applyFilterEnabled = true\n',
            encoding="utf-8",
        )
        config = await ConfigManager(path).load_config()
        assert config.default_save_path == "/data"
        assert config.labels[0].id == 5

    @pytest.mark.asyncio
    async def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("TORRENT_DESK_QBIT_HOST", "nas.local")
        monkeypatch.setenv("TORRENT_DESK_QBIT_PORT", "9999")
        monkeypatch.setenv("TORRENT_DESK_SAVE_PATH", "/mnt/downloads")

        config = await ConfigManager(config_file).load_config()

        assert config.qbittorrent.host == "nas.local"
        assert config.qbittorrent.port == 9999
        assert config.default_save_path == "/mnt/downloads"

    @pytest.mark.asyncio
    async def test_missing_file_creates_default(self, tmp_path):
        path = tmp_path / "new" / "config.json"
        manager = ConfigManager(path)
        config = await manager.load_config()

        try:
            assert path.exists()
            assert len(config.labels) == 3
        finally:
            manager.cleanup()

    @pytest.mark.asyncio
    async def test_invalid_values_raise_validation_error(self, tmp_path, mock_config_data):
        mock_config_data["pause_on_low_disk_space_limit"] = 200
        path = tmp_path / "config.json"
        path.write_text(json.dumps(mock_config_data), encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            await ConfigManager(path).load_config()

    @pytest.mark.asyncio
    async def test_malformed_file_raises(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigError):
            await ConfigManager(path).load_config()

    @pytest.mark.asyncio
    async def test_labels_must_be_list(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"labels": {"a": 1}, "hot_reload": False}), encoding="utf-8")

        with pytest.raises(ConfigError):
            await ConfigManager(path).load_config()

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, config_file):
        manager = ConfigManager(config_file)
        await manager.load_config()

        snapshot = manager.snapshot()
        snapshot.labels.clear()
        snapshot.default_save_path = "/elsewhere"

        assert len(manager.config.labels) == 2
        assert manager.snapshot().default_save_path == "/downloads"

    def test_snapshot_before_load_raises(self, config_file):
        with pytest.raises(ConfigError):
            ConfigManager(config_file).snapshot()

    @pytest.mark.asyncio
    async def test_reload_invokes_callbacks(self, config_file, mock_config_data):
        manager = ConfigManager(config_file)
        await manager.load_config()
        seen = []

        async def on_reload(old, new):
            seen.append((old.default_save_path, new.default_save_path))

        manager.register_reload_callback(on_reload)
        mock_config_data["default_save_path"] = "/changed"
        config_file.write_text(json.dumps(mock_config_data), encoding="utf-8")

        await manager.reload_config()
        assert seen == [("/downloads", "/changed")]

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_old_config(self, config_file):
        manager = ConfigManager(config_file)
        await manager.load_config()
        config_file.write_text("{broken", encoding="utf-8")

        await manager.reload_config()
        assert manager.config.default_save_path == "/downloads"

    @pytest.mark.asyncio
    async def test_deleted_file_on_reload(self, config_file):
        manager = ConfigManager(config_file)
        await manager.load_config()
        config_file.unlink()

        with pytest.raises(ConfigNotFoundError):
            manager._load_config_file()

        await manager.reload_config()
        assert manager.config.default_save_path == "/downloads"

    def test_validate_config_file(self, config_file, tmp_path):
        manager = ConfigManager(config_file)
        assert manager.validate_config_file() is True
        assert manager.validate_config_file(tmp_path / "missing.json") is False


def test_get_config_path_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TORRENT_DESK_CONFIG", str(tmp_path / "custom.yaml"))
    assert get_config_path() == tmp_path / "custom.yaml"


def test_get_config_path_discovers_yaml(monkeypatch, tmp_path):
    monkeypatch.delenv("TORRENT_DESK_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("{}", encoding="utf-8")
    assert get_config_path() == tmp_path / "config.yaml"
