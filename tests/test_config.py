"""
Configuration tests: config.py
"""
import pytest

from shielded.config import (
    ShieldedConfig, ScanConfig, StorageConfig, LogConfig, APIConfig,
)


class TestValidate:
    """설정 검증"""

    def test_default_is_valid(self):
        assert ShieldedConfig().validate() == []

    @pytest.mark.parametrize("config, fragment", [
        (ShieldedConfig(scan=ScanConfig(max_slots=0)), "max_slots"),
        (ShieldedConfig(scan=ScanConfig(aggregate_check="strict")), "aggregate_check"),
        (ShieldedConfig(storage=StorageConfig(db_path="")), "db_path"),
        (ShieldedConfig(api=APIConfig(port=70000)), "port"),
        (ShieldedConfig(log=LogConfig(level="LOUD")), "log level"),
    ])
    def test_invalid(self, config, fragment):
        errors = config.validate()
        assert len(errors) == 1
        assert fragment in errors[0]

    def test_in_memory_needs_no_path(self):
        config = ShieldedConfig(storage=StorageConfig(db_path="", in_memory=True))
        assert config.validate() == []


class TestPersistence:
    """저장/로드"""

    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "config.json")
        config = ShieldedConfig(
            scan=ScanConfig(max_slots=12, aggregate_check="exact"),
            storage=StorageConfig(in_memory=True),
            api=APIConfig(port=8080),
        )
        config.save(path)
        loaded = ShieldedConfig.load(path)
        assert loaded == config
        assert loaded.scan.aggregate_check == "exact"

    def test_partial_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"scan": {"max_slots": 7}}')
        loaded = ShieldedConfig.load(str(path))
        assert loaded.scan.max_slots == 7
        assert loaded.scan.aggregate_check == "off"
        assert loaded.api == APIConfig()

    def test_to_dict(self):
        data = ShieldedConfig().to_dict()
        assert set(data) == {"scan", "storage", "log", "api"}
        assert data["scan"] == {"max_slots": 100, "aggregate_check": "off"}
