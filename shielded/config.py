"""
스캐너 설정
============

JSON 파일 하나로 스캔/저장소/로그/HTTP 설정을 묶는다.

  ScanConfig      nonce 탐색 상한 max_slots, 누산기 검사 모드 aggregate_check
  StorageConfig   TinyDB 파일 경로, 인메모리 여부
  LogConfig       로그 레벨/형식, 회전 파일 핸들러
  APIConfig       Flask 바인드 주소

  aggregate_check 모드:
    off          검사하지 않는다 (기본값)
    consistency  로컬 누산기 자체 일관성 + 원장 누산기가 자기 스칼라로 열리는지
    exact        로컬 누산기 == 원장 누산기 (단일 계정 원장 전용)

파일에 없는 섹션은 기본값을 쓴다:
    >>> config = ShieldedConfig.load("config.json")
    >>> config.validate()  # [] 이면 유효
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from logging.handlers import RotatingFileHandler
from typing import Optional

logger = logging.getLogger(__name__)


AGGREGATE_CHECK_MODES = ("off", "consistency", "exact")


@dataclass
class ScanConfig:
    max_slots: int = 100
    aggregate_check: str = "off"


@dataclass
class StorageConfig:
    db_path: str = "shielded_db.json"
    in_memory: bool = False


@dataclass
class LogConfig:
    """file이 None이면 stderr로만 출력한다."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 5000


@dataclass
class ShieldedConfig:
    """전체 설정."""
    scan: ScanConfig = field(default_factory=ScanConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log: LogConfig = field(default_factory=LogConfig)
    api: APIConfig = field(default_factory=APIConfig)

    def validate(self):
        """설정 값을 검사한다.

        Returns:
            list[str]: 오류 메시지 목록 (유효하면 빈 리스트)
        """
        errors = []

        if self.scan.max_slots < 1:
            errors.append("max_slots must be at least 1")

        if self.scan.aggregate_check not in AGGREGATE_CHECK_MODES:
            errors.append(f"Invalid aggregate_check: {self.scan.aggregate_check}")

        if not self.storage.in_memory and not self.storage.db_path:
            errors.append("db_path cannot be empty")

        if self.api.port < 1 or self.api.port > 65535:
            errors.append(f"Invalid API port: {self.api.port}")

        if not hasattr(logging, self.log.level.upper()):
            errors.append(f"Invalid log level: {self.log.level}")

        return errors

    def save(self, path):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path):
        """JSON 파일에서 설정을 읽는다. 없는 섹션은 기본값."""
        with open(path, "r") as f:
            data = json.load(f)

        config = cls()
        if "scan" in data:
            config.scan = ScanConfig(**data["scan"])
        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])
        if "log" in data:
            config.log = LogConfig(**data["log"])
        if "api" in data:
            config.api = APIConfig(**data["api"])

        logger.info(f"Configuration loaded from {path}")
        return config

    def to_dict(self):
        return {
            "scan": asdict(self.scan),
            "storage": asdict(self.storage),
            "log": asdict(self.log),
            "api": asdict(self.api),
        }


def setup_logging(config):
    """LogConfig에 따라 루트 로거를 설정한다.

    Args:
        config: LogConfig
    """
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if config.file:
        # 회전 기준은 MB 단위
        handlers.append(RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        ))

    logging.basicConfig(level=level, format=config.format, handlers=handlers)
