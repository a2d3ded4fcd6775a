"""
스캔 스냅샷 저장소
===================

증분 재스캔을 위한 체크포인트와 조립된 거래 기록을 계정별로 보관한다.

  SnapshotStore         저장소 능력 (load/save/clear snapshot, load/save history)
  TinyDBSnapshotStore   TinyDB 두 테이블 ("snapshots", "histories")에 account_id 키로 저장

완전한 (current_slot, entries) 쌍만 저장된다. 중단된 스캔은 저장소를 건드리지 않는다.

사용 예시:
    >>> from tinydb import TinyDB
    >>> from tinydb.storages import MemoryStorage
    >>> store = TinyDBSnapshotStore(TinyDB(storage=MemoryStorage))
"""

import logging
from abc import ABC, abstractmethod

from tinydb import Query

from shielded.serializers import (
    serialize_snapshot,
    deserialize_snapshot,
    serialize_history_entry,
    deserialize_history_entry,
)

logger = logging.getLogger(__name__)

DATA = Query()


class SnapshotStore(ABC):
    """스캔 체크포인트 저장소 능력."""

    @abstractmethod
    def load_snapshot(self, account_id):
        ...

    @abstractmethod
    def save_snapshot(self, account_id, snapshot):
        ...

    @abstractmethod
    def clear_snapshot(self, account_id):
        ...

    @abstractmethod
    def load_history(self, account_id):
        ...

    @abstractmethod
    def save_history(self, account_id, entries):
        ...


class TinyDBSnapshotStore(SnapshotStore):
    """TinyDB 기반 저장소.

    Args:
        db: TinyDB 인스턴스 (파일 저장소 또는 MemoryStorage)
    """

    def __init__(self, db):
        self.db = db
        self.snapshots = db.table("snapshots")
        self.histories = db.table("histories")

    def load_snapshot(self, account_id):
        result = self.snapshots.search(DATA.account_id == account_id)
        if not result:
            return None
        return deserialize_snapshot(result[0].get("data"))

    def save_snapshot(self, account_id, snapshot):
        self.snapshots.upsert(
            {"account_id": account_id, "data": serialize_snapshot(snapshot)},
            DATA.account_id == account_id,
        )
        logger.info(f"Saved snapshot at slot {snapshot.current_slot} ({len(snapshot.entries)} entries)")

    def clear_snapshot(self, account_id):
        self.snapshots.remove(DATA.account_id == account_id)
        self.histories.remove(DATA.account_id == account_id)

    def load_history(self, account_id):
        result = self.histories.search(DATA.account_id == account_id)
        if not result:
            return []
        return [deserialize_history_entry(e) for e in result[0].get("data", [])]

    def save_history(self, account_id, entries):
        self.histories.upsert(
            {"account_id": account_id, "data": [serialize_history_entry(e) for e in entries]},
            DATA.account_id == account_id,
        )
