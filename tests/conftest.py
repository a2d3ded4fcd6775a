import sys
import os
import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from shielded.crypto.keys import AccountKeys
from shielded.scan.cache import TinyDBSnapshotStore
from shielded.scan.ledger import MemoryLedger, publish_slot
from shielded.scan.personal import reconstruct_personal_state


# ── 테스트 상수 ──
SIGNATURE = "0x" + "a1" * 31 + "b2" * 31 + "c3d4e5"
OTHER_SIGNATURE = "0x" + "0f" * 64 + "1b"

TOKEN = 7
OTHER_TOKEN = 11


@pytest.fixture
def signature():
    return SIGNATURE


@pytest.fixture
def keys():
    return AccountKeys.from_signature(SIGNATURE)


@pytest.fixture
def other_keys():
    return AccountKeys.from_signature(OTHER_SIGNATURE)


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
def store():
    return TinyDBSnapshotStore(TinyDB(storage=MemoryStorage))


@pytest.fixture
def publish():
    """슬롯을 순서대로 원장에 쓰는 헬퍼.

    publish(ledger, keys, [(amount, token_id), ...], start=0, **kwargs)
    각 슬롯의 참조점은 그 슬롯 잔액의 개인 커밋먼트 총합이다.
    """
    def _publish(ledger, keys, balances, start=0, **kwargs):
        identifiers = []
        for offset, (amount, token_id) in enumerate(balances):
            slot = start + offset
            reference = reconstruct_personal_state(keys, amount, token_id).total
            identifiers.append(
                publish_slot(ledger, keys, slot, amount, token_id, reference=reference, **kwargs)
            )
        return identifiers
    return _publish
