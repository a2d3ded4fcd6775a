"""
Scan orchestration tests: scan/__init__.py, balances.py
"""
import asyncio

import pytest

from shielded.config import ScanConfig
from shielded.crypto import cipher
from shielded.errors import LedgerUnavailable, SearchExhausted
from shielded.scan import (
    CancellationToken,
    scan_account, scan_history, prepare_transition,
    scan_account_sync, scan_history_sync, prepare_transition_sync,
)
from shielded.scan.balances import merge_balance_entries, latest_balance
from shielded.scan.cache import TinyDBSnapshotStore
from shielded.scan.ledger import MemoryLedger
from shielded.scan.personal import REFERENCE_STORED
from shielded.scan.types import BalanceEntry, ScanSnapshot, TxKind

from conftest import TOKEN, OTHER_TOKEN


def scan(ledger, store, keys, **kwargs):
    return asyncio.run(scan_account(ledger, store, keys, **kwargs))


class SpyStore(TinyDBSnapshotStore):
    """save 호출을 기록하는 저장소"""

    def __init__(self, db):
        super().__init__(db)
        self.saved = []

    def save_snapshot(self, account_id, snapshot):
        self.saved.append(snapshot)
        super().save_snapshot(account_id, snapshot)


class CancelOnPayloadLedger(MemoryLedger):
    """첫 번째 잔액 페이로드 읽기 도중 토큰을 취소하는 원장"""

    def __init__(self, token):
        super().__init__()
        self.token = token

    async def read_encrypted_slot_payload(self, identifier):
        result = await super().read_encrypted_slot_payload(identifier)
        self.token.cancel("superseded by a newer scan")
        return result


class CancelOnMembershipLedger(MemoryLedger):
    """n번째 멤버십 질의 도중 토큰을 취소하는 원장"""

    def __init__(self, token, cancel_after):
        super().__init__()
        self.token = token
        self.cancel_after = cancel_after

    async def read_membership(self, identifier):
        result = await super().read_membership(identifier)
        if self.calls["read_membership"] >= self.cancel_after:
            self.token.cancel("superseded by a newer scan")
        return result


class FailingPayloadLedger(MemoryLedger):

    async def read_encrypted_slot_payload(self, identifier):
        raise OSError("connection refused")


@pytest.fixture
def spy_store(store):
    return SpyStore(store.db)


# =====================================================================
# scan_account
# =====================================================================

class TestScanAccount:
    """탐색 → 복호화 → 병합 → 저장"""

    def test_fresh_account(self, ledger, store, keys):
        result = scan(ledger, store, keys)
        assert result.current_slot == 0
        assert result.entries == ()
        assert result.saved is True
        assert store.load_snapshot(keys.account_id).current_slot == 0

    def test_slot_zero_is_plaintext(self, ledger, store, keys, publish, monkeypatch):
        publish(ledger, keys, [(1000, TOKEN)])

        def refuse(*args, **kwargs):
            raise AssertionError("slot 0 must not be decrypted")
        monkeypatch.setattr(cipher, "decrypt_balance", refuse)

        result = scan(ledger, store, keys)
        assert result.current_slot == 1
        assert result.entries == (BalanceEntry(0, TOKEN, 1000),)

    def test_full_scan(self, ledger, store, keys, publish):
        balances = [(100, TOKEN), (40, OTHER_TOKEN), (75, TOKEN), (0, TOKEN), (12, OTHER_TOKEN)]
        publish(ledger, keys, balances)
        result = scan(ledger, store, keys)

        assert result.current_slot == 5
        assert result.fast_path is False
        assert result.decrypted_slots == (4, 3, 2, 1, 0)
        assert result.entries == tuple(
            BalanceEntry(slot, token, amount)
            for slot, (amount, token) in reversed(list(enumerate(balances)))
        )
        assert store.load_snapshot(keys.account_id).entries == result.entries

    def test_incremental_rescan(self, ledger, store, keys, publish):
        publish(ledger, keys, [(10, TOKEN)] * 5)
        scan(ledger, store, keys)
        publish(ledger, keys, [(20, TOKEN), (30, TOKEN)], start=5)
        ledger.calls.clear()

        result = scan(ledger, store, keys)
        assert result.current_slot == 7
        assert result.decrypted_slots == (6, 5)
        assert result.discovery.membership_calls == 3
        assert ledger.calls["read_encrypted_slot_payload"] == 2
        assert [e.slot for e in result.entries] == [6, 5, 4, 3, 2, 1, 0]
        assert result.entries[0] == BalanceEntry(6, TOKEN, 30)

    def test_cached_entries_are_reused(self, ledger, store, keys, publish):
        publish(ledger, keys, [(10, TOKEN), (20, TOKEN)])
        stale = ScanSnapshot(1, (BalanceEntry(0, TOKEN, 999),))
        store.save_snapshot(keys.account_id, stale)

        result = scan(ledger, store, keys)
        assert result.decrypted_slots == (1,)
        assert result.entries == (BalanceEntry(1, TOKEN, 20), BalanceEntry(0, TOKEN, 999))

    def test_fast_path(self, ledger, spy_store, keys, publish):
        publish(ledger, keys, [(10, TOKEN)] * 3)
        first = scan(ledger, spy_store, keys)
        ledger.calls.clear()

        second = scan(ledger, spy_store, keys)
        assert second.fast_path is True
        assert second.saved is False
        assert second.entries == first.entries
        assert ledger.calls["read_membership"] == 1
        assert ledger.calls["read_encrypted_slot_payload"] == 0
        assert len(spy_store.saved) == 1

    def test_on_entry_progress(self, ledger, store, keys, publish):
        publish(ledger, keys, [(1, TOKEN)] * 3)
        seen = []
        scan(ledger, store, keys, on_entry=lambda e: seen.append(e.slot))
        assert seen == [2, 1, 0]

    def test_cancelled_scan_leaves_store(self, spy_store, keys, publish):
        token = CancellationToken()
        ledger = CancelOnPayloadLedger(token)
        publish(ledger, keys, [(1, TOKEN)] * 3)

        result = scan(ledger, spy_store, keys, token=token)
        assert result.cancelled is True
        assert result.current_slot is None
        assert spy_store.saved == []
        assert spy_store.load_snapshot(keys.account_id) is None

    def test_cancelled_during_search_leaves_store(self, spy_store, keys, publish):
        token = CancellationToken()
        ledger = CancelOnMembershipLedger(token, cancel_after=2)
        publish(ledger, keys, [(1, TOKEN)] * 3)

        result = scan(ledger, spy_store, keys, token=token)
        assert result.cancelled is True
        assert result.current_slot is None
        assert ledger.calls["read_encrypted_slot_payload"] == 0
        assert spy_store.saved == []
        assert spy_store.load_snapshot(keys.account_id) is None

    def test_ledger_failure_leaves_store(self, spy_store, keys, publish):
        ledger = FailingPayloadLedger()
        publish(ledger, keys, [(1, TOKEN)] * 2)
        with pytest.raises(LedgerUnavailable):
            scan(ledger, spy_store, keys)
        assert spy_store.saved == []

    def test_exhausted_leaves_store(self, ledger, spy_store, keys, publish):
        publish(ledger, keys, [(1, TOKEN)] * 3)
        with pytest.raises(SearchExhausted):
            scan(ledger, spy_store, keys, config=ScanConfig(max_slots=2))
        assert spy_store.saved == []

    def test_sync_wrapper(self, ledger, store, keys, publish):
        publish(ledger, keys, [(5, TOKEN)] * 2)
        assert scan_account_sync(ledger, store, keys).current_slot == 2


# =====================================================================
# Balance helpers
# =====================================================================

class TestBalanceHelpers:

    def test_merge(self):
        cached = (BalanceEntry(1, TOKEN, 5), BalanceEntry(0, TOKEN, 1))
        fresh = [BalanceEntry(3, TOKEN, 9), BalanceEntry(2, TOKEN, 7)]
        merged = merge_balance_entries(cached, fresh, lowest_new=2)
        assert [e.slot for e in merged] == [3, 2, 1, 0]

    def test_merge_prefers_fresh(self):
        cached = (BalanceEntry(2, TOKEN, 0), BalanceEntry(1, TOKEN, 5))
        fresh = [BalanceEntry(2, TOKEN, 8)]
        merged = merge_balance_entries(cached, fresh, lowest_new=2)
        assert merged == (BalanceEntry(2, TOKEN, 8), BalanceEntry(1, TOKEN, 5))

    def test_latest_balance(self):
        entries = (
            BalanceEntry(3, OTHER_TOKEN, 1),
            BalanceEntry(2, TOKEN, 20),
            BalanceEntry(0, TOKEN, 10),
        )
        assert latest_balance(entries, TOKEN) == BalanceEntry(2, TOKEN, 20)
        assert latest_balance(entries, TOKEN, at_or_below=1) == BalanceEntry(0, TOKEN, 10)
        assert latest_balance(entries, 99) is None


# =====================================================================
# History / transition
# =====================================================================

class TestScanHistory:

    def test_saves_history(self, ledger, store, keys, publish):
        publish(ledger, keys, [(100, TOKEN), (60, TOKEN)])
        result = asyncio.run(scan_history(ledger, store, keys))
        assert result.current_slot == 2
        assert [e.kind for e in result.entries] == [TxKind.DEPOSIT, TxKind.INITIALIZE]
        assert store.load_history(keys.account_id) == list(result.entries)

    def test_cancelled(self, spy_store, keys, publish):
        token = CancellationToken()
        ledger = CancelOnPayloadLedger(token)
        publish(ledger, keys, [(1, TOKEN)])
        result = asyncio.run(scan_history(ledger, spy_store, keys, token=token))
        assert result.cancelled is True
        assert spy_store.load_history(keys.account_id) == []

    def test_sync_wrapper(self, ledger, store, keys, publish):
        publish(ledger, keys, [(100, TOKEN)])
        assert len(scan_history_sync(ledger, store, keys).entries) == 1


class TestPrepareTransition:

    def test_prepare(self, ledger, store, keys, publish):
        publish(ledger, keys, [(100, TOKEN), (80, TOKEN)])
        prepared = asyncio.run(prepare_transition(ledger, store, keys, TOKEN))
        assert prepared.cancelled is False
        assert prepared.scan.current_slot == 2
        assert prepared.inputs.previous_slot == 1
        assert prepared.inputs.balance == BalanceEntry(1, TOKEN, 80)
        assert prepared.inputs.reference.source == REFERENCE_STORED
        assert prepared.inputs.main.outer_opening == (1, 1, 1)

    def test_cancelled(self, store, keys, publish):
        token = CancellationToken()
        ledger = CancelOnPayloadLedger(token)
        publish(ledger, keys, [(100, TOKEN)])
        prepared = asyncio.run(prepare_transition(ledger, store, keys, TOKEN, token=token))
        assert prepared.cancelled is True
        assert prepared.inputs is None

    def test_sync_wrapper(self, ledger, store, keys, publish):
        publish(ledger, keys, [(100, TOKEN)])
        prepared = prepare_transition_sync(ledger, store, keys, TOKEN, include_initializer=True)
        assert prepared.inputs.personal.initializer is not None
