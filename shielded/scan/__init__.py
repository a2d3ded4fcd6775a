"""
스캔 오케스트레이터: 증분 재스캔과 기록 조립
==============================================

세션 계층이 넘겨준 계정 키와 저장된 스냅샷으로 원장을 다시 읽는 전체 흐름.

  ┌─────────────────────────────────────────────────────┐
  │  1. 스냅샷 로드                                      │
  │     store.load_snapshot(account_id) → cached_slot    │
  ├─────────────────────────────────────────────────────┤
  │  2. Nonce 탐색                                       │
  │     fast path: 캐시 슬롯 확인 1회로 종료              │
  │     그 외: 0..cached 로컬 재생 후 cached+1부터 탐색   │
  ├─────────────────────────────────────────────────────┤
  │  3. 새 슬롯만 복호화                                 │
  │     current-1 → lowest_new (내림차순)                │
  ├─────────────────────────────────────────────────────┤
  │  4. 병합                                             │
  │     slot < lowest_new 는 스냅샷, 나머지는 새 값       │
  ├─────────────────────────────────────────────────────┤
  │  5. 저장 (완료된 스캔당 최대 1회)                    │
  │     결과가 스냅샷과 같으면 쓰지 않는다               │
  └─────────────────────────────────────────────────────┘

어느 중단 지점에서든 취소되면 저장소를 건드리지 않고 ScanResult(cancelled=True)를 돌려준다.
원장 오류(LedgerUnavailable)와 일관성 오류는 그대로 전파되며, 이때도 저장은 일어나지 않는다.

사용 예시:
    >>> from shielded.scan import scan_account
    >>> result = await scan_account(ledger, store, keys)
    >>> result.current_slot, result.entries
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from shielded.config import ScanConfig
from shielded.errors import ScanCancelled
from shielded.scan.balances import decrypt_balance_entries, merge_balance_entries
from shielded.scan.cancel import CancellationToken, NEVER_CANCELLED
from shielded.scan.discovery import DiscoveryResult, discover_current_slot
from shielded.scan.history import assemble_history
from shielded.scan.personal import PersonalStateReconstructor, TransitionInputs
from shielded.scan.types import BalanceEntry, ScanSnapshot, TransactionHistoryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """scan_account의 결과.

    속성:
        account_id: 계정 식별자 (캐시 키)
        current_slot: 첫 번째 미사용 슬롯 (취소 시 None)
        entries: BalanceEntry들, 슬롯 내림차순
        fast_path: 캐시 슬롯 확인 한 번으로 끝났는지
        decrypted_slots: 이번 스캔이 새로 복호화한 슬롯들
        saved: 스냅샷을 저장했는지
        cancelled: 취소되었는지
        discovery: DiscoveryResult
    """
    account_id: str
    current_slot: Optional[int] = None
    entries: Tuple[BalanceEntry, ...] = ()
    fast_path: bool = False
    decrypted_slots: Tuple[int, ...] = ()
    saved: bool = False
    cancelled: bool = False
    discovery: Optional[DiscoveryResult] = None


@dataclass(frozen=True)
class HistoryResult:
    """scan_history의 결과."""
    account_id: str
    current_slot: Optional[int] = None
    entries: Tuple[TransactionHistoryEntry, ...] = ()
    cancelled: bool = False


@dataclass(frozen=True)
class PreparedTransition:
    """prepare_transition의 결과. 취소되면 inputs는 None이다."""
    scan: ScanResult
    inputs: Optional[TransitionInputs] = None

    @property
    def cancelled(self):
        return self.scan.cancelled or self.inputs is None


async def scan_account(ledger, store, keys, *, config=None, token=None, on_entry=None):
    """계정을 스캔하여 (current_slot, entries)를 갱신한다.

    Args:
        ledger: Ledger
        store: SnapshotStore
        keys: AccountKeys
        config: ScanConfig
        token: CancellationToken
        on_entry: 새로 복호화한 BalanceEntry마다 호출되는 콜백

    Returns:
        ScanResult
    """
    config = config or ScanConfig()
    token = token or NEVER_CANCELLED
    account_id = keys.account_id

    snapshot = store.load_snapshot(account_id)
    cached_slot = snapshot.current_slot if snapshot is not None else None
    cached_entries = snapshot.entries if snapshot is not None else ()

    try:
        discovery = await discover_current_slot(
            ledger, keys, cached_slot, config=config, token=token)

        if discovery.fast_path:
            fresh = []
            entries = tuple(cached_entries)
        else:
            lowest_new = discovery.start_slot if snapshot is not None else 0
            highest = discovery.current_slot - 1
            fresh = []
            if highest >= lowest_new:
                fresh = await decrypt_balance_entries(
                    ledger, keys, highest, lowest_new, token=token, on_entry=on_entry)
            entries = merge_balance_entries(cached_entries, fresh, lowest_new)

        token.checkpoint()
    except ScanCancelled:
        logger.info("Scan cancelled, snapshot left untouched")
        return ScanResult(account_id=account_id, cancelled=True)

    new_snapshot = ScanSnapshot(current_slot=discovery.current_slot, entries=entries)
    saved = False
    if not new_snapshot.same_state(snapshot):
        store.save_snapshot(account_id, new_snapshot)
        saved = True
    else:
        logger.debug("Snapshot unchanged, skipping write")

    logger.info(
        f"Scan complete: current slot {discovery.current_slot}, "
        f"{len(fresh)} new slots, {len(entries)} entries"
    )
    return ScanResult(
        account_id=account_id,
        current_slot=discovery.current_slot,
        entries=entries,
        fast_path=discovery.fast_path,
        decrypted_slots=tuple(e.slot for e in fresh),
        saved=saved,
        discovery=discovery,
    )


async def scan_history(ledger, store, keys, *, config=None, token=None, on_entry=None):
    """스캔 후 거래 기록을 조립하여 저장한다.

    Returns:
        HistoryResult
    """
    token = token or NEVER_CANCELLED
    scan = await scan_account(ledger, store, keys, config=config, token=token)
    if scan.cancelled:
        return HistoryResult(account_id=scan.account_id, cancelled=True)

    try:
        entries = await assemble_history(
            ledger, keys, scan.current_slot, token=token, on_entry=on_entry)
    except ScanCancelled:
        logger.info("History assembly cancelled, history left untouched")
        return HistoryResult(account_id=scan.account_id, current_slot=scan.current_slot, cancelled=True)

    store.save_history(scan.account_id, entries)
    return HistoryResult(
        account_id=scan.account_id,
        current_slot=scan.current_slot,
        entries=tuple(entries),
    )


async def prepare_transition(ledger, store, keys, token_id, *, config=None, token=None,
                             include_initializer=False):
    """스캔 후 다음 전이 증명의 입력을 만든다.

    Args:
        token_id: 보낼 토큰
        include_initializer: 진입 직후 첫 전이인지

    Returns:
        PreparedTransition
    """
    token = token or NEVER_CANCELLED
    scan = await scan_account(ledger, store, keys, config=config, token=token)
    if scan.cancelled:
        return PreparedTransition(scan)

    reconstructor = PersonalStateReconstructor(ledger, keys, token=token)
    try:
        inputs = await reconstructor.prepare(
            scan.entries, scan.current_slot - 1, token_id,
            include_initializer=include_initializer)
    except ScanCancelled:
        logger.info("Transition preparation cancelled")
        return PreparedTransition(scan)
    return PreparedTransition(scan, inputs)


# ─── 동기 호출자용 (Flask 라우트, 스크립트) ───

def scan_account_sync(ledger, store, keys, **kwargs):
    return asyncio.run(scan_account(ledger, store, keys, **kwargs))


def scan_history_sync(ledger, store, keys, **kwargs):
    return asyncio.run(scan_history(ledger, store, keys, **kwargs))


def prepare_transition_sync(ledger, store, keys, token_id, **kwargs):
    return asyncio.run(prepare_transition(ledger, store, keys, token_id, **kwargs))

