"""
슬롯별 잔액 복호화와 캐시 병합
================================

슬롯 n의 잔액 페이로드 (c_bal, c_tok)는 slot_key(n)과 트윅 BALANCE/TOKEN_ID로
복호화한다. 슬롯 0(계정 생성)은 평문으로 저장되므로 복호화하지 않는다.

병합 규칙:
  lowest_new 미만의 슬롯은 스냅샷에서, lowest_new 이상은 새로 복호화한 값에서 가져온다.
  같은 슬롯을 두 번 복호화하지 않는다.
"""

import logging

from shielded.crypto import cipher
from shielded.scan.cancel import NEVER_CANCELLED
from shielded.scan.ledger import ledger_read
from shielded.scan.types import BalanceEntry

logger = logging.getLogger(__name__)


async def decrypt_balance_entries(ledger, keys, highest, lowest=0, *, token=None, on_entry=None):
    """슬롯 highest부터 lowest까지 내려가며 잔액을 복호화한다.

    Args:
        ledger: Ledger
        keys: AccountKeys
        highest: 가장 높은 슬롯 (포함)
        lowest: 가장 낮은 슬롯 (포함)
        token: CancellationToken
        on_entry: 슬롯 하나가 끝날 때마다 호출되는 콜백 (BalanceEntry)

    Returns:
        list[BalanceEntry]: 슬롯 내림차순
    """
    token = token or NEVER_CANCELLED
    entries = []
    for slot in range(highest, lowest - 1, -1):
        identifier = keys.slot_identifier(slot)
        c_amount, c_token = await ledger_read(token, ledger.read_encrypted_slot_payload, identifier)

        if slot == 0:
            amount, token_id = c_amount, c_token
        else:
            amount, token_id = cipher.decrypt_balance(c_amount, c_token, keys.slot_key(slot), keys.hasher)

        entry = BalanceEntry(slot=slot, token_id=int(token_id), amount=int(amount))
        entries.append(entry)
        logger.debug(f"Slot {slot}: token {entry.token_id}")
        if on_entry is not None:
            on_entry(entry)
    return entries


def merge_balance_entries(cached, fresh, lowest_new):
    """스냅샷 항목과 새로 복호화한 항목을 합친다.

    Args:
        cached: 스냅샷의 BalanceEntry들
        fresh: 새로 복호화한 BalanceEntry들 (모두 slot ≥ lowest_new)
        lowest_new: 새로 복호화한 가장 낮은 슬롯

    Returns:
        tuple[BalanceEntry]: 슬롯 내림차순

    예시:
        >>> merge_balance_entries([e0, e1], [e2, e3], lowest_new=2)  # (e3, e2, e1, e0)
    """
    kept = [e for e in cached if e.slot < lowest_new]
    merged = list(fresh) + kept
    merged.sort(key=lambda e: e.slot, reverse=True)
    return tuple(merged)


def latest_balance(entries, token_id, at_or_below=None):
    """토큰의 가장 최근 잔액 항목을 찾는다.

    Args:
        entries: BalanceEntry들
        token_id: 찾을 토큰
        at_or_below: 이 슬롯 이하에서만 찾는다 (None이면 전체)

    Returns:
        BalanceEntry 또는 None
    """
    best = None
    for entry in entries:
        if entry.token_id != int(token_id):
            continue
        if at_or_below is not None and entry.slot > at_or_below:
            continue
        if best is None or entry.slot > best.slot:
            best = entry
    return best
