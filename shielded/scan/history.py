"""
거래 기록 조립
===============

탐색이 끝난 뒤, 사용된 슬롯마다 원장 이벤트 로그를 붙여 시간순 기록을 만든다.
기록은 탐색 결과를 다시 바꾸지 않는다.

  current_slot-1 → 0 순서로 내려가며:
    1. 식별자가 멤버십 집합에 없으면 건너뛴다
    2. 잔액/토큰을 복호화한다 (슬롯 0은 평문)
    3. 저장된 참조점을 OPENING_M/OPENING_R 트윅으로 복호화한다
    4. 이벤트 종류를 우선순위로 분류한다
         initialize > absorb > send > withdraw > deposit   (먼저 맞는 것이 이긴다)
    5. 종류별 필드를 채운다
         send:   receiver_public_key (평문)
         absorb: absorbed_amount (트윅 5), nullifier (트윅 6)
    6. 이벤트가 없으면 슬롯 0은 initialize, 그 외는 deposit으로 두고 WARNING을 남긴다

  슬롯 하나가 끝날 때마다 on_entry 콜백을 호출하므로 호출자는 결과를 점진적으로 그릴 수 있다.
"""

import logging

from shielded.crypto import cipher
from shielded.scan.cancel import NEVER_CANCELLED
from shielded.scan.ledger import ledger_read
from shielded.scan.types import TxKind, TransactionHistoryEntry

logger = logging.getLogger(__name__)


EVENT_PRIORITY = (
    TxKind.INITIALIZE,
    TxKind.ABSORB,
    TxKind.SEND,
    TxKind.WITHDRAW,
    TxKind.DEPOSIT,
)


def classify_events(events):
    """이벤트 목록에서 우선순위가 가장 높은 종류의 첫 이벤트를 고른다.

    TxKind에 없는 종류(예: 같은 슬롯의 토큰 transfer 로그)는 건너뛴다.

    Returns:
        LedgerEvent 또는 None
    """
    first_by_kind = {}
    for event in events:
        try:
            kind = TxKind(event.kind)
        except ValueError:
            logger.debug(f"Ignoring event of unknown kind {event.kind!r}")
            continue
        first_by_kind.setdefault(kind, event)
    for kind in EVENT_PRIORITY:
        if kind in first_by_kind:
            return first_by_kind[kind]
    return None


def _kind_fields(event, slot_key, hasher):
    fields = {}
    payload = event.payload or {}
    kind = TxKind(event.kind)

    if kind is TxKind.SEND and "receiver_x" in payload and "receiver_y" in payload:
        fields["receiver_public_key"] = (int(payload["receiver_x"]), int(payload["receiver_y"]))

    if kind is TxKind.ABSORB:
        if payload.get("encrypted_absorbed_amount"):
            fields["absorbed_amount"] = int(cipher.decrypt(
                payload["encrypted_absorbed_amount"], slot_key, cipher.TWEAK_ABSORBED_AMOUNT, hasher))
        if payload.get("encrypted_nullifier"):
            fields["nullifier"] = int(cipher.decrypt(
                payload["encrypted_nullifier"], slot_key, cipher.TWEAK_NULLIFIER, hasher))
    return fields


async def assemble_history(ledger, keys, current_slot, *, token=None, on_entry=None):
    """슬롯 current_slot-1부터 0까지의 거래 기록을 만든다.

    Args:
        ledger: Ledger
        keys: AccountKeys
        current_slot: 탐색으로 찾은 현재 슬롯
        token: CancellationToken
        on_entry: 슬롯 하나가 해석될 때마다 호출 (TransactionHistoryEntry)

    Returns:
        list[TransactionHistoryEntry]: 슬롯 내림차순
    """
    token = token or NEVER_CANCELLED
    hasher = keys.hasher
    entries = []

    for slot in range(current_slot - 1, -1, -1):
        identifier = keys.slot_identifier(slot)
        if not await ledger_read(token, ledger.read_membership, identifier):
            logger.debug(f"Slot {slot} not in use, skipping")
            continue

        slot_key = keys.slot_key(slot)
        c_amount, c_token = await ledger_read(token, ledger.read_encrypted_slot_payload, identifier)
        if slot == 0:
            amount, token_id = c_amount, c_token
        else:
            amount, token_id = cipher.decrypt_balance(c_amount, c_token, slot_key, hasher)

        stored = await ledger_read(token, ledger.read_encrypted_opening_payload, identifier)
        reference_m = reference_r = None
        if int(stored[0]) != 0 or int(stored[1]) != 0:
            reference_m, reference_r = (int(v) for v in cipher.decrypt_point(stored, slot_key, hasher))

        events = await ledger_read(token, ledger.read_events_for_slot, identifier)
        event = classify_events(events)

        if event is None:
            kind = TxKind.INITIALIZE if slot == 0 else TxKind.DEPOSIT
            logger.warning(f"No event found for slot {slot}, using default kind {kind.value}")
            meta = {}
        else:
            kind = TxKind(event.kind)
            meta = dict(
                timestamp=int(event.timestamp),
                block_number=int(event.block_number),
                tx_hash=event.tx_hash,
                **_kind_fields(event, slot_key, hasher),
            )

        entry = TransactionHistoryEntry(
            kind=kind,
            slot=slot,
            identifier=int(identifier),
            token_id=int(token_id),
            amount=int(amount),
            reference_m=reference_m,
            reference_r=reference_r,
            **meta,
        )
        entries.append(entry)
        if on_entry is not None:
            on_entry(entry)

    entries.sort(key=lambda e: e.slot, reverse=True)
    logger.info(f"Assembled {len(entries)} history entries")
    return entries
