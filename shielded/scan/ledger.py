"""
원장(ledger) 능력 인터페이스
==============================

스캔 엔진이 원장에서 읽는 것은 아래 여섯 가지뿐이다. 모두 비동기이며
스캔의 유일한 중단(suspension) 지점이다.

  read_membership(id)                 → bool     식별자가 알려진 집합에 있는가
  read_encrypted_slot_payload(id)     → (c_bal, c_tok)   슬롯 0은 평문
  read_encrypted_opening_payload(id)  → (c_x, c_y)       참조점 암호문, 없으면 (0, 0)
  read_aggregate_accumulator()        → (point, m, r)    nonce 탐색 누산기
  read_events_for_slot(id)            → [LedgerEvent]
  read_state_commitment()             → (point, m, r, d) 공개 상태 커밋먼트

타임아웃은 엔진이 정하지 않는다. 원장 구현이 스스로 정하고
만료 시 asyncio.TimeoutError 또는 OSError를 올리면 ledger_read가 LedgerUnavailable로 바꾼다.

**MemoryLedger**:
  컨트랙트의 장부(멤버십 집합, 페이로드, 누산기, 상태 커밋먼트, 이벤트 로그)를
  프로세스 안에서 흉내 낸다. 메서드별 호출 횟수를 calls에 센다.
  publish_slot()이 증명된 상태 전이 하나가 슬롯 하나를 쓰는 역할을 한다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict

from shielded.crypto.field import FR, fr_short
from shielded.crypto.curve import ec_add, ec_sub
from shielded.crypto.commitments import (
    GENESIS_ACCUMULATOR_POINT,
    personal_commitment,
    public_commitment,
    initial_state_commitment,
    aggregate_opening,
)
from shielded.crypto import cipher
from shielded.errors import LedgerUnavailable
from shielded.scan.types import TxKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    """원장 이벤트 로그 한 줄.

    payload 키:
        send:   receiver_x, receiver_y (평문)
        absorb: encrypted_absorbed_amount, encrypted_nullifier
    """
    kind: TxKind
    block_number: int = 0
    tx_hash: str = ""
    timestamp: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)


class Ledger(ABC):
    """스캔 엔진이 소비하는 원장 능력."""

    @abstractmethod
    async def read_membership(self, identifier):
        ...

    @abstractmethod
    async def read_encrypted_slot_payload(self, identifier):
        ...

    @abstractmethod
    async def read_encrypted_opening_payload(self, identifier):
        ...

    @abstractmethod
    async def read_aggregate_accumulator(self):
        ...

    @abstractmethod
    async def read_events_for_slot(self, identifier):
        ...

    @abstractmethod
    async def read_state_commitment(self):
        ...


async def ledger_read(token, read, *args):
    """취소 확인 → 원장 읽기 → 취소 확인.

    Args:
        token: CancellationToken
        read: Ledger의 비동기 메서드 (바운드)
        *args: read에 넘길 인자

    Raises:
        ScanCancelled: 읽기 전후에 취소가 요청되었을 때
        LedgerUnavailable: I/O 실패 (OSError, asyncio.TimeoutError)
    """
    token.checkpoint()
    try:
        result = await read(*args)
    except (OSError, asyncio.TimeoutError) as e:
        raise LedgerUnavailable(f"{read.__name__} failed: {e}") from e
    token.checkpoint()
    return result


# ─────────────────────────────────────────────────────────────────────
# 인메모리 원장
# ─────────────────────────────────────────────────────────────────────

class MemoryLedger(Ledger):
    """프로세스 내 원장. 테스트와 데모 앱에서 사용한다.

    속성:
        members: 알려진 식별자 집합 (int)
        calls: 메서드 이름 → 호출 횟수
        aggregate: (point, m, r) nonce 탐색 누산기
        state: (point, m, r, d) 공개 상태 커밋먼트
    """

    def __init__(self):
        self.members = set()
        self.slot_payloads = {}
        self.opening_payloads = {}
        self.events = {}
        self.state_terms = {}
        self.aggregate = (GENESIS_ACCUMULATOR_POINT, FR(1), FR(1))
        self.state = (initial_state_commitment(), FR(1), FR(1), FR(1))
        self.block_number = 0
        self.calls = Counter()

    # ─── 읽기 ───

    async def read_membership(self, identifier):
        self.calls["read_membership"] += 1
        return int(identifier) in self.members

    async def read_encrypted_slot_payload(self, identifier):
        self.calls["read_encrypted_slot_payload"] += 1
        return self.slot_payloads.get(int(identifier), (FR(0), FR(0)))

    async def read_encrypted_opening_payload(self, identifier):
        self.calls["read_encrypted_opening_payload"] += 1
        return self.opening_payloads.get(int(identifier), (FR(0), FR(0)))

    async def read_aggregate_accumulator(self):
        self.calls["read_aggregate_accumulator"] += 1
        return self.aggregate

    async def read_events_for_slot(self, identifier):
        self.calls["read_events_for_slot"] += 1
        return list(self.events.get(int(identifier), []))

    async def read_state_commitment(self):
        self.calls["read_state_commitment"] += 1
        return self.state

    # ─── 쓰기 (컨트랙트 역할) ───

    def record_slot(self, identifier, balance_payload, opening_payload,
                    events=(), previous_identifier=None):
        """증명된 전이 하나를 장부에 반영한다.

        - 식별자를 멤버십 집합에 추가
        - 누산기에 personal_commitment(1, identifier)를 더하고 (m, r) += (1, identifier)
        - 상태 커밋먼트에서 이전 슬롯의 항을 빼고 이번 슬롯의 항
          public_commitment(c_x, c_y, identifier)를 더한다
        """
        key = int(identifier)
        if key in self.members:
            raise ValueError(f"Identifier {key:#x} already recorded")

        self.members.add(key)
        self.slot_payloads[key] = tuple(FR(int(v)) for v in balance_payload)
        self.opening_payloads[key] = tuple(FR(int(v)) for v in opening_payload)
        self.events[key] = list(events)

        point, m, r = self.aggregate
        self.aggregate = (
            ec_add(point, personal_commitment(1, identifier)),
            aggregate_opening(m, 1),
            aggregate_opening(r, identifier),
        )

        term = (self.opening_payloads[key][0], self.opening_payloads[key][1], FR(key))
        point, sm, sr, sd = self.state
        old = self.state_terms.pop(int(previous_identifier), None) if previous_identifier is not None else None
        if old is not None:
            point = ec_sub(point, public_commitment(*old))
            sm, sr, sd = sm - old[0], sr - old[1], sd - old[2]
        self.state = (
            ec_add(point, public_commitment(*term)),
            sm + term[0], sr + term[1], sd + term[2],
        )
        self.state_terms[key] = term

    def next_block(self):
        self.block_number += 1
        return self.block_number


def publish_slot(ledger, keys, slot, amount, token_id, *, reference=None,
                 encrypted_reference=None, kind=None, emit_event=True,
                 receiver_public_key=None, absorbed_amount=None, nullifier=None,
                 timestamp=None):
    """계정의 슬롯 하나를 원장에 쓴다 (증명된 전이의 결과를 흉내 낸다).

    Args:
        ledger: MemoryLedger
        keys: AccountKeys
        slot: 슬롯 번호
        amount, token_id: 슬롯 시점의 잔액. 슬롯 0은 평문으로 저장된다.
        reference: 이 슬롯의 개인 커밋먼트 총합 점. slot_key(slot)로 암호화해 저장한다.
        encrypted_reference: 이미 암호화된 참조점 (reference보다 우선)
        kind: 이벤트 종류 (기본값: 슬롯 0은 INITIALIZE, 그 외 DEPOSIT)
        emit_event: False면 이벤트를 남기지 않는다
        receiver_public_key, absorbed_amount, nullifier: 종류별 이벤트 필드

    Returns:
        FR: 슬롯 식별자
    """
    identifier = keys.slot_identifier(slot)
    slot_key = keys.slot_key(slot)
    hasher = keys.hasher

    if slot == 0:
        balance_payload = (FR(int(amount)), FR(int(token_id)))
    else:
        balance_payload = (
            cipher.encrypt(amount, slot_key, cipher.TWEAK_BALANCE, hasher),
            cipher.encrypt(token_id, slot_key, cipher.TWEAK_TOKEN_ID, hasher),
        )

    if encrypted_reference is not None:
        opening_payload = encrypted_reference
    elif reference is not None:
        opening_payload = cipher.encrypt_point(reference, slot_key, hasher)
    else:
        opening_payload = (FR(0), FR(0))

    events = []
    if emit_event:
        kind = TxKind(kind) if kind is not None else (TxKind.INITIALIZE if slot == 0 else TxKind.DEPOSIT)
        payload = {}
        if receiver_public_key is not None:
            payload["receiver_x"] = int(receiver_public_key[0])
            payload["receiver_y"] = int(receiver_public_key[1])
        if absorbed_amount is not None:
            payload["encrypted_absorbed_amount"] = int(
                cipher.encrypt(absorbed_amount, slot_key, cipher.TWEAK_ABSORBED_AMOUNT, hasher))
        if nullifier is not None:
            payload["encrypted_nullifier"] = int(
                cipher.encrypt(nullifier, slot_key, cipher.TWEAK_NULLIFIER, hasher))
        block_number = ledger.next_block()
        events.append(LedgerEvent(
            kind=kind,
            block_number=block_number,
            tx_hash=f"0x{block_number:064x}",
            timestamp=timestamp if timestamp is not None else 1_700_000_000 + block_number * 12,
            payload=payload,
        ))

    previous_identifier = keys.slot_identifier(slot - 1) if slot > 0 else None
    ledger.record_slot(identifier, balance_payload, opening_payload, events, previous_identifier)
    logger.debug(f"Published slot {slot} ({fr_short(identifier)})")
    return identifier
