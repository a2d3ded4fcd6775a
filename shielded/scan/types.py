"""
스캔 결과 값 타입
==================

원장 스캔이 만들어 내는 불변 값들. 모든 스칼라는 int로 보관하여
해시 가능하고 직렬화가 단순하도록 한다 (FR 원소는 해시 불가).

  BalanceEntry             슬롯 하나의 복호화된 (토큰, 잔액)
  ScanSnapshot             증분 재스캔을 위한 체크포인트 (current_slot, entries)
  TxKind                   원장 이벤트 종류
  TransactionHistoryEntry  BalanceEntry + 이벤트 메타데이터 (표시용)
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class BalanceEntry:
    """슬롯 시점의 계정 잔액 스냅샷."""
    slot: int
    token_id: int
    amount: int


@dataclass(frozen=True)
class ScanSnapshot:
    """영속화되는 스캔 체크포인트.

    entries는 항상 slot 내림차순(최신 슬롯 먼저)이다.
    """
    current_slot: int
    entries: Tuple[BalanceEntry, ...] = ()
    last_updated: float = field(default_factory=time.time, compare=False)

    def same_state(self, other):
        """last_updated를 무시하고 (current_slot, entries)가 같은지 비교한다."""
        return (
            other is not None
            and self.current_slot == other.current_slot
            and tuple(self.entries) == tuple(other.entries)
        )


class TxKind(str, Enum):
    """원장 이벤트 종류. 분류 우선순위는 history.EVENT_PRIORITY를 따른다."""
    INITIALIZE = "initialize"
    DEPOSIT = "deposit"
    SEND = "send"
    WITHDRAW = "withdraw"
    ABSORB = "absorb"


@dataclass(frozen=True)
class TransactionHistoryEntry:
    """한 슬롯의 표시용 거래 기록."""
    kind: TxKind
    slot: int
    identifier: int
    token_id: int
    amount: int
    timestamp: int = 0
    block_number: int = 0
    tx_hash: str = ""
    receiver_public_key: Optional[Tuple[int, int]] = None
    absorbed_amount: Optional[int] = None
    nullifier: Optional[int] = None
    reference_m: Optional[int] = None
    reference_r: Optional[int] = None

    @property
    def balance_entry(self):
        return BalanceEntry(self.slot, self.token_id, self.amount)
