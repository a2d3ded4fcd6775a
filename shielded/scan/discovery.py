"""
Nonce 탐색 프로토콜
====================

계정의 "현재" 슬롯 n*, 즉 식별자 H(user_key_hash, n*)가 원장의 멤버십 집합에
아직 없는 가장 작은 슬롯을 찾는다.

**상태 기계**:

  IDLE ──(캐시 있음)──▶ PROBING ──(캐시 슬롯이 아직 없음)──▶ FOUND   (fast path)
    │                     │
    │                     └──(있음)──▶ REBUILDING ──▶ SEARCHING
    │                                 (0..cached 로컬 재생)
    └──(캐시 없음)──────────────────────────────────▶ SEARCHING
                                                       │
                            slot 없음 → FOUND ◀────────┤
                            slot ≥ max_slots → EXHAUSTED

  SEARCHING만이 매 반복마다 원장 I/O로 중단된다. 나머지 상태는 순수 계산이다.
  DiscoveryStep은 불변 값이며 dataclasses.replace로 한 단계씩 진행한다.

**누산기 (CommitmentAccumulator)**:
  genesis = personal_commitment(1, 1), (M, R) = (1, 1)
  슬롯 하나마다: point += personal_commitment(1, identifier), M += 1, R += identifier

  불변식: point = personal_commitment(M, R) + (p로 축소된 횟수만큼의 보정항)

**캐시 fast path**:
  캐시된 current_slot의 식별자가 여전히 없다면 원장 호출 1회로 끝난다.
  있다면 0..cached-1은 로컬에서 재생하고, 방금 확인한 cached 슬롯을 누산한 뒤
  cached+1부터 탐색을 이어 간다 (같은 슬롯을 두 번 묻지 않는다).

사용 예시:
    >>> result = await discover_current_slot(ledger, keys, cached_slot=3)
    >>> result.current_slot, result.fast_path
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from shielded.config import ScanConfig, AGGREGATE_CHECK_MODES
from shielded.crypto.curve import ec_add, point_to_ints
from shielded.crypto.commitments import (
    G_PERSONAL,
    D_PERSONAL,
    GENESIS_ACCUMULATOR_POINT,
    personal_commitment,
    aggregate_opening_with_carry,
    reduction_term,
)
from shielded.crypto.field import FR, fr_short
from shielded.errors import InputError, ConsistencyViolation, SearchExhausted
from shielded.scan.cancel import NEVER_CANCELLED
from shielded.scan.ledger import ledger_read

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# 누산기
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CommitmentAccumulator:
    """슬롯별 커밋먼트의 누적합과 분리 누적된 스칼라 개봉값.

    속성:
        point: 누적 점
        aggregated_m, aggregated_r: 누적 개봉값 (mod p)
        count: 누적한 슬롯 수
        carry_m, carry_r: 개봉값이 p로 축소된 횟수
    """
    point: tuple
    aggregated_m: FR
    aggregated_r: FR
    count: int = 0
    carry_m: int = 0
    carry_r: int = 0

    @classmethod
    def genesis(cls):
        return cls(GENESIS_ACCUMULATOR_POINT, FR(1), FR(1))

    def advance(self, identifier):
        """슬롯 하나의 기여 personal_commitment(1, identifier)를 더한 새 누산기."""
        m, carry_m = aggregate_opening_with_carry(self.aggregated_m, 1)
        r, carry_r = aggregate_opening_with_carry(self.aggregated_r, identifier)
        return replace(
            self,
            point=ec_add(self.point, personal_commitment(1, identifier)),
            aggregated_m=m,
            aggregated_r=r,
            count=self.count + 1,
            carry_m=self.carry_m + carry_m,
            carry_r=self.carry_r + carry_r,
        )

    def is_consistent(self):
        """point가 (M, R)과 축소 보정항으로 정확히 재구성되는지 확인한다."""
        expected = personal_commitment(self.aggregated_m, self.aggregated_r)
        expected = ec_add(expected, reduction_term(G_PERSONAL, self.carry_m))
        expected = ec_add(expected, reduction_term(D_PERSONAL, self.carry_r))
        return point_to_ints(expected) == point_to_ints(self.point)

    def matches(self, point, m, r):
        """원장이 공개한 (point, m, r)과 정확히 같은지 비교한다."""
        return (
            point_to_ints(self.point) == point_to_ints(point)
            and int(self.aggregated_m) == int(m)
            and int(self.aggregated_r) == int(r)
        )


def replay_accumulator(keys, slot_count, start=None):
    """슬롯 0..slot_count-1을 원장 호출 없이 로컬에서 누산한다."""
    accumulator = start or CommitmentAccumulator.genesis()
    for slot in range(accumulator.count, slot_count):
        accumulator = accumulator.advance(keys.slot_identifier(slot))
    return accumulator


def aggregate_opens(point, m, r):
    """원장 누산기 (point, m, r)이 자기 개봉값으로 열리는지 확인한다.

    M = 1 + 기여 수이므로 R의 축소 횟수는 M - 1을 넘지 않는다.
    M 자체는 p에 도달하지 않는다고 본다.
    """
    target = point_to_ints(point)
    candidate = personal_commitment(m, r)
    step = reduction_term(D_PERSONAL, 1)
    for _ in range(int(m)):
        if point_to_ints(candidate) == target:
            return True
        candidate = ec_add(candidate, step)
    return False


# ─────────────────────────────────────────────────────────────────────
# 상태 기계
# ─────────────────────────────────────────────────────────────────────

class DiscoveryState(Enum):
    IDLE = "idle"
    PROBING = "probing"
    REBUILDING = "rebuilding"
    SEARCHING = "searching"
    FOUND = "found"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class DiscoveryStep:
    """탐색 루프를 따라 전달되는 불변 상태 값."""
    state: DiscoveryState
    slot: int
    accumulator: Optional[CommitmentAccumulator]
    start_slot: int = 0
    membership_calls: int = 0


@dataclass(frozen=True)
class DiscoveryResult:
    """탐색 결과.

    속성:
        current_slot: 첫 번째 미사용 슬롯 n*
        accumulator: 0..n*-1을 누산한 누산기 (fast path에서는 None)
        start_slot: 이번 탐색이 새로 확인한 가장 낮은 사용 슬롯
        fast_path: 캐시 슬롯 확인 한 번으로 끝났는지
        membership_calls: 이번 탐색에서 원장에 보낸 멤버십 질의 수
    """
    current_slot: int
    accumulator: Optional[CommitmentAccumulator]
    start_slot: int
    fast_path: bool
    membership_calls: int


async def _search_step(step, ledger, keys, config, token):
    """SEARCHING 한 반복: 슬롯 하나를 질의하고 다음 상태를 돌려준다."""
    if step.slot >= config.max_slots:
        return replace(step, state=DiscoveryState.EXHAUSTED)

    identifier = keys.slot_identifier(step.slot)
    present = await ledger_read(token, ledger.read_membership, identifier)
    step = replace(step, membership_calls=step.membership_calls + 1)

    if not present:
        return replace(step, state=DiscoveryState.FOUND)

    logger.debug(f"Slot {step.slot} in use ({fr_short(identifier)})")
    return replace(
        step,
        slot=step.slot + 1,
        accumulator=step.accumulator.advance(identifier),
    )


async def _check_aggregate(accumulator, ledger, config, token):
    if config.aggregate_check == "off":
        return

    if not accumulator.is_consistent():
        raise ConsistencyViolation(
            f"Local accumulator does not open to its own scalars after {accumulator.count} slots"
        )

    point, m, r = await ledger_read(token, ledger.read_aggregate_accumulator)

    if config.aggregate_check == "consistency":
        if not aggregate_opens(point, m, r):
            raise ConsistencyViolation("Ledger aggregate does not open to its published scalars")
    elif not accumulator.matches(point, m, r):
        raise ConsistencyViolation(
            f"Local accumulator ({accumulator.count} slots) differs from ledger aggregate"
        )


async def discover_current_slot(ledger, keys, cached_slot=None, *, config=None, token=None):
    """계정의 현재(첫 번째 미사용) 슬롯을 찾는다.

    Args:
        ledger: Ledger
        keys: AccountKeys
        cached_slot: 이전 스캔이 저장한 current_slot (없으면 None)
        config: ScanConfig (max_slots, aggregate_check)
        token: CancellationToken

    Returns:
        DiscoveryResult

    Raises:
        SearchExhausted: max_slots 안에서 미사용 슬롯을 찾지 못했을 때
        ConsistencyViolation: aggregate_check가 실패했을 때
        LedgerUnavailable: 원장 읽기 실패
        ScanCancelled: 취소 요청
    """
    config = config or ScanConfig()
    token = token or NEVER_CANCELLED
    if config.aggregate_check not in AGGREGATE_CHECK_MODES:
        raise InputError(f"Unknown aggregate_check mode: {config.aggregate_check}")

    step = DiscoveryStep(DiscoveryState.IDLE, 0, CommitmentAccumulator.genesis())

    if cached_slot is None:
        step = replace(step, state=DiscoveryState.SEARCHING)
    else:
        if cached_slot < 0:
            raise InputError(f"cached_slot must be non-negative, got {cached_slot}")

        step = replace(step, state=DiscoveryState.PROBING, slot=cached_slot, start_slot=cached_slot)
        identifier = keys.slot_identifier(cached_slot)
        present = await ledger_read(token, ledger.read_membership, identifier)
        step = replace(step, membership_calls=1)

        if not present:
            logger.info(f"Cached slot {cached_slot} still unused, skipping search")
            return DiscoveryResult(cached_slot, None, cached_slot, True, 1)

        step = replace(step, state=DiscoveryState.REBUILDING)
        accumulator = replay_accumulator(keys, cached_slot).advance(identifier)
        token.checkpoint()
        step = replace(
            step,
            state=DiscoveryState.SEARCHING,
            slot=cached_slot + 1,
            accumulator=accumulator,
        )

    while step.state is DiscoveryState.SEARCHING:
        step = await _search_step(step, ledger, keys, config, token)

    if step.state is DiscoveryState.EXHAUSTED:
        raise SearchExhausted(config.max_slots)

    await _check_aggregate(step.accumulator, ledger, config, token)

    logger.info(
        f"Current slot {step.slot} found after {step.membership_calls} membership queries"
    )
    return DiscoveryResult(
        current_slot=step.slot,
        accumulator=step.accumulator,
        start_slot=step.start_slot,
        fast_path=False,
        membership_calls=step.membership_calls,
    )
