"""
개인 커밋먼트 상태 재구성
==========================

다음 상태 전이 증명을 만들려면 직전 슬롯의 개인 커밋먼트 개봉값이 필요하다.

  inner = personal_commitment(H(amount, ukh), H(token_id, ukh))
  outer = personal_commitment(0, token_id)               (이전 외부 기여가 없는 기준 상태)
        또는 personal_commitment(outer_m, outer_r)       (이어받은 외부 기여)
  total = inner + outer (+ personal_commitment(token_id, ukh), 진입 직후 첫 전이)

**참조점 (reference point)**:
  원장은 직전 슬롯의 total을 slot_key(prev)와 트윅 OPENING_M/OPENING_R로 암호화해 보관한다.
  연속된 증명을 서로 묶는 값이다.

    ┌──────────────┐  prev = 0 또는 저장값 (0, 0)   ┌────────────┐
    │ 원장 저장값   │ ─────────────────────────────▶ │ "computed" │  total을 직접 암호화
    └──────┬───────┘                                 └────────────┘
           │ decrypt == total ──────────────────────▶ "stored"
           │ decrypt ≠ total  ──────────────────────▶ "recomputed" (WARNING + mismatches 카운트)
           ▼
    어떤 경우든 decrypt(결과) == total 을 다시 확인한다. 실패하면 ConsistencyViolation.

  저장된 암호문은 성능 최적화일 뿐 신뢰의 근거가 아니다.

**주 상태 입력 (main state)**:
  main_inner = public_commitment(enc_x, enc_y, identifier(prev))
  prev = 0:  main_outer = public_commitment(1, 1, 1),  개봉값 (1, 1, 1)
  prev > 0:  개봉값 = 원장의 누적 (m, r, d) - (enc_x, enc_y, identifier)
             main_outer = public_commitment(개봉값)
  main_total = main_inner + main_outer
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from shielded.crypto import cipher
from shielded.crypto.curve import ec_add, point_to_ints
from shielded.crypto.commitments import (
    personal_commitment,
    public_commitment,
    initial_state_commitment,
)
from shielded.crypto.field import CURVE_ORDER, fr_short
from shielded.errors import InputError, ConsistencyViolation
from shielded.scan.balances import latest_balance
from shielded.scan.cancel import NEVER_CANCELLED
from shielded.scan.ledger import ledger_read

logger = logging.getLogger(__name__)


REFERENCE_COMPUTED = "computed"
REFERENCE_STORED = "stored"
REFERENCE_RECOMPUTED = "recomputed"


# ─────────────────────────────────────────────────────────────────────
# 개인 커밋먼트 상태
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PersonalCommitmentState:
    """다음 증명을 작성하는 데 필요한 개인 커밋먼트 개봉 데이터.

    속성:
        slot, token_id: 이 상태가 속한 (슬롯, 토큰)
        total, inner, outer: 곡선 점
        inner_m: 잔액 (inner의 평문 개봉값)
        outer_m, outer_r: outer의 개봉값
        initializer: 진입 직후 첫 전이의 고정 항 (없으면 None)
    """
    slot: Optional[int]
    token_id: int
    total: tuple
    inner: tuple
    outer: tuple
    inner_m: int
    outer_m: int
    outer_r: int
    initializer: Optional[tuple] = None

    def verify(self):
        """total = inner + outer (+ initializer) 인지 확인한다."""
        expected = ec_add(self.inner, self.outer)
        if self.initializer is not None:
            expected = ec_add(expected, self.initializer)
        return point_to_ints(expected) == point_to_ints(self.total)


def reconstruct_personal_state(keys, amount, token_id, *, slot=None, hasher=None,
                               outer_opening=None, include_initializer=False):
    """(슬롯, 토큰)의 개인 커밋먼트 상태를 계산한다.

    Args:
        keys: AccountKeys
        amount: 그 슬롯 시점의 잔액
        token_id: 토큰 식별자
        slot: 기록용 슬롯 번호
        hasher: FieldHasher (기본값: keys.hasher)
        outer_opening: 이어받은 외부 기여 (outer_m, outer_r). None이면 (0, token_id)
        include_initializer: 진입 직후 첫 전이면 personal_commitment(token_id, ukh)를 더한다

    Returns:
        PersonalCommitmentState

    예시:
        >>> state = reconstruct_personal_state(keys, 1000, 7)
        >>> state.verify()  # True
    """
    if isinstance(amount, bool) or int(amount) < 0:
        raise InputError(f"amount must be a non-negative integer, got {amount!r}")

    hasher = hasher or keys.hasher
    ukh = keys.user_key_hash

    inner = personal_commitment(hasher.hash(amount, ukh), hasher.hash(token_id, ukh))

    if outer_opening is None:
        outer_m, outer_r = 0, int(token_id)
    else:
        outer_m, outer_r = (int(v) % CURVE_ORDER for v in outer_opening)
    outer = personal_commitment(outer_m, outer_r)

    total = ec_add(inner, outer)
    initializer = None
    if include_initializer:
        initializer = personal_commitment(token_id, ukh)
        total = ec_add(total, initializer)

    state = PersonalCommitmentState(
        slot=slot,
        token_id=int(token_id),
        total=total,
        inner=inner,
        outer=outer,
        inner_m=int(amount),
        outer_m=outer_m,
        outer_r=outer_r,
        initializer=initializer,
    )
    if not state.verify():
        raise ConsistencyViolation(f"Personal state for token {token_id} does not add up")
    return state


# ─────────────────────────────────────────────────────────────────────
# 참조점 해석
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReferenceResolution:
    """직전 슬롯의 암호화된 참조점과 그 출처."""
    encrypted_x: int
    encrypted_y: int
    source: str

    @property
    def point(self):
        return self.encrypted_x, self.encrypted_y


def _decrypts_to(encrypted, total, key, hasher):
    return point_to_ints(cipher.decrypt_point(encrypted, key, hasher)) == point_to_ints(total)


async def resolve_reference(ledger, keys, previous_slot, state, *, token=None,
                            hasher=None, on_recompute=None):
    """직전 슬롯의 참조점을 복호화 → 검증 → (필요시) 재계산 → 재검증한다.

    Args:
        ledger: Ledger
        keys: AccountKeys
        previous_slot: 직전 슬롯 (current_slot - 1)
        state: 그 슬롯의 PersonalCommitmentState
        token: CancellationToken
        hasher: 암호에 쓸 FieldHasher (기본값: keys.hasher)
        on_recompute: 저장값이 total과 다를 때 호출되는 콜백 (previous_slot)

    Returns:
        ReferenceResolution

    Raises:
        ConsistencyViolation: 재계산한 참조점도 total로 복호화되지 않을 때
        LedgerUnavailable: 원장 읽기 실패
    """
    token = token or NEVER_CANCELLED
    hasher = hasher or keys.hasher
    key = keys.slot_key(previous_slot)

    if previous_slot == 0:
        encrypted = cipher.encrypt_point(state.total, key, hasher)
        source = REFERENCE_COMPUTED
    else:
        identifier = keys.slot_identifier(previous_slot)
        stored = await ledger_read(token, ledger.read_encrypted_opening_payload, identifier)
        if int(stored[0]) == 0 and int(stored[1]) == 0:
            encrypted = cipher.encrypt_point(state.total, key, hasher)
            source = REFERENCE_COMPUTED
        elif _decrypts_to(stored, state.total, key, hasher):
            encrypted = stored
            source = REFERENCE_STORED
        else:
            logger.warning(
                f"Stored reference for slot {previous_slot} ({fr_short(identifier)}) "
                f"does not decrypt to the reconstructed total, recomputing"
            )
            if on_recompute is not None:
                on_recompute(previous_slot)
            encrypted = cipher.encrypt_point(state.total, key, hasher)
            source = REFERENCE_RECOMPUTED

    if not _decrypts_to(encrypted, state.total, key, hasher):
        raise ConsistencyViolation(
            f"Reference for slot {previous_slot} ({source}) fails its round-trip check"
        )

    return ReferenceResolution(int(encrypted[0]), int(encrypted[1]), source)


# ─────────────────────────────────────────────────────────────────────
# 주 상태 입력
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MainStateInputs:
    """다음 증명의 공개 상태 커밋먼트 입력."""
    previous_slot: int
    inner: tuple
    outer: tuple
    total: tuple
    inner_opening: Tuple[int, int, int]
    outer_opening: Tuple[int, int, int]

    def verify(self):
        return (
            point_to_ints(self.inner) == point_to_ints(public_commitment(*self.inner_opening))
            and point_to_ints(self.outer) == point_to_ints(public_commitment(*self.outer_opening))
            and point_to_ints(self.total) == point_to_ints(ec_add(self.inner, self.outer))
        )


async def prepare_main_state(ledger, keys, previous_slot, reference, *, token=None):
    """직전 슬롯의 참조점으로 주 상태 커밋먼트 입력을 만든다.

    Args:
        ledger: Ledger
        keys: AccountKeys
        previous_slot: 직전 슬롯
        reference: resolve_reference의 결과
        token: CancellationToken

    Returns:
        MainStateInputs

    Raises:
        ConsistencyViolation: 개봉값이 점을 재구성하지 못할 때
    """
    token = token or NEVER_CANCELLED
    enc_x, enc_y = reference.encrypted_x, reference.encrypted_y
    identifier = int(keys.slot_identifier(previous_slot))
    inner_opening = (enc_x, enc_y, identifier)
    inner = public_commitment(*inner_opening)

    if previous_slot == 0:
        outer_opening = (1, 1, 1)
        outer = initial_state_commitment()
    else:
        _, m, r, d = await ledger_read(token, ledger.read_state_commitment)
        outer_opening = (
            (int(m) - enc_x) % CURVE_ORDER,
            (int(r) - enc_y) % CURVE_ORDER,
            (int(d) - identifier) % CURVE_ORDER,
        )
        outer = public_commitment(*outer_opening)

    inputs = MainStateInputs(
        previous_slot=previous_slot,
        inner=inner,
        outer=outer,
        total=ec_add(inner, outer),
        inner_opening=inner_opening,
        outer_opening=outer_opening,
    )
    if not inputs.verify():
        raise ConsistencyViolation(f"Main state inputs for slot {previous_slot} do not reconstruct")
    return inputs


# ─────────────────────────────────────────────────────────────────────
# 재구성기
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitionInputs:
    """다음 전이 증명에 넘길 입력 묶음."""
    previous_slot: int
    balance: object
    personal: PersonalCommitmentState
    reference: ReferenceResolution
    main: MainStateInputs


class PersonalStateReconstructor:
    """(slot, token_id)별 개인 상태를 메모이즈하고 참조점을 해석한다.

    속성:
        mismatches: 저장된 참조점이 재계산으로 대체된 횟수
    """

    def __init__(self, ledger, keys, *, token=None):
        self.ledger = ledger
        self.keys = keys
        self.token = token or NEVER_CANCELLED
        self.mismatches = 0
        self._states = {}

    def state_for(self, slot, token_id, amount, include_initializer=False):
        key = (int(slot), int(token_id), bool(include_initializer))
        state = self._states.get(key)
        if state is None or state.inner_m != int(amount):
            state = reconstruct_personal_state(
                self.keys, amount, token_id, slot=slot, include_initializer=include_initializer)
            self._states[key] = state
        return state

    def _count_mismatch(self, previous_slot):
        self.mismatches += 1

    async def resolve_reference(self, previous_slot, state):
        return await resolve_reference(
            self.ledger, self.keys, previous_slot, state,
            token=self.token, on_recompute=self._count_mismatch,
        )

    async def prepare(self, entries, previous_slot, token_id, *, include_initializer=False):
        """잔액 항목으로부터 다음 전이의 입력 전체를 만든다.

        Args:
            entries: BalanceEntry들 (스캔 결과)
            previous_slot: current_slot - 1
            token_id: 보낼 토큰

        Returns:
            TransitionInputs

        Raises:
            InputError: previous_slot 이하에 그 토큰의 잔액이 없을 때
        """
        if previous_slot < 0:
            raise InputError("Account has no used slot yet")

        balance = latest_balance(entries, token_id, at_or_below=previous_slot)
        if balance is None:
            raise InputError(f"Balance not found for token {token_id} at any slot <= {previous_slot}")

        state = self.state_for(
            previous_slot, token_id, balance.amount, include_initializer=include_initializer)
        reference = await self.resolve_reference(previous_slot, state)
        main = await prepare_main_state(self.ledger, self.keys, previous_slot, reference, token=self.token)

        logger.info(f"Prepared transition inputs from slot {previous_slot} ({reference.source} reference)")
        return TransitionInputs(previous_slot, balance, state, reference, main)
