"""
스캔 데이터 직렬화/역직렬화 헬퍼
==================================

TinyDB와 JSON 응답에 담을 수 있는 형태로 스캔 객체를 변환한다.
필드 원소는 254비트라 JSON 숫자로 안전하지 않으므로 모두 str(int)로 저장한다.
FR, 곡선 점, BalanceEntry, ScanSnapshot, TransactionHistoryEntry,
PersonalCommitmentState, ReferenceResolution, MainStateInputs 등.
"""

from shielded.crypto.curve import to_point
from shielded.scan.types import (
    BalanceEntry,
    ScanSnapshot,
    TxKind,
    TransactionHistoryEntry,
)


# ─── FR ───

def serialize_fr(val):
    """FR → str(int)"""
    return str(int(val))


def serialize_optional_int(val):
    if val is None:
        return None
    return str(int(val))


def deserialize_optional_int(s):
    if s is None:
        return None
    return int(s)


# ─── 곡선 점 ───

def serialize_point(point):
    """(x, y) → [str, str] or None"""
    if point is None:
        return None
    return [str(int(point[0])), str(int(point[1]))]


def deserialize_point(data):
    """[str, str] or None → (FR, FR). 곡선 위의 점인지 확인한다."""
    if data is None:
        return None
    return to_point(int(data[0]), int(data[1]))


# ─── BalanceEntry / ScanSnapshot ───

def serialize_balance_entry(entry):
    return {
        "slot": entry.slot,
        "token_id": str(entry.token_id),
        "amount": str(entry.amount),
    }


def deserialize_balance_entry(data):
    return BalanceEntry(
        slot=int(data["slot"]),
        token_id=int(data["token_id"]),
        amount=int(data["amount"]),
    )


def serialize_snapshot(snapshot):
    """ScanSnapshot → dict"""
    if snapshot is None:
        return None
    return {
        "current_slot": snapshot.current_slot,
        "entries": [serialize_balance_entry(e) for e in snapshot.entries],
        "last_updated": snapshot.last_updated,
    }


def deserialize_snapshot(data):
    """dict → ScanSnapshot"""
    if data is None:
        return None
    return ScanSnapshot(
        current_slot=int(data["current_slot"]),
        entries=tuple(deserialize_balance_entry(e) for e in data.get("entries", [])),
        last_updated=float(data.get("last_updated", 0.0)),
    )


# ─── TransactionHistoryEntry ───

def serialize_history_entry(entry):
    return {
        "kind": entry.kind.value,
        "slot": entry.slot,
        "identifier": str(entry.identifier),
        "token_id": str(entry.token_id),
        "amount": str(entry.amount),
        "timestamp": entry.timestamp,
        "block_number": entry.block_number,
        "tx_hash": entry.tx_hash,
        "receiver_public_key": (
            [str(v) for v in entry.receiver_public_key]
            if entry.receiver_public_key is not None else None
        ),
        "absorbed_amount": serialize_optional_int(entry.absorbed_amount),
        "nullifier": serialize_optional_int(entry.nullifier),
        "reference_m": serialize_optional_int(entry.reference_m),
        "reference_r": serialize_optional_int(entry.reference_r),
    }


def deserialize_history_entry(data):
    receiver = data.get("receiver_public_key")
    return TransactionHistoryEntry(
        kind=TxKind(data["kind"]),
        slot=int(data["slot"]),
        identifier=int(data["identifier"]),
        token_id=int(data["token_id"]),
        amount=int(data["amount"]),
        timestamp=int(data.get("timestamp", 0)),
        block_number=int(data.get("block_number", 0)),
        tx_hash=data.get("tx_hash", ""),
        receiver_public_key=tuple(int(v) for v in receiver) if receiver is not None else None,
        absorbed_amount=deserialize_optional_int(data.get("absorbed_amount")),
        nullifier=deserialize_optional_int(data.get("nullifier")),
        reference_m=deserialize_optional_int(data.get("reference_m")),
        reference_r=deserialize_optional_int(data.get("reference_r")),
    )


# ─── 재구성 결과 ───

def serialize_personal_state(state):
    """PersonalCommitmentState → dict"""
    return {
        "slot": state.slot,
        "token_id": str(state.token_id),
        "total": serialize_point(state.total),
        "inner": serialize_point(state.inner),
        "outer": serialize_point(state.outer),
        "inner_m": str(state.inner_m),
        "outer_m": str(state.outer_m),
        "outer_r": str(state.outer_r),
        "initializer": serialize_point(state.initializer),
    }


def serialize_reference(reference):
    """ReferenceResolution → dict"""
    return {
        "encrypted_x": str(reference.encrypted_x),
        "encrypted_y": str(reference.encrypted_y),
        "source": reference.source,
    }


def serialize_main_state(main):
    """MainStateInputs → dict"""
    return {
        "previous_slot": main.previous_slot,
        "inner": serialize_point(main.inner),
        "outer": serialize_point(main.outer),
        "total": serialize_point(main.total),
        "inner_opening": [str(v) for v in main.inner_opening],
        "outer_opening": [str(v) for v in main.outer_opening],
    }


def serialize_accumulator(accumulator):
    """CommitmentAccumulator → dict or None"""
    if accumulator is None:
        return None
    return {
        "point": serialize_point(accumulator.point),
        "aggregated_m": serialize_fr(accumulator.aggregated_m),
        "aggregated_r": serialize_fr(accumulator.aggregated_r),
        "count": accumulator.count,
    }
