"""
Scan Flask Blueprint: 스캔 엔진의 JSON 엔드포인트
===================================================

  POST /scan/discover                        현재 슬롯 탐색 + 잔액 갱신
  POST /scan/history                         거래 기록 조립
  POST /scan/personal-state                  다음 전이 증명 입력 준비
  GET  /scan/snapshot/<account_id>           저장된 스냅샷 조회
  POST /scan/snapshot/<account_id>/clear     스냅샷/기록 삭제

요청 본문은 JSON이며 서명을 hex 문자열로 담는다: {"signature": "0x..."}

오류 매핑:
  InputError            400
  LedgerUnavailable     503
  ConsistencyViolation  409
  SearchExhausted       422
"""

import logging

from flask import Blueprint, jsonify, request

from shielded.config import ScanConfig
from shielded.crypto.field import to_fr
from shielded.crypto.keys import AccountKeys
from shielded.errors import (
    InputError,
    LedgerUnavailable,
    ConsistencyViolation,
    SearchExhausted,
)
from shielded.scan import scan_account_sync, scan_history_sync, prepare_transition_sync
from shielded.serializers import (
    serialize_balance_entry,
    serialize_snapshot,
    serialize_history_entry,
    serialize_personal_state,
    serialize_reference,
    serialize_main_state,
    serialize_accumulator,
)

logger = logging.getLogger(__name__)

scan_bp = Blueprint('scan', __name__, url_prefix='/scan')

# app.py에서 주입
LEDGER = None
STORE = None
SCAN_CONFIG = None


def init_scan_bp(ledger, store, scan_config=None):
    """app.py에서 원장, 저장소, 스캔 설정을 주입받는다."""
    global LEDGER, STORE, SCAN_CONFIG
    LEDGER = ledger
    STORE = store
    SCAN_CONFIG = scan_config or ScanConfig()


# ─── 요청 헬퍼 ───

def request_keys():
    """요청 본문의 서명으로 AccountKeys를 만든다."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InputError("Request body must be a JSON object")
    signature = body.get("signature")
    if not signature:
        raise InputError("signature is required")
    return AccountKeys.from_signature(signature), body


def error_response(code, error, status):
    return jsonify({"error": code, "message": str(error)}), status


# ─── 오류 매핑 ───

@scan_bp.errorhandler(InputError)
def handle_input_error(e):
    return error_response("INVALID_INPUT", e, 400)


@scan_bp.errorhandler(LedgerUnavailable)
def handle_ledger_unavailable(e):
    logger.warning(f"Ledger unavailable: {e}")
    return error_response("LEDGER_UNAVAILABLE", e, 503)


@scan_bp.errorhandler(ConsistencyViolation)
def handle_consistency_violation(e):
    logger.error(f"Consistency violation: {e}")
    return error_response("CONSISTENCY_VIOLATION", e, 409)


@scan_bp.errorhandler(SearchExhausted)
def handle_search_exhausted(e):
    logger.error(str(e))
    return error_response("SEARCH_EXHAUSTED", e, 422)


# ──────────────────────────────────────────────────────────────
# 스캔
# ──────────────────────────────────────────────────────────────

@scan_bp.route("/discover", methods=["POST"])
def discover():
    """현재 슬롯을 찾고 잔액 스냅샷을 갱신한다."""
    keys, _ = request_keys()
    result = scan_account_sync(LEDGER, STORE, keys, config=SCAN_CONFIG)

    return jsonify({
        "account_id": result.account_id,
        "current_slot": result.current_slot,
        "fast_path": result.fast_path,
        "entries": [serialize_balance_entry(e) for e in result.entries],
        "decrypted_slots": list(result.decrypted_slots),
        "saved": result.saved,
        "cancelled": result.cancelled,
        "accumulator": serialize_accumulator(
            result.discovery.accumulator if result.discovery else None),
    })


@scan_bp.route("/history", methods=["POST"])
def history():
    """거래 기록을 조립한다."""
    keys, _ = request_keys()
    result = scan_history_sync(LEDGER, STORE, keys, config=SCAN_CONFIG)

    return jsonify({
        "account_id": result.account_id,
        "current_slot": result.current_slot,
        "entries": [serialize_history_entry(e) for e in result.entries],
        "cancelled": result.cancelled,
    })


@scan_bp.route("/personal-state", methods=["POST"])
def personal_state():
    """다음 전이 증명에 필요한 개인/주 상태 입력을 만든다.

    본문: {"signature": "0x...", "token_id": "7", "include_initializer": false}
    """
    keys, body = request_keys()
    if body.get("token_id") is None:
        raise InputError("token_id is required")
    try:
        token_id = int(to_fr(body["token_id"]))
    except (TypeError, ValueError) as e:
        raise InputError(f"Invalid token_id: {body['token_id']}") from e

    prepared = prepare_transition_sync(
        LEDGER, STORE, keys, token_id,
        config=SCAN_CONFIG,
        include_initializer=bool(body.get("include_initializer", False)),
    )
    if prepared.cancelled:
        return jsonify({"account_id": prepared.scan.account_id, "cancelled": True})

    inputs = prepared.inputs
    return jsonify({
        "account_id": prepared.scan.account_id,
        "current_slot": prepared.scan.current_slot,
        "previous_slot": inputs.previous_slot,
        "balance": serialize_balance_entry(inputs.balance),
        "personal": serialize_personal_state(inputs.personal),
        "reference": serialize_reference(inputs.reference),
        "main": serialize_main_state(inputs.main),
        "cancelled": False,
    })


# ──────────────────────────────────────────────────────────────
# 스냅샷
# ──────────────────────────────────────────────────────────────

@scan_bp.route("/snapshot/<account_id>")
def snapshot(account_id):
    """저장된 스냅샷을 조회한다."""
    data = STORE.load_snapshot(account_id)
    if data is None:
        return jsonify({"error": "NOT_FOUND", "message": f"No snapshot for {account_id}"}), 404
    return jsonify({"account_id": account_id, "snapshot": serialize_snapshot(data)})


@scan_bp.route("/snapshot/<account_id>/clear", methods=["POST"])
def clear_snapshot(account_id):
    """스냅샷과 거래 기록을 삭제한다."""
    STORE.clear_snapshot(account_id)
    return jsonify({"account_id": account_id, "cleared": True})
