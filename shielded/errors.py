"""
스캔 엔진 예외 계층
====================

원장 스캔과 커밋먼트 재구성 과정에서 발생하는 실패를 네 부류로 나눈다.

  InputError           잘못된 키 재료, 역원이 없는 원소 등 입력 검증 실패 (재시도 불가)
  LedgerUnavailable    원장 I/O 실패 (호출자가 재시도 가능, 캐시는 건드리지 않음)
  ConsistencyViolation 누산기 불일치, 재암호화 후에도 통과하지 못한 참조점 (치명적)
  SearchExhausted      슬롯 상한 도달 (설정 오류 또는 손상된 상태의 신호)

ScanCancelled는 오류가 아니라 협력적 취소를 전달하는 제어 신호이다.
scan_account 바깥으로 새어 나가지 않는다.
"""


class ShieldedError(Exception):
    """스캔 엔진의 모든 오류의 기반 클래스."""
    pass


class InputError(ShieldedError, ValueError):
    """입력 검증 실패. 같은 입력으로 다시 시도해도 결과는 같다."""
    pass


class NonInvertibleError(InputError):
    """0의 역원을 요청했을 때 발생한다."""
    pass


class LedgerUnavailable(ShieldedError):
    """원장 읽기 실패. 재시도 가능."""
    pass


class ConsistencyViolation(ShieldedError):
    """재구성한 값이 스스로의 검증을 통과하지 못했다."""
    pass


class SearchExhausted(ShieldedError):
    """nonce 탐색이 슬롯 상한에 도달했다."""

    def __init__(self, max_slots):
        super().__init__(f"Could not find current slot after checking {max_slots} slots")
        self.max_slots = max_slots


class ScanCancelled(Exception):
    """취소 토큰이 설정되어 스캔을 중단한다."""
    pass
