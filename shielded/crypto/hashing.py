"""
필드 해시 H: FR* → FR
======================

키 유도, 슬롯 식별자, 스트림 암호의 키 스트림이 모두 하나의 결정론적 해시
H를 공유한다. 스캔 엔진은 H의 내부를 들여다보지 않고 불투명한 함수로만 다룬다.

**주입 가능한 해시**:
  원장 회로가 사용하는 해시(예: Poseidon2)와 맞춰야 하는 배포에서는
  FieldHasher를 상속한 구현을 주입한다. 반환 타입은 언제나 FR 하나이다.

**기본 구현 Sha256FieldHasher**:
  Fiat-Shamir 트랜스크립트와 같은 방식의 hash-to-field:
    state = label ‖ len(inputs) ‖ x₁ ‖ x₂ ‖ ... (각 32바이트 빅엔디안)
    H(x₁, ..., xₙ) = SHA-256(state) mod p

  입력 개수를 먼저 흡수하므로 H(a)와 H(a, 0)은 서로 다르다.

사용 예시:
    >>> hasher = Sha256FieldHasher()
    >>> hasher.hash(FR(1), FR(2))
"""

import hashlib
from abc import ABC, abstractmethod

from shielded.crypto.field import FR, CURVE_ORDER


class FieldHasher(ABC):
    """H: FR* → FR 능력(capability)의 기반 클래스."""

    @abstractmethod
    def hash(self, *inputs):
        """입력 필드 원소들을 하나의 FR로 해시한다.

        Args:
            *inputs: int 또는 FR

        Returns:
            FR
        """

    def __call__(self, *inputs):
        return self.hash(*inputs)


class Sha256FieldHasher(FieldHasher):
    """SHA-256 기반 hash-to-field.

    속성:
        label: 도메인 분리용 레이블 (기본값: b"shielded")
    """

    def __init__(self, label=b"shielded"):
        self.label = bytes(label)

    def hash(self, *inputs):
        state = bytearray()
        state.extend(self.label)
        state.extend(len(inputs).to_bytes(4, "big"))
        for value in inputs:
            # FR 원소를 32바이트 빅엔디안으로 직렬화
            state.extend((int(value) % CURVE_ORDER).to_bytes(32, "big"))
        h = hashlib.sha256(bytes(state)).digest()
        return FR(int.from_bytes(h, "big") % CURVE_ORDER)


_DEFAULT_HASHER = Sha256FieldHasher()


def default_hasher():
    """모듈 전역 기본 해시를 반환한다."""
    return _DEFAULT_HASHER
