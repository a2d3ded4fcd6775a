"""
기반 모듈: 유한체(Finite Field) 산술
=====================================

스캔 엔진 전체에서 사용되는 스칼라 체를 정의한다.

**유한체 FR**:
  bn128 타원곡선의 스칼라 필드 (scalar field).
  - 위수(order) p ≈ 2^254, 소수체(prime field)
  - Grumpkin 곡선의 기저체(base field)와 같은 체이다.
    따라서 커밋먼트 점의 좌표, 개봉값(opening), 해시 출력, 암호문이 모두 FR 원소이다.

**역원**:
  페르마 소정리 a^(p-2) = a^(-1) (mod p) 로 계산한다.
  py_ecc의 FQ 나눗셈은 0으로 나누면 조용히 0을 돌려주므로
  곡선 기울기 계산에는 쓰지 않고 항상 field_inverse를 사용한다.

사용 예시:
    >>> from shielded.crypto.field import FR, field_inverse
    >>> a = FR(3)
    >>> a * field_inverse(a)  # FR(1)
"""

from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128

from shielded.errors import NonInvertibleError


# ─────────────────────────────────────────────────────────────────────
# 유한체(Finite Field) FR
# ─────────────────────────────────────────────────────────────────────

class FR(FQ):
    """bn128 스칼라 필드 위의 유한체 원소.

    py_ecc의 FQ 클래스를 상속하여 +, -, *, ** 등의 필드 연산을 제공한다.
    생성 시 항상 [0, p) 범위로 축소되므로 표현은 언제나 정규형이다.

    예시:
        >>> FR(CURVE_ORDER + 7) == FR(7)  # True
        >>> FR(0) - FR(1) == FR(CURVE_ORDER - 1)  # True
    """
    field_modulus = bn128.curve_order


# 곡선 위수 (필드 크기)
CURVE_ORDER = bn128.curve_order


def to_fr(value):
    """int, FR, 0x 문자열을 FR로 변환한다.

    Args:
        value: int, FR, 또는 "0x..." / 10진수 문자열

    Returns:
        FR: 축소된 필드 원소
    """
    if isinstance(value, FR):
        return value
    if isinstance(value, str):
        value = int(value, 16) if value.lower().startswith("0x") else int(value)
    return FR(int(value) % CURVE_ORDER)


def field_pow(base, exponent):
    """모듈러 거듭제곱 base^exponent (mod p).

    Args:
        base: int 또는 FR
        exponent: 0 이상의 정수

    Returns:
        FR
    """
    if exponent < 0:
        raise ValueError(f"exponent는 0 이상이어야 합니다: {exponent}")
    return FR(pow(int(base) % CURVE_ORDER, exponent, CURVE_ORDER))


def field_inverse(a):
    """모듈러 역원 a^(-1) = a^(p-2) (mod p).

    Args:
        a: int 또는 FR

    Returns:
        FR: a의 역원

    Raises:
        NonInvertibleError: a ≡ 0 (mod p)일 때

    예시:
        >>> field_inverse(FR(2)) * FR(2) == FR(1)  # True
    """
    if int(a) % CURVE_ORDER == 0:
        raise NonInvertibleError("Cannot compute inverse of 0")
    return field_pow(a, CURVE_ORDER - 2)


def fr_short(val):
    """FR → 축약 hex 문자열 (로그용)"""
    if val is None:
        return "None"
    s = f"{int(val):#x}"
    if len(s) <= 12:
        return s
    return s[:8] + "..." + s[-4:]
