"""
Grumpkin 타원곡선 연산
=======================

커밋먼트가 사는 곡선은 short-Weierstrass 형태의 Grumpkin 곡선이다.

    y² = x³ - 17  (mod p),  p = bn128 스칼라 필드 위수

점은 FR 좌표 쌍 (x, y) 튜플로 표현한다. 항등원(무한원점)은 원장과 같은 방식으로
(0, 0)으로 인코딩한다. (0, 0)은 곡선 방정식 -17 ≠ 0 을 만족하지 않으므로
실제 점과 겹치지 않는다.

**덧셈 규칙**:
  - 한쪽이 항등원 → 다른 쪽을 반환
  - 서로의 역원 (x₁ = x₂, y₁ = -y₂) → 항등원
  - 같은 점 → 접선 공식 λ = 3x² / 2y
  - 그 외 → 할선 공식 λ = (y₂ - y₁) / (x₂ - x₁)

**스칼라 곱**:
  하위 비트부터의 double-and-add. 상수 구조이지만 상수 시간은 아니다.
  Grumpkin 군의 위수 q는 bn128 기저체 위수로, 좌표 필드 p와 다르다.
  스칼라는 q로 축소하므로 임의의 정수(음수 포함)에 대해 k·P가 정확하다.
  여기서 곱하는 비밀 값은 이미 로컬 클라이언트에 노출된 복호화 키와 개봉값뿐이다.

사용 예시:
    >>> from shielded.crypto.curve import ec_add, ec_mul, ec_neg, INFINITY
    >>> P = ec_mul(G_PERSONAL, 5)
    >>> ec_add(P, ec_neg(P)) == INFINITY  # True
"""

from py_ecc import bn128

from shielded.crypto.field import FR, CURVE_ORDER, field_inverse
from shielded.errors import InputError


# ─────────────────────────────────────────────────────────────────────
# 곡선 상수
# ─────────────────────────────────────────────────────────────────────

# y² = x³ + B
CURVE_B = FR(-17)

# 항등원 (point at infinity)
INFINITY = (FR(0), FR(0))

# 군의 위수 q (bn128 기저체 위수)
GROUP_ORDER = bn128.field_modulus


def is_infinity(point):
    """항등원 여부."""
    return point[0] == 0 and point[1] == 0


def is_on_curve(point):
    """점이 곡선 위에 있는지 확인한다. 항등원은 항상 True."""
    if is_infinity(point):
        return True
    x, y = point
    return y * y == x * x * x + CURVE_B


def to_point(x, y):
    """정수 좌표를 검증된 곡선 점으로 변환한다.

    Args:
        x, y: int 또는 FR 좌표

    Returns:
        (FR, FR) 점

    Raises:
        InputError: 곡선 위의 점이 아닐 때
    """
    point = (FR(int(x) % CURVE_ORDER), FR(int(y) % CURVE_ORDER))
    if not is_on_curve(point):
        raise InputError(f"Point ({int(x):#x}, {int(y):#x}) is not on the curve")
    return point


def point_to_ints(point):
    """점 → (int, int)"""
    return int(point[0]), int(point[1])


# ─────────────────────────────────────────────────────────────────────
# 군 연산
# ─────────────────────────────────────────────────────────────────────

def ec_neg(point):
    """점의 역원 -P = (x, -y)."""
    if is_infinity(point):
        return INFINITY
    x, y = point
    return (x, -y)


def ec_double(point):
    """점 두 배 2P (접선 공식).

    y = 0인 점은 자기 자신의 역원이므로 ec_add에서 먼저 항등원으로 처리된다.
    여기에 직접 y = 0인 점이 들어오면 2y가 역원을 갖지 않으므로 NonInvertibleError가 난다.
    """
    if is_infinity(point):
        return INFINITY
    x, y = point
    slope = FR(3) * x * x * field_inverse(FR(2) * y)
    x3 = slope * slope - FR(2) * x
    y3 = slope * (x - x3) - y
    return (x3, y3)


def ec_add(p1, p2):
    """점 덧셈 p1 + p2.

    Args:
        p1, p2: 곡선 위의 점 (항등원 포함)

    Returns:
        p1 + p2

    예시:
        >>> ec_add(P, INFINITY) == P  # True
        >>> ec_add(P, P) == ec_double(P)  # True
    """
    if is_infinity(p1):
        return p2
    if is_infinity(p2):
        return p1

    x1, y1 = p1
    x2, y2 = p2

    if x1 == x2:
        if y1 == -y2:
            return INFINITY
        return ec_double(p1)

    slope = (y2 - y1) * field_inverse(x2 - x1)
    x3 = slope * slope - x1 - x2
    y3 = slope * (x1 - x3) - y1
    return (x3, y3)


def ec_sub(p1, p2):
    """점 뺄셈 p1 - p2 = p1 + (-p2)."""
    return ec_add(p1, ec_neg(p2))


def ec_mul(point, scalar):
    """스칼라 곱 scalar · point (double-and-add).

    스칼라는 군의 위수 q로 축소한 뒤 하위 비트부터 처리한다.

    Args:
        point: 곡선 위의 점
        scalar: int 또는 FR

    Returns:
        scalar · point

    예시:
        >>> ec_mul(P, 0) == INFINITY  # True
        >>> ec_mul(P, 3) == ec_add(ec_add(P, P), P)  # True
    """
    k = int(scalar) % GROUP_ORDER
    result = INFINITY
    addend = point
    while k > 0:
        if k & 1:
            result = ec_add(result, addend)
        addend = ec_double(addend)
        k >>= 1
    return result
