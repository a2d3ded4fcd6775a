"""
Pedersen 커밋먼트 대수
=======================

원장과 온체인 검증기가 합의한 두 개의 독립 생성자 집합을 사용한다.
생성자는 대역 외(out of band)로 합의된 고정 상수이며, 불일치는 런타임에
탐지할 조건이 아니라 배포 버그이다.

**공개 커밋먼트 (3-생성자, hiding)**:
    public_commitment(m, r, t) = m·G + r·H + t·D
    ("PEDERSEN_COMMITMENT" 도메인 생성자)
    전역 상태 커밋먼트(main state)에 쓰인다.

**개인 커밋먼트 (2-생성자, non-hiding)**:
    personal_commitment(m, t) = m·G' + t·D'
    ("PEDERSEN_COMMITMENT_PERSONAL" 도메인 생성자)
    독립적인 재유도 사이에서 결정론이 필요한 곳(개인 상태, nonce 탐색 누산기)에 쓰인다.

**동형성**:
    personal_commitment(m₁ + m₂, t₁ + t₂)
        = personal_commitment(m₁, t₁) + personal_commitment(m₂, t₂)

  그래서 스칼라 개봉값만 필드 덧셈으로 누적(aggregate_opening)해도
  점과 개봉값의 관계를 추적할 수 있다.

**축소 보정항**:
  개봉값은 좌표 필드 p로 축소되지만 곡선 군의 위수는 q ≠ p 이다.
  누적 합이 p를 넘어 축소될 때마다 점에는 p·생성자 만큼의 항이 남는다.

    Σ personal_commitment(1, tᵢ)
        = personal_commitment(Σm mod p, Σt mod p) + carry · p · D'

  aggregate_opening_with_carry가 축소 횟수를 돌려주고, reduction_term이 보정항을 만든다.

사용 예시:
    >>> C = personal_commitment(1, identifier)
    >>> m = aggregate_opening(FR(1), FR(1))  # FR(2)
"""

from shielded.crypto.field import FR, CURVE_ORDER
from shielded.crypto.curve import ec_add, ec_mul


# ─────────────────────────────────────────────────────────────────────
# 생성자 상수 ("PEDERSEN_COMMITMENT", index 0)
# ─────────────────────────────────────────────────────────────────────

# 금액 m
G = (
    FR(0x25630136fe1c61cbfaf1c6acb59edd53cebf87d0dc341132a6a2af3c077afb4f),
    FR(0x0ebe7c8574896e51ac5d1140a74e3d4cbda2b338c4e2a9f1e1e94dca28a60747),
)

# 블라인딩 r
H = (
    FR(0x25edc94b5b4b8bdb0601895d7d51a098ee051e4aed3837b23b2f7510893d613d),
    FR(0x18dfd2d181d3272513698220ac5fb371004335ffa6702aade8b647dbe0b3dce1),
)

# 도메인 분리 (토큰 식별자)
D = (
    FR(0x02b0b4e69873f1551d49f57e25b587289ce25cf5f641722ec1d8fa44495eff81),
    FR(0x19ac5f9bd16c9dedfd6cc4384e2105c1a87ec67974c83b52c4a2846d093d21d2),
)


# ─────────────────────────────────────────────────────────────────────
# 생성자 상수 ("PEDERSEN_COMMITMENT_PERSONAL", index 0)
# ─────────────────────────────────────────────────────────────────────

G_PERSONAL = (
    FR(0x06b0fc2fb449823a0d49e53c9430c82c3e01d9a3f6db0d2e24b8e7c5f8d1899c),
    FR(0x10affc120285b6213e315acd916ba137464ba4f0fa22ddf2e17d92d0273e810a),
)

D_PERSONAL = (
    FR(0x0f5c1a8bc1a944ba846fd82d761beefc1e9be60231957fbebc546748524932be),
    FR(0x26eb0172758293804416aa211812abb25e70e275c7df20c4f34dc814bf87c757),
)


# nonce 탐색 누산기의 초기값 = personal_commitment(1, 1) = G' + D'
GENESIS_ACCUMULATOR_POINT = (
    FR(0x098b60b4fb636ed774329d8bb20eb1f9bd2f1b53445e991de219b50739e95c16),
    FR(0x1b82bb29393d7897d102bc412ca1b3353e78ecc738baf483fed847ef9e212997),
)


# ─────────────────────────────────────────────────────────────────────
# 커밋먼트
# ─────────────────────────────────────────────────────────────────────

def public_commitment(m, r, token_id):
    """3-생성자 hiding 커밋먼트 m·G + r·H + token_id·D.

    Args:
        m: 금액 (또는 집계된 m)
        r: 블라인딩 값
        token_id: 토큰 식별자 / 도메인 값

    Returns:
        곡선 위의 점
    """
    return ec_add(ec_add(ec_mul(G, m), ec_mul(H, r)), ec_mul(D, token_id))


def personal_commitment(m, token_id):
    """2-생성자 non-hiding 커밋먼트 m·G' + token_id·D'.

    Args:
        m: 금액 (또는 해시된 금액)
        token_id: 토큰 식별자 (또는 해시된 식별자, nonce 커밋먼트)

    Returns:
        곡선 위의 점

    예시:
        >>> personal_commitment(1, 1) == GENESIS_ACCUMULATOR_POINT  # True
    """
    return ec_add(ec_mul(G_PERSONAL, m), ec_mul(D_PERSONAL, token_id))


def aggregate_opening(current, new):
    """스칼라 필드 덧셈으로 개봉값을 누적한다: (current + new) mod p."""
    return FR((int(current) + int(new)) % CURVE_ORDER)


def aggregate_opening_with_carry(current, new):
    """aggregate_opening과 같지만 p로 축소된 횟수도 함께 돌려준다.

    Returns:
        (FR, int): (축소된 합, carry). 두 입력이 정규형이면 carry는 0 또는 1이다.
    """
    total = int(current) + int(new)
    return FR(total % CURVE_ORDER), total // CURVE_ORDER


def reduction_term(generator, carries):
    """p로 축소하며 잃어버린 carries · p · generator 항."""
    return ec_mul(generator, carries * CURVE_ORDER)


def initial_state_commitment():
    """전역 상태 커밋먼트의 초기값 public_commitment(1, 1, 1)."""
    return public_commitment(1, 1, 1)
