"""
Poseidon-CTR 스트림 암호
=========================

필드 원소 하나를 해시 기반 키 스트림으로 가리는 카운터 모드 구성이다.

    keystream(key, tweak) = H(key, tweak)
    encrypt(m, key, tweak) = m + keystream   (mod p)
    decrypt(c, key, tweak) = c - keystream   (mod p)

암호 수준에서 복호화는 "실패"하지 않는다. 항상 어떤 필드 원소가 나온다.
올바른 값인지는 상위 계층의 일관성 검사로만 판정된다.

**트윅(tweak)**:
  같은 슬롯 키로 여러 필드를 암호화하므로 의미 필드마다 서로 다른 카운터를 쓴다.

    BALANCE          0   잔액
    TOKEN_ID         1   토큰 식별자
    (예약)           2   노트 참조값 (스캔 엔진은 읽지 않는다)
    OPENING_M        3   참조점 x (개인 커밋먼트 총합)
    OPENING_R        4   참조점 y
    ABSORBED_AMOUNT  5   흡수 금액
    NULLIFIER        6   무효화자
"""

from shielded.crypto.field import FR, CURVE_ORDER
from shielded.crypto.hashing import default_hasher
from shielded.errors import InputError


TWEAK_BALANCE = 0
TWEAK_TOKEN_ID = 1
TWEAK_OPENING_M = 3
TWEAK_OPENING_R = 4
TWEAK_ABSORBED_AMOUNT = 5
TWEAK_NULLIFIER = 6

MAX_TWEAK = 0xFFFFFFFF


def _validate_tweak(tweak):
    if not isinstance(tweak, int) or isinstance(tweak, bool) or tweak < 0 or tweak > MAX_TWEAK:
        raise InputError(f"Tweak must be a u32 (0 to {MAX_TWEAK}), got: {tweak!r}")


def keystream(key, tweak, hasher=None):
    """H(key, tweak)"""
    _validate_tweak(tweak)
    hasher = hasher or default_hasher()
    return hasher.hash(FR(int(key) % CURVE_ORDER), tweak)


def encrypt(plaintext, key, tweak, hasher=None):
    """plaintext + H(key, tweak)"""
    return FR(int(plaintext) % CURVE_ORDER) + keystream(key, tweak, hasher)


def decrypt(ciphertext, key, tweak, hasher=None):
    """ciphertext - H(key, tweak)"""
    return FR(int(ciphertext) % CURVE_ORDER) - keystream(key, tweak, hasher)


def decrypt_balance(encrypted_amount, encrypted_token_id, key, hasher=None):
    """(잔액, 토큰 식별자) 암호문 쌍을 복호화한다.

    Returns:
        (amount, token_id): FR 튜플
    """
    amount = decrypt(encrypted_amount, key, TWEAK_BALANCE, hasher)
    token_id = decrypt(encrypted_token_id, key, TWEAK_TOKEN_ID, hasher)
    return amount, token_id


def encrypt_point(point, key, hasher=None):
    """참조점 (x, y)를 OPENING_M / OPENING_R 트윅으로 암호화한다."""
    x, y = point
    return (
        encrypt(x, key, TWEAK_OPENING_M, hasher),
        encrypt(y, key, TWEAK_OPENING_R, hasher),
    )


def decrypt_point(encrypted, key, hasher=None):
    """encrypt_point의 역연산. 결과가 곡선 위의 점인지는 확인하지 않는다."""
    enc_x, enc_y = encrypted
    return (
        decrypt(enc_x, key, TWEAK_OPENING_M, hasher),
        decrypt(enc_y, key, TWEAK_OPENING_R, hasher),
    )
