"""
키 유도 체인
=============

서명에서 계정 키를 만들고, 계정 키에서 조회 전용 키와 슬롯별 키를 유도한다.

  signature (65 bytes)
      │  31 / 31 / 3 바이트로 분할 → H(c₁, c₂, c₃)
      ▼
  user_key
      │  H(user_key)
      ▼
  user_key_hash ──────────────┐
      │  H(VIEW_DOMAIN_TAG, ·) │  H(user_key_hash, n)
      ▼                        ▼
  view_key               slot_identifier(n)   ← 원장에 공개되는 nonce 커밋먼트
      │  H(view_key, n)
      ▼
  slot_key(n)                                 ← 슬롯 n의 암호문 복호화 키

view_key는 자신의 원장 기록을 복호화하는 데만 쓰이며 지출 권한을 주지 않는다.

사용 예시:
    >>> keys = AccountKeys.from_signature(signature_hex)
    >>> keys.slot_identifier(0)
"""

from dataclasses import dataclass, field

from shielded.crypto.field import FR, CURVE_ORDER
from shielded.crypto.hashing import FieldHasher, default_hasher
from shielded.errors import InputError


# "viewing_key"
VIEW_DOMAIN_TAG = FR(0x76696577696e675f6b6579)

SIGNATURE_LENGTH = 65


def _signature_bytes(signature):
    if isinstance(signature, str):
        sig_hex = signature[2:] if signature.startswith("0x") else signature
        try:
            signature = bytes.fromhex(sig_hex)
        except ValueError as e:
            raise InputError(f"Signature is not valid hex: {e}") from e
    if not isinstance(signature, (bytes, bytearray)):
        raise InputError(f"Signature must be bytes or hex string, got {type(signature).__name__}")
    if len(signature) != SIGNATURE_LENGTH:
        raise InputError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(signature)}")
    return bytes(signature)


def derive_user_key(signature, hasher=None):
    """서명으로부터 계정 비밀 키를 유도한다.

    65바이트 서명을 31, 31, 3 바이트 청크로 나누어 각각 빅엔디안 정수로 읽고
    H(c₁, c₂, c₃)를 계산한다. 31바이트 청크는 항상 p보다 작으므로 축소 손실이 없다.

    Args:
        signature: 65바이트 bytes 또는 hex 문자열 ("0x" 접두사 허용)
        hasher: FieldHasher (기본값: default_hasher())

    Returns:
        FR: user_key

    Raises:
        InputError: 길이가 65바이트가 아니거나 hex가 잘못되었을 때
    """
    hasher = hasher or default_hasher()
    sig = _signature_bytes(signature)
    chunks = (sig[0:31], sig[31:62], sig[62:65])
    return hasher.hash(*(int.from_bytes(c, "big") for c in chunks))


@dataclass(frozen=True)
class AccountKeys:
    """한 계정의 키 재료.

    속성:
        user_key: 계정 비밀 키
        user_key_hash: H(user_key)
        view_key: H(VIEW_DOMAIN_TAG, user_key_hash)
        hasher: 유도에 사용한 해시
    """
    user_key: FR
    user_key_hash: FR
    view_key: FR
    hasher: FieldHasher = field(repr=False, compare=False)

    @classmethod
    def from_user_key(cls, user_key, hasher=None):
        hasher = hasher or default_hasher()
        if not isinstance(user_key, (int, FR)):
            raise InputError(f"user_key must be an integer, got {type(user_key).__name__}")
        if int(user_key) % CURVE_ORDER == 0:
            raise InputError("user_key must be non-zero")
        user_key = FR(int(user_key) % CURVE_ORDER)
        user_key_hash = hasher.hash(user_key)
        view_key = hasher.hash(VIEW_DOMAIN_TAG, user_key_hash)
        return cls(user_key, user_key_hash, view_key, hasher)

    @classmethod
    def from_signature(cls, signature, hasher=None):
        hasher = hasher or default_hasher()
        return cls.from_user_key(derive_user_key(signature, hasher), hasher)

    @property
    def account_id(self):
        """캐시 키로 쓰는 공개 계정 식별자 (user_key_hash의 hex)."""
        return f"0x{int(self.user_key_hash):064x}"

    def slot_identifier(self, slot):
        """슬롯 n의 공개 식별자 H(user_key_hash, n)."""
        return self.hasher.hash(self.user_key_hash, _slot_index(slot))

    def slot_key(self, slot):
        """슬롯 n의 암호화 키 H(view_key, n)."""
        return self.hasher.hash(self.view_key, _slot_index(slot))


def _slot_index(slot):
    slot = int(slot)
    if slot < 0:
        raise InputError(f"Slot index must be non-negative, got {slot}")
    return slot
