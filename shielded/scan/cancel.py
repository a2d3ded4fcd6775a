"""
협력적 취소 토큰
=================

스캔 호출자가 소유하는 취소 플래그. 스캔 루프는 모든 await 직전과 직후에
checkpoint()를 호출하고, 플래그가 설정되어 있으면 ScanCancelled로 빠져나온다.
"""

from shielded.errors import ScanCancelled


class CancellationToken:
    """취소 요청을 전달하는 플래그.

    예시:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.checkpoint()  # ScanCancelled
    """

    def __init__(self):
        self._cancelled = False
        self.reason = None

    @property
    def cancelled(self):
        return self._cancelled

    def cancel(self, reason="cancelled by caller"):
        self._cancelled = True
        self.reason = reason

    def checkpoint(self):
        if self._cancelled:
            raise ScanCancelled(self.reason)


# 취소되지 않는 토큰 (token=None 대신 사용)
class _NeverCancelled(CancellationToken):

    def cancel(self, reason=None):
        raise RuntimeError("NEVER_CANCELLED cannot be cancelled")


NEVER_CANCELLED = _NeverCancelled()
