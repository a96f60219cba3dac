import hashlib
import hmac
import time
from typing import Optional

from cardauth.providers.base import StoreBackedProvider


def sign_payload(secret: str, timestamp: str, raw_body: bytes) -> str:
    message = timestamp.encode() + b"." + raw_body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class HmacCardProvider(StoreBackedProvider):
    """Processor that signs ``"{timestamp}.{body}"`` with HMAC-SHA256."""

    def __init__(self, name: str, secret: str, tolerance_seconds: int = 300):
        self._name = name
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    @property
    def name(self) -> str:
        return self._name

    def verify_webhook(
        self, raw_body: bytes, signature: str, timestamp: Optional[str]
    ) -> bool:
        if not signature or not timestamp or not self.secret:
            return False

        try:
            sent_at = int(timestamp)
        except ValueError:
            return False
        # Replay protection
        if abs(int(time.time()) - sent_at) > self.tolerance_seconds:
            return False

        expected = sign_payload(self.secret, timestamp, raw_body)
        return hmac.compare_digest(expected, signature)


class SandboxCardProvider(StoreBackedProvider):
    """Development provider: any non-empty signature is accepted."""

    @property
    def name(self) -> str:
        return "sandbox"

    def verify_webhook(
        self, raw_body: bytes, signature: str, timestamp: Optional[str]
    ) -> bool:
        return bool(signature)
