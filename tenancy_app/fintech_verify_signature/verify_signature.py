import hashlib
import hmac

from core.errors import AuthError, ConfigError
from core.settings import settings


class WebhookSignatureVerifier:
    def __init__(self, secret: str | None = None):
        self.secret = secret

    def _secret(self) -> bytes:
        secret = self.secret if self.secret is not None else settings.PAYSTACK_SECRET_KEY
        if not secret:
            raise ConfigError("Webhook secret is not configured")
        return secret.encode()

    def verify(self, signature: str | None, body: bytes) -> bool:
        secret = self._secret()

        if not signature:
            raise AuthError("Missing webhook signature")

        expected = hmac.new(secret, body, hashlib.sha512).hexdigest().encode()
        # header values may carry non-ASCII characters
        received = signature.strip().lower().encode("utf-8", "replace")

        if not hmac.compare_digest(expected, received):
            raise AuthError("Invalid webhook signature")
        return True
