"""Signature verification for inbound commerce webhooks."""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass

_logger = logging.getLogger(__name__)

DEVELOPMENT_ENVIRONMENTS = frozenset({"local", "development"})


@dataclass
class WebhookAuthenticator:
    """Verifies HMAC-SHA256 signatures over the raw request body.

    The signature is the base64 encoded digest, as sent by Shopify. When no
    secret is configured every request is rejected, unless unverified requests
    were explicitly allowed for a development environment. A missing signature
    header is always rejected.
    """

    secret: str | None
    allow_unsigned: bool = False
    environment: str = "production"

    def __post_init__(self) -> None:
        if self.secret:
            return
        if self.unsigned_allowed:
            _logger.warning(
                "Webhook secret not configured; accepting unsigned webhooks "
                "in %s environment",
                self.environment,
            )
        else:
            _logger.error("Webhook secret not configured; rejecting all webhooks")

    @property
    def unsigned_allowed(self) -> bool:
        return self.allow_unsigned and self.environment in DEVELOPMENT_ENVIRONMENTS

    def sign(self, raw_body: bytes) -> str:
        """Compute the base64 signature for a body."""
        if not self.secret:
            raise ValueError("Webhook secret is not configured")
        digest = hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha256)
        return base64.b64encode(digest.digest()).decode("ascii")

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        """Return true when the signature matches the untouched body."""
        if not signature:
            return False
        if not self.secret:
            return self.unsigned_allowed
        expected = self.sign(raw_body)
        return hmac.compare_digest(
            expected.encode("ascii"), signature.strip().encode("utf-8")
        )
