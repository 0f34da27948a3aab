"""HMAC-SHA256 request signing for the Binance REST API."""
import hashlib
import hmac

from .errors import ConfigurationError


class Signer:
    """Signs canonical query strings with the API secret.

    The exchange recomputes the signature over the exact string it receives,
    so the caller must sign the query string byte-for-byte as it will be sent.

    Example:
        >>> Signer("secret").sign("timestamp=1")  # doctest: +SKIP
        '...64 lowercase hex chars...'
    """

    def __init__(self, secret: str):
        if not secret or not secret.strip():
            raise ConfigurationError("API secret is empty; cannot sign requests")
        self._key = secret.encode("utf-8")

    def sign(self, query_string: str) -> str:
        return hmac.new(self._key, query_string.encode("utf-8"), hashlib.sha256).hexdigest()

    def __repr__(self) -> str:
        return "Signer(<redacted>)"
