"""Kraken private API request signing."""
import base64
import hashlib
import hmac
import threading
import time
from urllib.parse import urlencode


def sign_request(path: str, body: dict, nonce: int, secret: str) -> str:
    """Return the API-Sign header value for a private request.

    API-Sign = base64(HMAC-SHA512(b64decode(secret), path + SHA256(nonce + urlencode(body))))

    ``body`` must already contain the ``nonce`` field; key order is preserved.
    """
    postdata = urlencode(body)
    encoded = (str(nonce) + postdata).encode()
    message = path.encode() + hashlib.sha256(encoded).digest()
    mac = hmac.new(base64.b64decode(secret), message, hashlib.sha512)
    return base64.b64encode(mac.digest()).decode()


def build_auth_headers(
    api_key: str, secret: str, path: str, body: dict, nonce: int
) -> dict[str, str]:
    """Headers for an authenticated Kraken call."""
    return {
        "API-Key": api_key,
        "API-Sign": sign_request(path, body, nonce, secret),
        "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
    }


class NonceGenerator:
    """Strictly increasing wall-clock microsecond nonces."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            nonce = max(int(self._clock() * 1_000_000), self._last + 1)
            self._last = nonce
            return nonce
