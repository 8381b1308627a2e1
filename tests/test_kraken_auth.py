"""Tests for execution.kraken_auth."""
import base64
import hashlib
import hmac

from execution.kraken_auth import NonceGenerator, build_auth_headers, sign_request
from helpers import TEST_API_SECRET

PATH = "/0/private/AddOrder"
NONCE = 1616492376594000
BODY = {"nonce": NONCE, "ordertype": "limit", "pair": "XBTUSD", "price": 37500, "type": "buy", "volume": 1.25}


def test_signature_matches_reference_construction():
    postdata = "nonce=1616492376594000&ordertype=limit&pair=XBTUSD&price=37500&type=buy&volume=1.25"
    digest = hashlib.sha256((str(NONCE) + postdata).encode()).digest()
    expected = base64.b64encode(
        hmac.new(base64.b64decode(TEST_API_SECRET), PATH.encode() + digest, hashlib.sha512).digest()
    ).decode()
    assert sign_request(PATH, BODY, NONCE, TEST_API_SECRET) == expected


def test_signature_is_deterministic():
    first = sign_request(PATH, BODY, NONCE, TEST_API_SECRET)
    second = sign_request(PATH, dict(BODY), NONCE, TEST_API_SECRET)
    assert first == second


def test_changing_any_input_changes_signature():
    base = sign_request(PATH, BODY, NONCE, TEST_API_SECRET)
    other_secret = base64.b64encode(b"another-secret").decode()
    assert sign_request("/0/private/Balance", BODY, NONCE, TEST_API_SECRET) != base
    assert sign_request(PATH, {**BODY, "volume": 1.26}, NONCE, TEST_API_SECRET) != base
    assert sign_request(PATH, BODY, NONCE + 1, TEST_API_SECRET) != base
    assert sign_request(PATH, BODY, NONCE, other_secret) != base


def test_build_auth_headers():
    headers = build_auth_headers("my-key", TEST_API_SECRET, PATH, BODY, NONCE)
    assert headers["API-Key"] == "my-key"
    assert headers["API-Sign"] == sign_request(PATH, BODY, NONCE, TEST_API_SECRET)


def test_nonce_strictly_increases_when_clock_stalls():
    gen = NonceGenerator(clock=lambda: 1700000000.0)
    nonces = [gen.next() for _ in range(5)]
    assert nonces[0] == 1700000000000000
    assert all(b > a for a, b in zip(nonces, nonces[1:]))


def test_nonce_never_goes_backwards():
    times = iter([1700000010.0, 1700000000.0])
    gen = NonceGenerator(clock=lambda: next(times))
    first = gen.next()
    assert gen.next() == first + 1
