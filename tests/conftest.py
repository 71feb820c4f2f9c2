import base64
import hashlib
import hmac
import json
import threading
import time
from types import SimpleNamespace

import pytest
from Crypto.Cipher import PKCS1_v1_5 as PKCS1_v1_5_Cipher
from Crypto.PublicKey import RSA

from ibkr.config import DHParameters, Environment, OAuthConfig, OAuthKeys
from ibkr.oauth.signature import shared_secret_bytes

CONSUMER_KEY = "TESTCONS"
ACCESS_TOKEN = "access-token-123"
PREPEND = bytes.fromhex("a1b2c3d4e5f60718293a4b5c6d7e8f90")

# Toy Diffie-Hellman group and a fixed exchange for deterministic negotiations.
TOY_PRIME = 23
TOY_GENERATOR = 5
FIXED_EXPONENT = 6
SERVER_DH_RESPONSE = "13"


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=None, headers=None, url=""):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}
        self.url = url

    def json(self):
        return json.loads(self.text)


class DummySession:
    """Route requests by path suffix to canned responses or callables."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls: list[SimpleNamespace] = []
        self._lock = threading.Lock()
        self.closed = False

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        with self._lock:
            self.calls.append(SimpleNamespace(
                method=method, url=url, params=params, json=json, headers=headers, timeout=timeout))
        for suffix, handler in self.routes.items():
            if url.split("?")[0].endswith(suffix):
                if callable(handler):
                    return handler()
                if isinstance(handler, BaseException):
                    raise handler
                return handler
        raise AssertionError(f"Unexpected endpoint in dummy session: {url}")

    def calls_to(self, suffix):
        return [call for call in self.calls if call.url.endswith(suffix)]

    def close(self):
        self.closed = True


def expected_live_session_token(exponent=FIXED_EXPONENT, dh_response=SERVER_DH_RESPONSE, prime=TOY_PRIME):
    shared = pow(int(dh_response, 16), exponent, prime)
    digest = hmac.new(shared_secret_bytes(shared), PREPEND, hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def token_signature(token, consumer_key=CONSUMER_KEY):
    return hmac.new(base64.b64decode(token), consumer_key.encode("utf-8"), hashlib.sha1).hexdigest()


def bootstrap_payload(expires_in=None):
    token = expected_live_session_token()
    if expires_in is None:
        expires_in = int((time.time() + 24 * 3600) * 1000)
    return {
        "diffie_hellman_response": SERVER_DH_RESPONSE,
        "live_session_token_signature": token_signature(token),
        "live_session_token_expiration": expires_in,
    }


@pytest.fixture(scope="session")
def encryption_key():
    return RSA.generate(1024)


@pytest.fixture(scope="session")
def signature_key():
    return RSA.generate(1024)


@pytest.fixture(scope="session")
def access_token_secret(encryption_key):
    encrypted = PKCS1_v1_5_Cipher.new(encryption_key.publickey()).encrypt(PREPEND)
    return base64.b64encode(encrypted).decode("ascii")


@pytest.fixture
def make_config(encryption_key, signature_key, access_token_secret):
    def _make(environment=Environment.SANDBOX, prime=TOY_PRIME, generator=TOY_GENERATOR, **overrides):
        values = dict(
            consumer_key=CONSUMER_KEY,
            access_token=ACCESS_TOKEN,
            access_token_secret=access_token_secret,
            keys=OAuthKeys(
                encryption_key=encryption_key,
                signature_key=signature_key,
                dh_params=DHParameters(prime=prime, generator=generator),
            ),
            environment=environment,
            base_url="https://api.ibkr.com",
        )
        values.update(overrides)
        return OAuthConfig(**values)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()
