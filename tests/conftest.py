import base64
import json
from dataclasses import dataclass
from typing import Any, List, Optional

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from mcauth.http import Page, check_for_error
from mcauth.profile import Property
from mcauth.trust import TrustRegistry


@dataclass
class Call:
    method: str
    url: str
    payload: Any = None
    headers: Optional[dict] = None


class FakeTransport:
    """Replays queued responses in order, matching on method and a URL fragment."""

    def __init__(self):
        self.calls: List[Call] = []
        self._queue: List[tuple] = []

    def queue(self, method: str, url_part: str, response: Any) -> None:
        self._queue.append((method, url_part, response))

    def _next(self, method, url, payload=None, headers=None):
        self.calls.append(Call(method, url, payload, headers))
        for i, (m, part, response) in enumerate(self._queue):
            if m == method and part in url:
                del self._queue[i]
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"unexpected request {method} {url}")

    def urls(self, method: Optional[str] = None) -> List[str]:
        return [c.url for c in self.calls if method is None or c.method == method]

    def get_json(self, url, headers=None, params=None, check=True):
        body = self._next("GET", url, params, headers)
        if check:
            check_for_error(body)
        return body

    def post_json(self, url, payload, headers=None, check=True):
        body = self._next("POST", url, payload, headers)
        if check:
            check_for_error(body)
        return body

    def post_form(self, url, data):
        return self._next("FORM", url, data)

    def get_page(self, url) -> Page:
        return self._next("PAGE", url)

    def post_form_page(self, url, data, cookies=None) -> Page:
        return self._next("FORM_PAGE", url, data)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture(scope="session")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def registry(transport, signing_key):
    return TrustRegistry(transport=transport, default_key=signing_key.public_key())


def public_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode("ascii")


def sign(private_key, value: str) -> str:
    sig = private_key.sign(value.encode("utf-8"), padding.PKCS1v15(), hashes.SHA1())
    return base64.b64encode(sig).decode("ascii")


def textures_value(textures: dict, profile_id="069a79f444e94726a5befca90e38aaf5", name="Notch") -> str:
    doc = {
        "timestamp": 1700000000000,
        "profileId": profile_id,
        "profileName": name,
        "textures": textures,
    }
    return base64.b64encode(json.dumps(doc).encode("utf-8")).decode("ascii")


def textures_property(private_key=None, textures=None) -> Property:
    if textures is None:
        textures = {
            "SKIN": {
                "url": "http://textures.minecraft.net/texture/292009a4925b58f02c77dadc3ecef07ea4c7472f64e0fdc32ce5522489362680",
                "metadata": {"model": "slim"},
            },
            "CAPE": {"url": "http://textures.minecraft.net/texture/2340c0e03dd24a11b15a8b33c2a7e9e32abb2051b2481d0ba7defd635ca7a933"},
        }
    value = textures_value(textures)
    return Property("textures", value, sign(private_key, value) if private_key is not None else None)
