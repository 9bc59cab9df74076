"""Signing key, texture domain allow-list and service endpoints.

All three can be repointed at an alternate (authlib-injector style) service
root. A :class:`TrustRegistry` holds one immutable :class:`TrustState` and swaps
it as a whole, so a reader never sees the key of one root next to the domains
of another.
"""

from __future__ import annotations

import base64
import binascii
import threading
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.serialization import load_der_public_key
from loguru import logger

from mcauth.config import Settings
from mcauth.exceptions import KeyFormatError, RequestError, ServiceUnreachableError, SigningKeyUnavailableError
from mcauth.http import Transport

PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"
BUNDLED_KEY = "yggdrasil_session_pubkey.der"

DEFAULT_WHITELISTED_DOMAINS: Tuple[str, ...] = (".minecraft.net", ".mojang.com")


@dataclass(frozen=True)
class ServiceEndpoints:
    auth: str
    profile: str
    session: str


DEFAULT_ENDPOINTS = ServiceEndpoints(
    auth="https://authserver.mojang.com/",
    profile="https://api.mojang.com/profiles/",
    session="https://sessionserver.mojang.com/session/minecraft/",
)


def resolve_endpoints(root: str) -> ServiceEndpoints:
    # sub-paths are appended to the root, never replace its last segment
    base = root if root.endswith("/") else root + "/"
    return ServiceEndpoints(
        auth=base + "authserver/",
        profile=base + "api/profiles/",
        session=base + "sessionserver/session/minecraft/",
    )


def load_public_key_der(data: bytes) -> RSAPublicKey:
    try:
        key = load_der_public_key(data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyFormatError("Could not parse signing public key.") from e
    if not isinstance(key, RSAPublicKey):
        raise KeyFormatError(f"Signing key must be RSA, got {type(key).__name__}.")
    return key


def parse_public_key_pem(pem: Optional[str]) -> RSAPublicKey:
    if not pem or not isinstance(pem, str):
        raise KeyFormatError("Service root did not advertise a signing public key.")
    body = pem.replace(PEM_HEADER, "").replace(PEM_FOOTER, "")
    try:
        der = base64.b64decode("".join(body.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyFormatError("Signing public key is not valid base64.") from e
    return load_public_key_der(der)


@lru_cache(maxsize=None)
def load_bundled_key(path: Optional[Path] = None) -> RSAPublicKey:
    """The official session key: ``path`` if given, else the packaged DER resource."""
    try:
        if path is not None:
            data = Path(path).read_bytes()
        else:
            data = resources.files("mcauth").joinpath("resources").joinpath(BUNDLED_KEY).read_bytes()
    except OSError as e:
        raise SigningKeyUnavailableError(
            f"Missing official signing key ({path or BUNDLED_KEY}); "
            "set MCAUTH_SIGNING_KEY_FILE or pass default_key."
        ) from e
    try:
        return load_public_key_der(data)
    except KeyFormatError as e:
        raise SigningKeyUnavailableError(f"Official signing key ({path or BUNDLED_KEY}) is not an RSA DER key.") from e


@dataclass(frozen=True)
class TrustState:
    root: Optional[str]
    endpoints: ServiceEndpoints
    domains: Tuple[str, ...]
    # None only for the built-in state; resolved lazily from the bundled key
    key: Optional[RSAPublicKey]

    def is_whitelisted(self, url: str) -> bool:
        try:
            host = urlparse(url).hostname
        except ValueError:
            return False
        if not host:
            return False
        return any(host.endswith(domain) for domain in self.domains)


class TrustRegistry:
    def __init__(
        self,
        transport: Optional[Transport] = None,
        default_key: Optional[RSAPublicKey] = None,
        key_file: Optional[Path] = None,
    ):
        self._transport = transport or Transport()
        self._default_key = default_key
        self._key_file = key_file if key_file is not None else Settings.from_env().signing_key_file
        self._builtin = TrustState(None, DEFAULT_ENDPOINTS, DEFAULT_WHITELISTED_DOMAINS, default_key)
        self._state = self._builtin
        self._lock = threading.Lock()

    def snapshot(self) -> TrustState:
        """One consistent view of root, endpoints, domains and key."""
        state = self._state
        if state.key is None:
            state = TrustState(state.root, state.endpoints, state.domains, self._builtin_key())
        return state

    def _builtin_key(self) -> RSAPublicKey:
        if self._default_key is None:
            self._default_key = load_bundled_key(self._key_file)
        return self._default_key

    @property
    def signing_key(self) -> RSAPublicKey:
        return self.snapshot().key

    @property
    def whitelisted_domains(self) -> Tuple[str, ...]:
        return self._state.domains

    @property
    def endpoints(self) -> ServiceEndpoints:
        return self._state.endpoints

    @property
    def root(self) -> Optional[str]:
        return self._state.root

    @property
    def can_migrate(self) -> bool:
        return self._state.root is None

    def register_service_root(self, root: Optional[str]) -> None:
        """Point endpoints, domains and key at ``root``; ``None`` restores the official ones."""
        if root is None:
            with self._lock:
                self._state = self._builtin
            logger.info("trust registry reset to official service root")
            return

        base = root if root.endswith("/") else root + "/"
        try:
            meta = self._transport.get_json(base)
        except ServiceUnreachableError:
            raise
        except RequestError as e:
            raise ServiceUnreachableError(f"Could not fetch metadata of service root '{base}'.") from e
        if not isinstance(meta, dict):
            raise ServiceUnreachableError(f"Service root '{base}' returned no metadata.")

        key = parse_public_key_pem(meta.get("signaturePublickey"))
        extra = [d for d in (meta.get("skinDomains") or []) if isinstance(d, str) and d]
        domains = DEFAULT_WHITELISTED_DOMAINS + tuple(d for d in extra if d not in DEFAULT_WHITELISTED_DOMAINS)
        state = TrustState(base, resolve_endpoints(base), domains, key)

        with self._lock:
            self._state = state
        logger.info(f"trust registry now points at {base} ({len(domains)} whitelisted domains)")


_default_registry: Optional[TrustRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> TrustRegistry:
    """Process-wide registry built from the environment on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            settings = Settings.from_env()
            _default_registry = TrustRegistry(
                transport=Transport(proxy=settings.proxy, timeout=settings.timeout),
                key_file=settings.signing_key_file,
            )
        return _default_registry
