"""Game profiles, their signed properties and the textures payload.

The ``textures`` property carries a base64 JSON document signed by the session
server. With ``require_secure`` the signature is checked against the trust
registry's current key and every texture URL must live on a whitelisted domain;
the two checks are independent, a validly signed payload pointing elsewhere is
still rejected.
"""

from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import json
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from loguru import logger

from mcauth.exceptions import (
    InvalidSignatureError,
    MalformedPayloadError,
    MissingSignatureError,
    UntrustedDomainError,
)
from mcauth.trust import TrustRegistry, TrustState, default_registry

TEXTURES_PROPERTY = "textures"


def parse_uuid(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Accepts dashed and dashless forms; empty means no id."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    if not value:
        return None
    return uuid.UUID(value)


@dataclass(frozen=True)
class Property:
    name: str
    value: str
    signature: Optional[str] = None

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def verify(self, key: RSAPublicKey) -> bool:
        """SHA1withRSA over the raw value; depends only on value, signature and key."""
        if self.signature is None:
            return False
        try:
            sig = base64.b64decode(self.signature, validate=True)
        except (binascii.Error, ValueError):
            return False
        try:
            key.verify(sig, self.value.encode("utf-8"), padding.PKCS1v15(), hashes.SHA1())
        except InvalidSignature:
            return False
        return True

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "Property":
        return Property(name=d["name"], value=d["value"], signature=d.get("signature"))

    def to_json(self) -> Dict[str, Any]:
        out = {"name": self.name, "value": self.value}
        if self.signature is not None:
            out["signature"] = self.signature
        return out


class TextureType(enum.Enum):
    SKIN = "SKIN"
    CAPE = "CAPE"
    ELYTRA = "ELYTRA"


class TextureModel(enum.Enum):
    NORMAL = "normal"
    SLIM = "slim"


@dataclass(frozen=True)
class Texture:
    url: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def model(self) -> TextureModel:
        return TextureModel.SLIM if self.metadata.get("model") == "slim" else TextureModel.NORMAL

    @property
    def hash(self) -> str:
        url = self.url[:-1] if self.url.endswith("/") else self.url
        slash = url.rfind("/")
        dot = url.rfind(".")
        if dot == -1 or dot < slash:
            dot = len(url)
        return url[slash + 1:dot]


@dataclass(frozen=True)
class TexturesPayload:
    timestamp: int
    profile_id: Optional[uuid.UUID]
    profile_name: Optional[str]
    is_public: bool
    textures: Mapping[TextureType, Texture]

    @staticmethod
    def decode(value: str) -> "TexturesPayload":
        try:
            doc = json.loads(base64.b64decode(value, validate=True).decode("utf-8"))
        except (binascii.Error, ValueError) as e:
            raise MalformedPayloadError("Could not decode texture payload.") from e
        if not isinstance(doc, dict):
            raise MalformedPayloadError("Texture payload is not a JSON object.")

        textures: Dict[TextureType, Texture] = {}
        raw = doc.get("textures") or {}
        if not isinstance(raw, dict):
            raise MalformedPayloadError("Texture payload 'textures' is not an object.")
        for type_name, entry in raw.items():
            try:
                texture_type = TextureType(type_name)
            except ValueError:
                logger.debug(f"skipping unknown texture type {type_name!r}")
                continue
            if not isinstance(entry, dict) or not isinstance(entry.get("url"), str):
                raise MalformedPayloadError(f"Texture {type_name} has no URL.")
            metadata = entry.get("metadata") or {}
            if not isinstance(metadata, dict):
                raise MalformedPayloadError(f"Texture {type_name} metadata is not an object.")
            textures[texture_type] = Texture(entry["url"], MappingProxyType({str(k): str(v) for k, v in metadata.items()}))

        try:
            profile_id = parse_uuid(doc.get("profileId"))
            timestamp = int(doc.get("timestamp") or 0)
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError("Texture payload has a malformed profile id or timestamp.") from e

        return TexturesPayload(
            timestamp=timestamp,
            profile_id=profile_id,
            profile_name=doc.get("profileName"),
            is_public=bool(doc.get("isPublic", True)),
            textures=MappingProxyType(textures),
        )


def _trust_fingerprint(state: TrustState) -> Tuple[str, Tuple[str, ...]]:
    der = state.key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)
    return hashlib.sha256(der).hexdigest(), state.domains


@dataclass(frozen=True)
class _DecodedTextures:
    properties: Tuple[Property, ...]
    textures: Mapping[TextureType, Texture]
    # fingerprint of the key/domains the payload was verified under, None if unverified
    trust: Optional[Tuple[str, Tuple[str, ...]]]


EMPTY_TEXTURES: Mapping[TextureType, Texture] = MappingProxyType({})


class GameProfile:
    def __init__(
        self,
        id: Union[str, uuid.UUID, None] = None,
        name: Optional[str] = None,
        properties: Optional[Iterable[Property]] = None,
    ):
        id = parse_uuid(id)
        if id is None and not name:
            raise ValueError("Name and ID cannot both be blank")
        self.id = id
        self.name = name
        self._properties: Tuple[Property, ...] = tuple(properties or ())
        self._decoded: Optional[_DecodedTextures] = None

    @property
    def is_complete(self) -> bool:
        return self.id is not None and bool(self.name)

    @property
    def id_as_string(self) -> str:
        return self.id.hex if self.id is not None else ""

    @property
    def properties(self) -> Tuple[Property, ...]:
        return self._properties

    def set_properties(self, properties: Optional[Iterable[Property]]) -> None:
        self._properties = tuple(properties or ())

    def get_property(self, name: str) -> Optional[Property]:
        for prop in self._properties:
            if prop.name == name:
                return prop
        return None

    def get_textures(
        self, require_secure: bool = True, registry: Optional[TrustRegistry] = None
    ) -> Mapping[TextureType, Texture]:
        return resolve_textures(self, require_secure=require_secure, registry=registry)

    def get_texture(
        self, texture_type: TextureType, require_secure: bool = True, registry: Optional[TrustRegistry] = None
    ) -> Optional[Texture]:
        return self.get_textures(require_secure, registry).get(texture_type)

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "GameProfile":
        return GameProfile(
            d.get("id"),
            d.get("name"),
            [Property.from_json(p) for p in d.get("properties") or []],
        )

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id_as_string, "name": self.name}
        if self._properties:
            out["properties"] = [p.to_json() for p in self._properties]
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GameProfile):
            return NotImplemented
        return self.id == other.id and self.name == other.name

    def __hash__(self) -> int:
        return hash((self.id, self.name))

    def __repr__(self) -> str:
        return f"GameProfile(id={self.id}, name={self.name!r}, properties={len(self._properties)})"


def resolve_textures(
    profile: GameProfile, require_secure: bool = True, registry: Optional[TrustRegistry] = None
) -> Mapping[TextureType, Texture]:
    """Decode (and with ``require_secure`` verify) the profile's textures.

    Raises:
        MissingSignatureError: secure read of an unsigned payload
        InvalidSignatureError: signature does not match the current key
        MalformedPayloadError: value is not base64 JSON of the expected shape
        UntrustedDomainError: secure read with a texture URL outside the allow-list
    """
    prop = profile.get_property(TEXTURES_PROPERTY)
    if prop is None:
        return EMPTY_TEXTURES

    state = (registry or default_registry()).snapshot() if require_secure else None
    trust = _trust_fingerprint(state) if state is not None else None

    cached = profile._decoded
    if cached is not None and cached.properties == profile.properties:
        if not require_secure or cached.trust == trust:
            return cached.textures

    if state is not None:
        if not prop.is_signed:
            raise MissingSignatureError("Signature is missing from textures payload.")
        if not prop.verify(state.key):
            raise InvalidSignatureError("Textures payload has been tampered with. (signature invalid)")

    payload = TexturesPayload.decode(prop.value)

    if state is not None:
        for texture in payload.textures.values():
            if not state.is_whitelisted(texture.url):
                raise UntrustedDomainError(
                    f"Textures payload has been tampered with. (non-whitelisted domain in {texture.url!r})"
                )

    profile._decoded = _DecodedTextures(profile.properties, payload.textures, trust)
    return payload.textures
