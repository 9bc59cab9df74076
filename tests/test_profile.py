import base64
import uuid

import pytest

from conftest import public_pem, sign, textures_property, textures_value
from mcauth.exceptions import (
    InvalidSignatureError,
    MalformedPayloadError,
    MissingSignatureError,
    TamperedPayloadError,
    UntrustedDomainError,
)
from mcauth.profile import GameProfile, Property, Texture, TextureModel, TextureType

NOTCH_ID = "069a79f444e94726a5befca90e38aaf5"


def _profile(prop):
    return GameProfile(NOTCH_ID, "Notch", [prop])


def test_profile_requires_id_or_name():
    with pytest.raises(ValueError):
        GameProfile(None, "")
    assert not GameProfile(None, "Notch").is_complete
    assert GameProfile("069a79f4-44e9-4726-a5be-fca90e38aaf5", "Notch").is_complete


def test_profile_json_round_trip():
    profile = GameProfile.from_json(
        {"id": NOTCH_ID, "name": "Notch", "properties": [{"name": "textures", "value": "abc", "signature": "sig"}]}
    )
    assert profile.id == uuid.UUID(NOTCH_ID)
    assert profile.id_as_string == NOTCH_ID
    assert profile.get_property("textures") == Property("textures", "abc", "sig")
    assert GameProfile.from_json(profile.to_json()) == profile
    assert profile.to_json()["properties"] == [{"name": "textures", "value": "abc", "signature": "sig"}]


def test_profile_equality_ignores_properties():
    assert GameProfile(NOTCH_ID, "Notch") == GameProfile(NOTCH_ID, "Notch", [Property("a", "b")])
    assert GameProfile(NOTCH_ID, "Notch") != GameProfile(NOTCH_ID, "notch")


def test_signed_textures_verify(registry, signing_key):
    profile = _profile(textures_property(signing_key))

    textures = profile.get_textures(registry=registry)

    skin = textures[TextureType.SKIN]
    assert skin.model is TextureModel.SLIM
    assert skin.hash == "292009a4925b58f02c77dadc3ecef07ea4c7472f64e0fdc32ce5522489362680"
    assert textures[TextureType.CAPE].model is TextureModel.NORMAL
    assert TextureType.ELYTRA not in textures


def test_no_textures_property(registry):
    assert GameProfile(NOTCH_ID, "Notch").get_textures(registry=registry) == {}


def test_missing_signature(registry):
    profile = _profile(textures_property(None))
    with pytest.raises(MissingSignatureError):
        profile.get_textures(registry=registry)
    assert TextureType.SKIN in profile.get_textures(require_secure=False)


def test_wrong_key_is_invalid_signature(registry, other_key):
    profile = _profile(textures_property(other_key))
    with pytest.raises(InvalidSignatureError):
        profile.get_textures(registry=registry)


def test_garbage_signature_is_invalid(registry):
    value = textures_value({})
    profile = _profile(Property("textures", value, "!!not base64!!"))
    with pytest.raises(TamperedPayloadError):
        profile.get_textures(registry=registry)


def test_untrusted_domain_despite_valid_signature(registry, signing_key):
    prop = textures_property(signing_key, {"SKIN": {"url": "http://evil.example/texture/abc"}})
    profile = _profile(prop)

    with pytest.raises(UntrustedDomainError):
        profile.get_textures(registry=registry)

    insecure = profile.get_textures(require_secure=False)
    assert insecure[TextureType.SKIN].url == "http://evil.example/texture/abc"


def test_malformed_payload(registry, signing_key):
    value = base64.b64encode(b"not json").decode("ascii")
    profile = _profile(Property("textures", value, sign(signing_key, value)))
    with pytest.raises(MalformedPayloadError):
        profile.get_textures(registry=registry)
    with pytest.raises(MalformedPayloadError):
        _profile(Property("textures", "%%%")).get_textures(require_secure=False)


def test_unknown_texture_types_are_skipped(registry, signing_key):
    prop = textures_property(
        signing_key,
        {"SKIN": {"url": "http://textures.minecraft.net/texture/a"}, "HAT": {"url": "http://textures.minecraft.net/texture/b"}},
    )
    assert set(_profile(prop).get_textures(registry=registry)) == {TextureType.SKIN}


def test_insecure_cache_is_not_reused_for_secure_reads(registry):
    profile = _profile(textures_property(None))
    profile.get_textures(require_secure=False)
    with pytest.raises(MissingSignatureError):
        profile.get_textures(registry=registry)


def test_cache_revalidates_after_key_rotation(registry, transport, signing_key, other_key):
    profile = _profile(textures_property(signing_key))
    assert profile.get_textures(registry=registry)

    transport.queue(
        "GET",
        "skins.example.org",
        {"skinDomains": [], "signaturePublickey": public_pem(other_key)},
    )
    registry.register_service_root("https://skins.example.org/")

    with pytest.raises(InvalidSignatureError):
        profile.get_textures(registry=registry)

    registry.register_service_root(None)
    assert profile.get_textures(registry=registry)


def test_cache_follows_property_replacement(registry, signing_key):
    profile = _profile(textures_property(signing_key))
    assert TextureType.CAPE in profile.get_textures(registry=registry)

    profile.set_properties([textures_property(signing_key, {"SKIN": {"url": "http://textures.minecraft.net/texture/x"}})])

    assert set(profile.get_textures(registry=registry)) == {TextureType.SKIN}


@pytest.mark.parametrize(
    "url, expected",
    [
        ("http://textures.minecraft.net/texture/abc123", "abc123"),
        ("http://textures.minecraft.net/texture/abc123/", "abc123"),
        ("http://skins.example.org/textures/abc.png", "abc"),
        ("http://skins.example.org/v1.2/abc", "abc"),
        ("abc", "abc"),
    ],
)
def test_texture_hash(url, expected):
    assert Texture(url).hash == expected


def test_property_verify_depends_only_on_value_and_signature(signing_key):
    prop = Property("textures", "hello", sign(signing_key, "hello"))
    assert prop.verify(signing_key.public_key())
    assert Property("other", "hello", prop.signature).verify(signing_key.public_key())
    assert not Property("textures", "hello!", prop.signature).verify(signing_key.public_key())
    assert not Property("textures", "hello").verify(signing_key.public_key())
