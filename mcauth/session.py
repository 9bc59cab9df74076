"""Session server queries: joining a server, checking a join, filling in profile properties."""

from __future__ import annotations

import hashlib
from typing import Optional

from loguru import logger

from mcauth.exceptions import ProfileLookupError, ProfileNotFoundError, RequestError
from mcauth.http import Transport
from mcauth.profile import GameProfile, Property
from mcauth.trust import TrustRegistry, default_registry


def server_id_hash(base: str, secret_key: bytes, public_key_der: bytes) -> str:
    """Server id sent to ``join``: SHA-1 as a signed, two's complement hex number."""
    digest = hashlib.sha1()
    digest.update(base.encode("iso-8859-1"))
    digest.update(secret_key)
    digest.update(public_key_der)
    return format(int.from_bytes(digest.digest(), "big", signed=True), "x")


class SessionService:
    def __init__(self, registry: Optional[TrustRegistry] = None, transport: Optional[Transport] = None):
        self.registry = registry or default_registry()
        self.transport = transport or Transport()

    def _url(self, endpoint: str) -> str:
        return self.registry.endpoints.session + endpoint

    def join_server(self, profile: GameProfile, access_token: str, server_id: str) -> None:
        if profile.id is None:
            raise ValueError("Cannot join a server with a profile that has no id.")
        self.transport.post_json(
            self._url("join"),
            {"accessToken": access_token, "selectedProfile": profile.id_as_string, "serverId": server_id},
        )

    def get_profile_by_server(self, name: str, server_id: str) -> Optional[GameProfile]:
        """The profile of ``name`` if it joined ``server_id``, else None."""
        body = self.transport.get_json(self._url("hasJoined"), params={"username": name, "serverId": server_id})
        if not isinstance(body, dict) or not body.get("id"):
            return None
        return GameProfile(body["id"], name, [Property.from_json(p) for p in body.get("properties") or []])

    def fill_profile_properties(self, profile: GameProfile) -> GameProfile:
        if profile.id is None:
            return profile

        url = self._url(f"profile/{profile.id_as_string}")
        try:
            body = self.transport.get_json(url, params={"unsigned": "false"})
        except RequestError as e:
            raise ProfileLookupError(f"Couldn't look up profile properties for {profile}.") from e

        if not isinstance(body, dict) or not body.get("id"):
            raise ProfileNotFoundError(f"Couldn't fetch profile properties for {profile} as the profile does not exist.")

        profile.set_properties(Property.from_json(p) for p in body.get("properties") or [])
        logger.debug(f"filled {len(profile.properties)} properties for {profile.name!r}")
        return profile
