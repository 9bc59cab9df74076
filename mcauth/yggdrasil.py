"""Legacy username/password and access-token login against a Yggdrasil auth server."""

from __future__ import annotations

from typing import Any, Dict, Optional

from loguru import logger

from mcauth.authentication import Credentials, LoginResult
from mcauth.exceptions import InvalidCredentialsError, ProtocolError, ServiceUnreachableError
from mcauth.http import Transport
from mcauth.profile import GameProfile, Property
from mcauth.trust import TrustRegistry, default_registry

AUTHENTICATE_ENDPOINT = "authenticate"
REFRESH_ENDPOINT = "refresh"
INVALIDATE_ENDPOINT = "invalidate"

AGENT = {"name": "Minecraft", "version": 1}


def _profile_or_none(d: Optional[Dict[str, Any]]) -> Optional[GameProfile]:
    if not d:
        return None
    return GameProfile.from_json(d)


class YggdrasilFlow:
    def __init__(self, registry: Optional[TrustRegistry] = None, transport: Optional[Transport] = None):
        self.registry = registry or default_registry()
        self.transport = transport or Transport()

    def _url(self, endpoint: str) -> str:
        return self.registry.endpoints.auth + endpoint

    def _request(self, endpoint: str, payload: Dict[str, Any], client_token: str) -> Dict[str, Any]:
        url = self._url(endpoint)
        response = self.transport.post_json(url, payload)
        if not isinstance(response, dict):
            raise ServiceUnreachableError("Server returned invalid response.")
        if response.get("clientToken") != client_token:
            raise ProtocolError("Server responded with incorrect client token.")
        if not response.get("accessToken"):
            raise ServiceUnreachableError("Server returned no access token.")
        return response

    def login(self, credentials: Credentials) -> LoginResult:
        if not credentials.username:
            raise InvalidCredentialsError("Invalid username.")
        use_token = bool(credentials.access_token)
        if not use_token and not credentials.password:
            raise InvalidCredentialsError("Invalid password or access token.")

        if use_token:
            logger.debug(f"refreshing legacy session of {credentials.username!r}")
            payload = {
                "clientToken": credentials.client_token,
                "accessToken": credentials.access_token,
                "requestUser": True,
            }
            response = self._request(REFRESH_ENDPOINT, payload, credentials.client_token)
        else:
            logger.debug(f"authenticating {credentials.username!r} with password")
            payload = {
                "agent": AGENT,
                "username": credentials.username,
                "password": credentials.password,
                "clientToken": credentials.client_token,
                "requestUser": True,
            }
            response = self._request(AUTHENTICATE_ENDPOINT, payload, credentials.client_token)

        user = response.get("user") or {}
        return LoginResult(
            access_token=response["accessToken"],
            user_id=user.get("id"),
            available_profiles=[GameProfile.from_json(p) for p in response.get("availableProfiles") or []],
            selected_profile=_profile_or_none(response.get("selectedProfile")),
            properties=[Property.from_json(p) for p in user.get("properties") or []],
        )

    def select_profile(self, credentials: Credentials, profile: GameProfile) -> LoginResult:
        payload = {
            "clientToken": credentials.client_token,
            "accessToken": credentials.access_token,
            "selectedProfile": profile.to_json(),
            "requestUser": True,
        }
        response = self._request(REFRESH_ENDPOINT, payload, credentials.client_token)
        return LoginResult(
            access_token=response["accessToken"],
            selected_profile=_profile_or_none(response.get("selectedProfile")) or profile,
        )

    def logout(self, credentials: Credentials) -> None:
        self.transport.post_json(
            self._url(INVALIDATE_ENDPOINT),
            {"clientToken": credentials.client_token, "accessToken": credentials.access_token},
        )
