from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from loguru import logger

from mcauth.exceptions import (
    AdultVerificationRequiredError,
    ChildAccountError,
    NoXboxAccountError,
    ServiceUnreachableError,
    XboxError,
    XboxRegionUnavailableError,
)
from mcauth.http import Transport
from mcauth.profile import GameProfile

XBL_AUTH_URL = "https://user.auth.xboxlive.com/user/authenticate"
XSTS_AUTH_URL = "https://xsts.auth.xboxlive.com/xsts/authorize"
GAME_LOGIN_URL = "https://api.minecraftservices.com/authentication/login_with_xbox"
GAME_PROFILE_URL = "https://api.minecraftservices.com/minecraft/profile"

XBL_RELYING_PARTY = "http://auth.xboxlive.com"
XSTS_RELYING_PARTY = "rp://api.minecraftservices.com/"

XBOX_HEADERS = {"x-xbl-contract-version": "1"}

XERR_NO_ACCOUNT = 2148916233
XERR_REGION = 2148916235
XERR_ADULT_VERIFICATION = (2148916236, 2148916237)
XERR_CHILD = 2148916238

_XERR_CLASSES: Dict[int, tuple[Type[XboxError], str]] = {
    XERR_NO_ACCOUNT: (NoXboxAccountError, "Microsoft account does not have an Xbox Live account attached!"),
    XERR_REGION: (XboxRegionUnavailableError, "Xbox Live is not available in your country!"),
    XERR_ADULT_VERIFICATION[0]: (AdultVerificationRequiredError, "This account needs adult verification on the Xbox page!"),
    XERR_ADULT_VERIFICATION[1]: (AdultVerificationRequiredError, "This account needs adult verification on the Xbox page!"),
    XERR_CHILD: (ChildAccountError, "This account is a child account! Please add it to a family in order to log in."),
}


def classify_xerr(xerr: int) -> XboxError:
    cls, message = _XERR_CLASSES.get(
        xerr, (XboxError, f"Error occurred while authenticating to Xbox Live! Error ID: {xerr}")
    )
    return cls(message, xerr)


@dataclass(frozen=True)
class XboxTicket:
    token: str
    user_hash: str
    not_after: Optional[str] = None

    @property
    def identity_token(self) -> str:
        return f"XBL3.0 x={self.user_hash};{self.token}"

    @staticmethod
    def from_json(d: Any, url: str) -> "XboxTicket":
        try:
            return XboxTicket(
                token=d["Token"],
                user_hash=d["DisplayClaims"]["xui"][0]["uhs"],
                not_after=d.get("NotAfter"),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise ServiceUnreachableError(f"Could not parse ticket from '{url}'.") from e


@dataclass(frozen=True)
class GameToken:
    access_token: str
    username: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: int = 0


class XboxLive:
    """Microsoft token → XBL ticket → XSTS ticket → game session token, then the profile."""

    def __init__(self, transport: Transport):
        self.transport = transport

    def authenticate(self, rps_ticket: str) -> XboxTicket:
        payload = {
            "Properties": {
                "AuthMethod": "RPS",
                "SiteName": "user.auth.xboxlive.com",
                "RpsTicket": rps_ticket,
            },
            "RelyingParty": XBL_RELYING_PARTY,
            "TokenType": "JWT",
        }
        body = self.transport.post_json(XBL_AUTH_URL, payload, headers=XBOX_HEADERS, check=False)
        return XboxTicket.from_json(body, XBL_AUTH_URL)

    def authorize(self, xbl: XboxTicket) -> XboxTicket:
        payload = {
            "Properties": {
                "SandboxId": "RETAIL",
                "UserTokens": [xbl.token],
            },
            "RelyingParty": XSTS_RELYING_PARTY,
            "TokenType": "JWT",
        }
        body = self.transport.post_json(XSTS_AUTH_URL, payload, headers=XBOX_HEADERS, check=False)
        if isinstance(body, dict) and body.get("XErr"):
            xerr = int(body["XErr"])
            logger.debug(f"XSTS refused ticket: XErr={xerr} message={body.get('Message')!r}")
            raise classify_xerr(xerr)
        return XboxTicket.from_json(body, XSTS_AUTH_URL)

    def login_with_xbox(self, xsts: XboxTicket) -> GameToken:
        body = self.transport.post_json(GAME_LOGIN_URL, {"identityToken": xsts.identity_token})
        if not isinstance(body, dict) or not body.get("access_token"):
            raise ServiceUnreachableError(f"Could not parse response of '{GAME_LOGIN_URL}'.")
        return GameToken(
            access_token=body["access_token"],
            username=body.get("username"),
            token_type=body.get("token_type") or "Bearer",
            expires_in=int(body.get("expires_in") or 0),
        )

    def exchange(self, rps_ticket: str) -> GameToken:
        xbl = self.authenticate(rps_ticket)
        xsts = self.authorize(xbl)
        return self.login_with_xbox(xsts)

    def fetch_profile(self, access_token: str) -> GameProfile:
        body = self.transport.get_json(GAME_PROFILE_URL, headers={"Authorization": f"Bearer {access_token}"})
        if not isinstance(body, dict) or not body.get("id"):
            raise ServiceUnreachableError(f"Could not parse response of '{GAME_PROFILE_URL}'.")
        try:
            return GameProfile(body["id"], body.get("name"))
        except ValueError as e:
            raise ServiceUnreachableError(f"Malformed profile id from '{GAME_PROFILE_URL}'.") from e
