"""Microsoft identity provider: the first hop of the Xbox Live chain.

Three ways to obtain a Microsoft access token:

* refresh token exchange against the OAuth token endpoint
* credential submission on the login.live.com web form (scraped PPFT + urlPost)
* device code grant, polled until the user signs in elsewhere
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import unquote, urlencode

from loguru import logger

from mcauth.exceptions import (
    DeviceCodeExpiredError,
    InvalidCredentialsError,
    RequestError,
    ServiceUnreachableError,
)
from mcauth.http import Transport
from mcauth.token_cache import TokenSet

# Microsoft's own Xbox app id: skips the consent prompt and lets child accounts in.
XBOX_LIVE_CLIENT_ID = "00000000402b5328"

LIVE_REDIRECT_URI = "https://login.live.com/oauth20_desktop.srf"
LIVE_SCOPE = "service::user.auth.xboxlive.com::MBI_SSL"
LIVE_AUTHORIZE_URL = "https://login.live.com/oauth20_authorize.srf"
LIVE_TOKEN_URL = "https://login.live.com/oauth20_token.srf"

TENANT = "consumers"
AUTH_BASE = f"https://login.microsoftonline.com/{TENANT}/oauth2/v2.0"
DEVICE_CODE_URL = f"{AUTH_BASE}/devicecode"
TOKEN_URL = f"{AUTH_BASE}/token"
SCOPES = "XboxLive.signin offline_access"

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

PPFT_PATTERN = re.compile(r"sFTTag:[ ]?'.*value=\"(.*)\"/>'")
URL_POST_PATTERN = re.compile(r"urlPost:[ ]?'(.+?(?='))")
CODE_PATTERN = re.compile(r"[?|&]code=([\w.-]+)")

CREDENTIAL_ERRORS = frozenset(
    {
        "invalid_grant",
        "invalid_client",
        "unauthorized_client",
        "authorization_declined",
        "expired_token",
        "bad_verification_code",
    }
)


def live_login_url(client_id: str = XBOX_LIVE_CLIENT_ID) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": LIVE_REDIRECT_URI,
        "scope": LIVE_SCOPE,
        "display": "touch",
        "response_type": "code",
        "locale": "en",
    }
    return f"{LIVE_AUTHORIZE_URL}?{urlencode(params, safe=':/')}"


@dataclass(frozen=True)
class DeviceCode:
    user_code: str
    device_code: str
    verification_uri: str
    expires_in: int
    interval: int
    message: str

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "DeviceCode":
        try:
            user_code = d["user_code"]
            verification_uri = d["verification_uri"]
            return DeviceCode(
                user_code=user_code,
                device_code=d["device_code"],
                verification_uri=verification_uri,
                expires_in=int(d.get("expires_in", 900)),
                interval=int(d.get("interval", 5)),
                message=d.get("message") or f"Go to {verification_uri} and enter {user_code}",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceUnreachableError("Device code response is missing required fields.") from e


def _raise_oauth_error(url: str, body: Dict[str, Any]) -> None:
    err = body.get("error")
    desc = body.get("error_description") or err
    if err in CREDENTIAL_ERRORS:
        raise InvalidCredentialsError(f"{err}: {desc}")
    raise RequestError(f"OAuth request to '{url}' failed: {desc}")


class MicrosoftIdentity:
    def __init__(
        self,
        client_id: str,
        transport: Transport,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        if not client_id:
            raise ValueError("client_id cannot be empty.")
        self.client_id = client_id
        self.transport = transport
        self._sleep = sleep
        self._clock = clock

    @property
    def token_url(self) -> str:
        # live.com-issued refresh tokens are only accepted by live.com
        return LIVE_TOKEN_URL if self.client_id == XBOX_LIVE_CLIENT_ID else TOKEN_URL

    def _token_request(self, url: str, data: Dict[str, str], previous: Optional[TokenSet] = None) -> TokenSet:
        body = self.transport.post_form(url, data)
        if not isinstance(body, dict):
            raise ServiceUnreachableError(f"Token endpoint '{url}' returned no JSON object.")
        if body.get("error"):
            _raise_oauth_error(url, body)
        if not body.get("access_token"):
            raise ServiceUnreachableError(f"Token endpoint '{url}' returned no access_token.")
        tok = TokenSet.from_token_response(body, previous, now=self._clock())
        tok.client_id = self.client_id
        return tok

    def refresh(self, refresh_token: str) -> TokenSet:
        if not refresh_token:
            raise InvalidCredentialsError("Invalid refresh token.")
        logger.debug(f"refresh token endpoint {self.token_url} client_id={self.client_id!r}")
        data = {
            "client_id": self.client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        if self.token_url == TOKEN_URL:
            data["scope"] = SCOPES
        return self._token_request(self.token_url, data, TokenSet(None, refresh_token))

    def login_with_password(self, username: str, password: str) -> TokenSet:
        """Submit credentials on the live.com login form and redeem the resulting code."""
        login_url = live_login_url(self.client_id)
        page = self.transport.get_page(login_url)

        ppft = PPFT_PATTERN.search(page.text)
        url_post = URL_POST_PATTERN.search(page.text)
        if not ppft or not url_post:
            raise ServiceUnreachableError(f"Could not parse response of '{LIVE_AUTHORIZE_URL}'.")
        url_post = url_post.group(1)

        form = {
            "login": username,
            "loginfmt": username,
            "passwd": password,
            "PPFT": ppft.group(1),
        }
        result = self.transport.post_form_page(url_post, form, cookies=page.cookies)
        if result.status != 200 or result.url == url_post:
            raise InvalidCredentialsError("Invalid username and/or password.")

        m = CODE_PATTERN.search(unquote(result.url))
        if not m:
            raise ServiceUnreachableError(f"Could not parse response of '{url_post}'.")

        return self._token_request(
            LIVE_TOKEN_URL,
            {
                "client_id": self.client_id,
                "code": m.group(1),
                "grant_type": "authorization_code",
                "redirect_uri": LIVE_REDIRECT_URI,
                "scope": LIVE_SCOPE,
            },
        )

    def request_device_code(self) -> DeviceCode:
        body = self.transport.post_form(DEVICE_CODE_URL, {"client_id": self.client_id, "scope": SCOPES})
        if not isinstance(body, dict):
            raise ServiceUnreachableError("Device code endpoint returned no JSON object.")
        if body.get("error"):
            _raise_oauth_error(DEVICE_CODE_URL, body)
        return DeviceCode.from_json(body)

    def device_code_login(self, on_device_code: Callable[[DeviceCode], None]) -> TokenSet:
        """Show the device code through ``on_device_code`` and wait for the user to finish."""
        dc = self.request_device_code()
        on_device_code(dc)

        interval = dc.interval
        deadline = self._clock() + dc.expires_in
        while self._clock() < deadline:
            self._sleep(interval)
            logger.debug(f"polling token endpoint {TOKEN_URL} (interval={interval}s)")
            body = self.transport.post_form(
                TOKEN_URL,
                {"grant_type": DEVICE_CODE_GRANT, "client_id": self.client_id, "device_code": dc.device_code},
            )
            if not isinstance(body, dict):
                raise ServiceUnreachableError("Token endpoint returned no JSON object.")

            err = body.get("error")
            if err in ("authorization_pending", "slow_down"):
                if err == "slow_down":
                    interval += 5
                continue
            if err:
                _raise_oauth_error(TOKEN_URL, body)
            if not body.get("access_token"):
                raise ServiceUnreachableError("Token endpoint returned no access_token.")
            tok = TokenSet.from_token_response(body, now=self._clock())
            tok.client_id = self.client_id
            return tok

        raise DeviceCodeExpiredError("Device code expired before the sign-in was finished.")
