"""Microsoft → Xbox Live → XSTS → game services login flow.

Exactly one identity strategy runs per login; the three Xbox hops after it are
the same for all of them. Nothing is retried here: the first classified error
ends the login.
"""

from __future__ import annotations

import enum
import time
from typing import Callable, Optional

from loguru import logger

from mcauth.authentication import Credentials, LoginResult
from mcauth.exceptions import InvalidCredentialsError, RequestError, SessionStateError
from mcauth.http import Transport
from mcauth.microsoft import XBOX_LIVE_CLIENT_ID, DeviceCode, MicrosoftIdentity
from mcauth.profile import GameProfile
from mcauth.token_cache import MemoryTokenCache, TokenCache, TokenSet
from mcauth.xbox import XboxLive


class IdentityStrategy(enum.Enum):
    CACHED_ACCESS_TOKEN = "cached_access"
    REFRESH_TOKEN = "refreshed"
    PASSWORD = "password"
    DEVICE_CODE = "device_login"


def rps_ticket(tok: TokenSet) -> str:
    """XBL ticket for a Microsoft access token.

    Tokens issued to the Xbox app id come from login.live.com and are sent as-is;
    Azure AD tokens carry the ``d=`` prefix.
    """
    if tok.client_id == XBOX_LIVE_CLIENT_ID:
        return tok.access_token
    return "d=" + tok.access_token


class MicrosoftFlow:
    def __init__(
        self,
        client_id: Optional[str] = None,
        transport: Optional[Transport] = None,
        token_cache: Optional[TokenCache] = None,
        on_device_code: Optional[Callable[[DeviceCode], None]] = None,
        refresh_token: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._configured_client_id = client_id
        self.client_id = client_id
        self.refresh_token = refresh_token
        self.transport = transport or Transport()
        self.token_cache = token_cache or MemoryTokenCache()
        self.on_device_code = on_device_code
        self.xbox = XboxLive(self.transport)
        self._sleep = sleep
        self._clock = clock

    def _identity(self, client_id: Optional[str]) -> MicrosoftIdentity:
        if not client_id:
            raise InvalidCredentialsError("A Microsoft client id is required for this login.")
        return MicrosoftIdentity(client_id, self.transport, sleep=self._sleep, clock=self._clock)

    def choose_strategy(self, credentials: Credentials) -> IdentityStrategy:
        cached = self.token_cache.load()
        if cached is not None and cached.is_access_token_valid(now=self._clock()):
            return IdentityStrategy.CACHED_ACCESS_TOKEN
        if self.refresh_token or (cached is not None and cached.refresh_token):
            return IdentityStrategy.REFRESH_TOKEN
        if credentials.username and credentials.password:
            return IdentityStrategy.PASSWORD
        return IdentityStrategy.DEVICE_CODE

    def _acquire(self, strategy: IdentityStrategy, credentials: Credentials) -> TokenSet:
        cached = self.token_cache.load()

        if strategy is IdentityStrategy.CACHED_ACCESS_TOKEN:
            return cached

        if strategy is IdentityStrategy.REFRESH_TOKEN:
            refresh_token = self.refresh_token or cached.refresh_token
            client_id = (cached.client_id if cached and cached.refresh_token == refresh_token else None) or self.client_id
            tok = self._identity(client_id).refresh(refresh_token)
            self.client_id = client_id
            return tok

        if strategy is IdentityStrategy.PASSWORD:
            # live.com only accepts web-form credentials for the Xbox app id
            self.client_id = XBOX_LIVE_CLIENT_ID
            return self._identity(self.client_id).login_with_password(credentials.username, credentials.password)

        if self.on_device_code is None:
            raise InvalidCredentialsError("No refresh token, no password and no device code callback set.")
        return self._identity(self.client_id).device_code_login(self.on_device_code)

    def login(self, credentials: Credentials) -> LoginResult:
        strategy = self.choose_strategy(credentials)
        logger.debug(f"microsoft login via {strategy.value}")

        tok = self._acquire(strategy, credentials)
        if strategy is not IdentityStrategy.CACHED_ACCESS_TOKEN:
            self.token_cache.save(tok)
        self.refresh_token = tok.refresh_token

        game = self.xbox.exchange(rps_ticket(tok))

        try:
            profile: Optional[GameProfile] = self.xbox.fetch_profile(game.access_token)
        except RequestError as e:
            # an account without a game profile can still be logged in
            logger.warning(f"no game profile for this account, continuing without one: {e}")
            profile = None

        if profile is None:
            return LoginResult(access_token=game.access_token, user_id=game.username, username=game.username)
        return LoginResult(
            access_token=game.access_token,
            user_id=profile.id_as_string,
            available_profiles=[profile],
            selected_profile=profile,
            username=profile.name,
        )

    def select_profile(self, credentials: Credentials, profile: GameProfile) -> LoginResult:
        raise SessionStateError("Microsoft accounts have a single profile, selected at login.")

    def logout(self, credentials: Credentials) -> None:
        # no invalidate endpoint: drop what we retained instead
        self.client_id = self._configured_client_id
        self.refresh_token = None
        self.token_cache.clear()
