"""Session state machine shared by every login flow.

``LoggedOut → LoggedIn (no profile) → LoggedIn (profile selected)``; ``logout``
goes back to ``LoggedOut`` from either logged-in state. How the access token is
obtained is up to the flow (legacy Yggdrasil, or the Microsoft/Xbox chain); the
state transitions and the credential guards live here only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from loguru import logger

from mcauth.exceptions import RequestError, SessionStateError
from mcauth.profile import GameProfile, Property


@dataclass(frozen=True)
class Credentials:
    client_token: str
    username: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None


@dataclass
class LoginResult:
    access_token: str
    user_id: Optional[str] = None
    available_profiles: List[GameProfile] = field(default_factory=list)
    selected_profile: Optional[GameProfile] = None
    properties: List[Property] = field(default_factory=list)
    # some flows learn the display name only after login
    username: Optional[str] = None


class AuthFlow(Protocol):
    def login(self, credentials: Credentials) -> LoginResult: ...

    def select_profile(self, credentials: Credentials, profile: GameProfile) -> LoginResult: ...

    def logout(self, credentials: Credentials) -> None: ...


class AuthenticationService:
    def __init__(self, flow: AuthFlow, client_token: Optional[str] = None):
        if client_token == "":
            raise ValueError("client_token cannot be empty.")
        self.flow = flow
        self.client_token = client_token or str(uuid.uuid4())

        self._username: Optional[str] = None
        self._password: Optional[str] = None
        self._access_token: Optional[str] = None

        self._logged_in = False
        self._id: Optional[str] = None
        self._properties: List[Property] = []
        self._profiles: List[GameProfile] = []
        self._selected_profile: Optional[GameProfile] = None

    def _check_mutable(self, what: str) -> None:
        if self._logged_in and self._selected_profile is not None:
            raise SessionStateError(f"Cannot change {what} while user is logged in and profile is selected.")

    @property
    def username(self) -> Optional[str]:
        return self._username

    @username.setter
    def username(self, value: Optional[str]) -> None:
        self._check_mutable("username")
        self._username = value

    @property
    def password(self) -> Optional[str]:
        return self._password

    @password.setter
    def password(self, value: Optional[str]) -> None:
        self._check_mutable("password")
        self._password = value

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @access_token.setter
    def access_token(self, value: Optional[str]) -> None:
        self._check_mutable("access token")
        self._access_token = value

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    @property
    def id(self) -> Optional[str]:
        return self._id

    @property
    def properties(self) -> Tuple[Property, ...]:
        return tuple(self._properties)

    @property
    def available_profiles(self) -> Tuple[GameProfile, ...]:
        return tuple(self._profiles)

    @property
    def selected_profile(self) -> Optional[GameProfile]:
        return self._selected_profile

    def credentials(self) -> Credentials:
        return Credentials(
            client_token=self.client_token,
            username=self._username,
            password=self._password,
            access_token=self._access_token,
        )

    def login(self) -> None:
        """Run the flow's token chain and take over the session it produced."""
        result = self.flow.login(self.credentials())

        self._id = result.user_id or self._username
        if result.username:
            self._username = result.username
        self._access_token = result.access_token
        self._profiles = list(result.available_profiles)
        self._selected_profile = result.selected_profile
        self._properties = list(result.properties)
        self._logged_in = True
        logger.info(
            f"logged in as {self._id} ({len(self._profiles)} profiles, "
            f"selected={self._selected_profile.name if self._selected_profile else None})"
        )

    def logout(self) -> None:
        if not self._logged_in:
            raise SessionStateError("Cannot log out while not logged in.")

        try:
            self.flow.logout(self.credentials())
        except RequestError as e:
            logger.warning(f"token invalidation failed, clearing session anyway: {e}")

        self._access_token = None
        self._logged_in = False
        self._id = None
        self._properties = []
        self._profiles = []
        self._selected_profile = None

    def select_game_profile(self, profile: GameProfile) -> None:
        """Bind the session to one of the available profiles. Allowed once per login."""
        if not self._logged_in:
            raise SessionStateError("Cannot change game profile while not logged in.")
        if self._selected_profile is not None:
            raise SessionStateError("Cannot change game profile when it is already selected.")
        if profile is None or profile not in self._profiles:
            raise ValueError(f"Invalid profile '{profile}'.")

        result = self.flow.select_profile(self.credentials(), profile)
        self._access_token = result.access_token
        self._selected_profile = result.selected_profile or profile

    def __repr__(self) -> str:
        # no secrets
        return (
            f"AuthenticationService(flow={type(self.flow).__name__}, client_token={self.client_token!r}, "
            f"username={self._username!r}, logged_in={self._logged_in}, profiles={self._profiles!r}, "
            f"selected_profile={self._selected_profile!r})"
        )
