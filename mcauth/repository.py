from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional, Protocol

from loguru import logger

from mcauth.exceptions import MCAuthError, ProfileNotFoundError, RequestError, ServiceUnreachableError
from mcauth.http import Transport
from mcauth.profile import GameProfile
from mcauth.trust import TrustRegistry, default_registry

PROFILES_PER_REQUEST = 100
MAX_FAIL_COUNT = 3
DELAY_BETWEEN_PAGES = 0.1
DELAY_BETWEEN_FAILURES = 0.75


@dataclass(frozen=True)
class ProfileLookupResult:
    """Outcome for one requested name: a resolved profile, or a name-only profile plus the error."""

    profile: GameProfile
    error: Optional[MCAuthError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProfileLookupCallback(Protocol):
    def on_profile_lookup_succeeded(self, profile: GameProfile) -> None: ...

    def on_profile_lookup_failed(self, profile: GameProfile, error: MCAuthError) -> None: ...


def partition(names: List[str], size: int) -> List[List[str]]:
    return [names[i:i + size] for i in range(0, len(names), size)]


def _parse_search_results(body: Any) -> List[GameProfile]:
    if body is None:
        return []
    if isinstance(body, dict):
        # error objects were already raised by the transport
        body = body.get("profiles") or []
    if not isinstance(body, list):
        raise ServiceUnreachableError("Profile search returned an unexpected response.")
    try:
        return [GameProfile.from_json(entry) for entry in body]
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise ServiceUnreachableError(f"Profile search returned a malformed entry: {e}") from e


class ProfileRepository:
    """Resolves display names to profiles, one search request per page of names."""

    def __init__(
        self,
        registry: Optional[TrustRegistry] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry or default_registry()
        self.transport = transport or Transport()
        self._sleep = sleep

    @property
    def search_url(self) -> str:
        return self.registry.endpoints.profile + "minecraft"

    def find_profiles_by_names(self, names: Iterable[str]) -> Iterator[ProfileLookupResult]:
        """Yield exactly one result per distinct (case-insensitive) non-empty name."""
        criteria = sorted({name.lower() for name in names if name})
        pages = partition(criteria, PROFILES_PER_REQUEST)
        for i, page in enumerate(pages):
            if i:
                self._sleep(DELAY_BETWEEN_PAGES)
            yield from self._resolve_page(page)

    def _resolve_page(self, page: List[str]) -> Iterator[ProfileLookupResult]:
        error: Optional[RequestError] = None
        for attempt in range(1, MAX_FAIL_COUNT + 1):
            try:
                body = self.transport.post_json(self.search_url, page)
                profiles = _parse_search_results(body)
            except RequestError as e:
                error = e
                logger.debug(f"profile search page of {len(page)} failed (attempt {attempt}/{MAX_FAIL_COUNT}): {e}")
                if attempt < MAX_FAIL_COUNT:
                    self._sleep(DELAY_BETWEEN_FAILURES)
                continue

            missing = set(page)
            for profile in profiles:
                key = (profile.name or "").lower()
                if key not in missing:
                    logger.debug(f"ignoring unrequested or duplicate profile {profile.name!r}")
                    continue
                missing.discard(key)
                yield ProfileLookupResult(profile)
            for name in sorted(missing):
                yield ProfileLookupResult(
                    GameProfile(None, name),
                    ProfileNotFoundError("Server could not find the requested profile."),
                )
            return

        logger.warning(f"giving up on {len(page)} names after {MAX_FAIL_COUNT} attempts: {error}")
        for name in page:
            yield ProfileLookupResult(GameProfile(None, name), error)

    def resolve_by_names(self, names: Iterable[str], callback: ProfileLookupCallback) -> None:
        for result in self.find_profiles_by_names(names):
            if result.ok:
                callback.on_profile_lookup_succeeded(result.profile)
            else:
                callback.on_profile_lookup_failed(result.profile, result.error)
