from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests
from loguru import logger

from mcauth.config import DEFAULT_TIMEOUT
from mcauth.exceptions import (
    InvalidCredentialsError,
    RequestError,
    ServiceUnreachableError,
    UserMigratedError,
)

UA = "mcauth/0.1 (+requests)"


def _safe_prefix(s: Optional[str], n: int = 400) -> str:
    s = s or ""
    return s[:n].replace("\n", "\\n")


def check_for_error(body: Any) -> None:
    """Raise the matching error if ``body`` is an ``{error, cause, errorMessage}`` payload.

    A missing or empty ``error`` means success.
    """
    if not isinstance(body, dict):
        return
    error = body.get("error")
    if not error:
        return
    cause = body.get("cause") or ""
    message = body.get("errorMessage") or body.get("error_description") or str(error)
    if error == "ForbiddenOperationException":
        if cause == "UserMigratedException":
            raise UserMigratedError(message)
        raise InvalidCredentialsError(message)
    raise RequestError(message)


@dataclass
class Page:
    """A non-JSON response: the login pages of the identity provider."""

    status: int
    url: str
    text: str
    cookies: Dict[str, str] = field(default_factory=dict)


class Transport:
    """Blocking JSON/form client for the account services.

    Transport failures surface as :class:`ServiceUnreachableError`; error payloads
    in otherwise well-formed responses go through :func:`check_for_error`.
    """

    def __init__(
        self,
        proxy: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", UA)
        if proxy:
            self.session.proxies.update({"http": proxy, "https": proxy})

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise ServiceUnreachableError(f"Could not make request to '{url}'.") from e

    def _decode(self, url: str, r: requests.Response) -> Any:
        logger.debug(f"{r.request.method if r.request else '?'} {url} HTTP={r.status_code}")
        text = r.text or ""
        if not text.strip():
            if r.ok:
                return None
            raise RequestError(f"HTTP {r.status_code} from '{url}' with empty body.")
        try:
            return r.json()
        except ValueError as e:
            logger.debug(f"non-JSON body from {url}: {_safe_prefix(text)!r}")
            raise ServiceUnreachableError(
                f"Could not parse response of '{url}' (HTTP {r.status_code})."
            ) from e

    def get_json(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> Any:
        r = self._send("GET", url, headers=dict(headers or {}), params=params)
        body = self._decode(url, r)
        if check:
            check_for_error(body)
        return body

    def post_json(
        self,
        url: str,
        payload: Any,
        headers: Optional[Mapping[str, str]] = None,
        check: bool = True,
    ) -> Any:
        hdrs = {"Content-Type": "application/json", "Accept": "application/json"}
        hdrs.update(headers or {})
        r = self._send("POST", url, json=payload, headers=hdrs)
        body = self._decode(url, r)
        if check:
            check_for_error(body)
        return body

    def post_form(self, url: str, data: Mapping[str, str]) -> Any:
        """POST an OAuth form. The caller interprets OAuth ``error`` codes itself."""
        r = self._send("POST", url, data=dict(data), headers={"Accept": "application/json"})
        return self._decode(url, r)

    def get_page(self, url: str) -> Page:
        r = self._send("GET", url)
        return Page(status=r.status_code, url=r.url, text=r.text or "", cookies=r.cookies.get_dict())

    def post_form_page(self, url: str, data: Mapping[str, str], cookies: Optional[Mapping[str, str]] = None) -> Page:
        r = self._send(
            "POST",
            url,
            data=dict(data),
            cookies=dict(cookies or {}),
            headers={"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"},
        )
        return Page(status=r.status_code, url=r.url, text=r.text or "", cookies=r.cookies.get_dict())
