from __future__ import annotations

from typing import Optional


class MCAuthError(Exception):
    """Base class for everything this package raises on purpose."""


# ---- request / network ----


class RequestError(MCAuthError):
    """A request to one of the account services failed."""


class InvalidCredentialsError(RequestError):
    """Username, password, access token or refresh token was rejected or missing."""


class UserMigratedError(InvalidCredentialsError):
    """The legacy account has been migrated and must log in through Microsoft."""


class ProtocolError(RequestError):
    """The server broke the session protocol (e.g. answered with another client token)."""


class ServiceUnreachableError(RequestError):
    """Transport failure, or a response whose shape could not be understood."""


class DeviceCodeExpiredError(RequestError, TimeoutError):
    """The user did not finish the device code sign-in before the code expired."""


class KeyFormatError(RequestError):
    """A service root advertised a signing key that could not be parsed."""


class XboxError(RequestError):
    """XSTS refused to issue a ticket. ``xerr`` is the numeric Xbox error id."""

    def __init__(self, message: str, xerr: Optional[int] = None):
        super().__init__(message)
        self.xerr = xerr


class NoXboxAccountError(XboxError):
    pass


class XboxRegionUnavailableError(XboxError):
    pass


class ChildAccountError(XboxError):
    pass


class AdultVerificationRequiredError(XboxError):
    pass


# ---- profile lookup ----


class ProfileError(MCAuthError):
    pass


class ProfileNotFoundError(ProfileError):
    pass


class ProfileLookupError(ProfileError):
    pass


# ---- profile properties ----


class PropertyError(MCAuthError):
    """A profile property could not be trusted or decoded."""


class MissingSignatureError(PropertyError):
    pass


class SigningKeyUnavailableError(PropertyError):
    """No trusted signing key to verify against: the bundled key file is absent or unreadable."""


class MalformedPayloadError(PropertyError):
    pass


class TamperedPayloadError(PropertyError):
    """Signature or content checks show the payload was altered."""


class InvalidSignatureError(TamperedPayloadError):
    pass


class UntrustedDomainError(TamperedPayloadError):
    pass


# ---- local state ----


class SessionStateError(MCAuthError):
    """Operation not allowed in the session's current state."""
