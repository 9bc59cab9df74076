from loguru import logger

from mcauth.authentication import AuthenticationService, Credentials, LoginResult
from mcauth.config import Settings
from mcauth.exceptions import (
    AdultVerificationRequiredError,
    ChildAccountError,
    DeviceCodeExpiredError,
    InvalidCredentialsError,
    InvalidSignatureError,
    KeyFormatError,
    MalformedPayloadError,
    MCAuthError,
    MissingSignatureError,
    NoXboxAccountError,
    ProfileError,
    ProfileLookupError,
    ProfileNotFoundError,
    PropertyError,
    ProtocolError,
    RequestError,
    ServiceUnreachableError,
    SigningKeyUnavailableError,
    SessionStateError,
    TamperedPayloadError,
    UntrustedDomainError,
    UserMigratedError,
    XboxError,
    XboxRegionUnavailableError,
)
from mcauth.federated import IdentityStrategy, MicrosoftFlow
from mcauth.microsoft import DeviceCode
from mcauth.profile import GameProfile, Property, Texture, TextureModel, TextureType, resolve_textures
from mcauth.repository import ProfileLookupResult, ProfileRepository
from mcauth.session import SessionService
from mcauth.token_cache import FileTokenCache, MemoryTokenCache, TokenSet
from mcauth.trust import TrustRegistry, default_registry
from mcauth.yggdrasil import YggdrasilFlow

# library default: silent unless asked for
logger.disable("mcauth")


def enable_logging() -> None:
    logger.enable("mcauth")


if Settings.from_env().debug:
    enable_logging()
