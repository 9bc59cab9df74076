from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


DEFAULT_CACHE_PATH = "~/.config/msauth/device_token.json"
DEFAULT_TIMEOUT = 15.0


@dataclass(frozen=True)
class Settings:
    """Process configuration, read from the environment by ``from_env``."""

    client_id: Optional[str] = None
    token_cache_path: Path = Path(DEFAULT_CACHE_PATH).expanduser()
    debug: bool = False
    proxy: Optional[str] = None
    service_root: Optional[str] = None
    require_secure_textures: bool = True
    signing_key_file: Optional[Path] = None
    timeout: float = DEFAULT_TIMEOUT

    @staticmethod
    def from_env() -> "Settings":
        key_file = _env_str("MCAUTH_SIGNING_KEY_FILE")
        timeout = _env_str("MCAUTH_TIMEOUT")
        return Settings(
            client_id=_env_str("MS_CLIENT_ID"),
            token_cache_path=Path(os.environ.get("MS_TOKEN_CACHE", DEFAULT_CACHE_PATH)).expanduser(),
            debug=_env_flag("MS_DEBUG"),
            proxy=_env_str("MCAUTH_PROXY"),
            service_root=_env_str("MCAUTH_SERVICE_ROOT"),
            require_secure_textures=_env_flag("MCAUTH_REQUIRE_SECURE_TEXTURES", default=True),
            signing_key_file=Path(key_file).expanduser() if key_file else None,
            timeout=float(timeout) if timeout else DEFAULT_TIMEOUT,
        )
