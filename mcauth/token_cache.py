from __future__ import annotations

import json
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


@dataclass
class TokenSet:
    access_token: Optional[str]
    refresh_token: Optional[str]
    id_token: Optional[str] = None
    expires_at: Optional[int] = None  # unix seconds
    scope: Optional[str] = None
    token_type: Optional[str] = None
    # client the tokens were issued to; refresh tokens only work for that client
    client_id: Optional[str] = None

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "TokenSet":
        return TokenSet(
            access_token=d.get("access_token"),
            refresh_token=d.get("refresh_token"),
            id_token=d.get("id_token"),
            expires_at=d.get("expires_at"),
            scope=d.get("scope"),
            token_type=d.get("token_type"),
            client_id=d.get("client_id"),
        )

    @staticmethod
    def from_token_response(t: Dict[str, Any], previous: Optional["TokenSet"] = None, now: Optional[float] = None) -> "TokenSet":
        """Build from an OAuth token endpoint response.

        The identity provider may rotate refresh tokens; fields it leaves out are
        carried over from ``previous``.
        """
        now = time.time() if now is None else now
        expires_in = int(t.get("expires_in", 3600))
        previous = previous or TokenSet(None, None)
        return TokenSet(
            access_token=t.get("access_token"),
            refresh_token=t.get("refresh_token") or previous.refresh_token,
            id_token=t.get("id_token") or previous.id_token,
            expires_at=int(now) + expires_in,
            scope=t.get("scope") or previous.scope,
            token_type=t.get("token_type") or previous.token_type,
            client_id=previous.client_id,
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "id_token": self.id_token,
            "expires_at": self.expires_at,
            "scope": self.scope,
            "token_type": self.token_type,
            "client_id": self.client_id,
        }

    def is_access_token_valid(self, skew_seconds: int = 60, now: Optional[float] = None) -> bool:
        if not self.access_token or not self.expires_at:
            return False
        now = time.time() if now is None else now
        return int(now) + skew_seconds < int(self.expires_at)


class TokenCache:
    """Identity-provider token store: loaded before first use, saved after every renewal."""

    def load(self) -> Optional[TokenSet]:
        raise NotImplementedError

    def save(self, tok: TokenSet) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenCache(TokenCache):
    def __init__(self, tok: Optional[TokenSet] = None):
        self.tok = tok

    def load(self) -> Optional[TokenSet]:
        return self.tok

    def save(self, tok: TokenSet) -> None:
        self.tok = tok

    def clear(self) -> None:
        self.tok = None


def _write_secure(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path.parent, 0o700)
    except OSError as e:
        logger.debug(f"could not restrict {path.parent}: {e!r}")
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, indent=2))
    os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)
    tmp.replace(path)


class FileTokenCache(TokenCache):
    """JSON file readable by the owner only, replaced atomically on save."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._loaded = False
        self._tok: Optional[TokenSet] = None

    def load(self) -> Optional[TokenSet]:
        if not self._loaded:
            self._tok = self._read()
            self._loaded = True
        return self._tok

    def _read(self) -> Optional[TokenSet]:
        if not self.path.exists():
            return None
        try:
            return TokenSet.from_json(json.loads(self.path.read_text()))
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"ignoring unreadable token cache {self.path}: {e!r}")
            return None

    def save(self, tok: TokenSet) -> None:
        _write_secure(self.path, tok.to_json())
        self._tok = tok
        self._loaded = True

    def clear(self) -> None:
        self._tok = None
        self._loaded = True
        self.path.unlink(missing_ok=True)
