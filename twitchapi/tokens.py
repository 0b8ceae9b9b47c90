#!/usr/bin/env python3
"""
Credential store - bot identity and its OAuth material

Persisted as JSON. The live token is runtime-only and never written to disk.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

LOGGER = logging.getLogger(__name__)


@dataclass
class LiveToken:
    """Validated user token currently usable for Helix calls"""
    access_token: str
    refresh_token: Optional[str]
    user_id: str
    login: str
    scopes: list[str] = field(default_factory=list)
    expires_at: float = 0.0  # epoch seconds

    def expires_in(self, now: Optional[float] = None) -> float:
        """Remaining validity in seconds (never negative)"""
        now = time.time() if now is None else now
        return max(0.0, self.expires_at - now)

    def copy(self) -> "LiveToken":
        return replace(self, scopes=list(self.scopes))

    def __repr__(self) -> str:
        # Keep secrets out of the logs
        return (
            f"LiveToken(login={self.login}, user_id={self.user_id}, "
            f"expires_in={int(self.expires_in())}s, scopes={len(self.scopes)})"
        )


@dataclass
class Credential:
    """
    The bot identity.

    Created from storage or from the environment, mutated by the auth
    manager and the token guardian, saved after every successful validation.
    """
    user_id: str
    display_name: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    live_token: Optional[LiveToken] = field(default=None, repr=False, compare=False)

    def has_tokens(self) -> bool:
        return bool(self.access_token or self.refresh_token)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "display_name": self.display_name,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        expires_in = data.get("expires_in")
        return cls(
            user_id=str(data["user_id"]),
            display_name=str(data["display_name"]),
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
        )

    @classmethod
    def from_token(cls, token: LiveToken) -> "Credential":
        """Materialize the persisted form from a validated token"""
        return cls(
            user_id=token.user_id,
            display_name=token.login,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_in=int(token.expires_in()),
            live_token=token,
        )

    @classmethod
    def from_env(cls) -> "Credential":
        """
        Default identity when nothing is stored yet.

        Raises:
            KeyError: BOT_USER_ID or BOT_USER_NAME missing from the environment
        """
        user_id = os.environ.get("BOT_USER_ID")
        name = os.environ.get("BOT_USER_NAME")
        if not user_id:
            raise KeyError("BOT_USER_ID not in environment")
        if not name:
            raise KeyError("BOT_USER_NAME not in environment")
        return cls(user_id=user_id, display_name=name)

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        LOGGER.debug(f"💾 Credential {self.display_name} saved to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "Credential":
        """
        Raises:
            OSError: file missing/unreadable
            ValueError: invalid JSON
            KeyError: user_id/display_name missing
        """
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        credential = cls.from_dict(data)
        LOGGER.info(f"✅ Credential loaded for {credential.display_name} (ID: {credential.user_id})")
        return credential
