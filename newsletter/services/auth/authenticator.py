from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Mapping, Protocol

from pydantic import SecretStr

from newsletter.core.config import Settings
from newsletter.core.errors import AuthError, SetupError
from newsletter.services.auth.passwords import hash_password, run_blocking, verify_password


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    username: str
    password: SecretStr


@dataclass(frozen=True)
class StoredCredential:
    user_id: str
    password_hash: str


class Authenticator(Protocol):
    async def authenticate(self, credentials: Credentials) -> str:
        """Return the caller's user id or raise AuthError."""
        ...


# Verified against for unknown usernames so both failure paths cost the same.
_FALLBACK_HASH = hash_password(SecretStr("fallback-password"))


class StoredCredentialAuthenticator:
    def __init__(self, users: Mapping[str, StoredCredential]) -> None:
        self._users = dict(users)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoredCredentialAuthenticator":
        try:
            raw = json.loads(settings.api_users_json or "{}")
        except json.JSONDecodeError as exc:
            raise SetupError("API_USERS_JSON must be a JSON object") from exc
        if not isinstance(raw, dict):
            raise SetupError("API_USERS_JSON must be a JSON object")
        try:
            users = {
                str(username): StoredCredential(
                    user_id=str(entry["user_id"]),
                    password_hash=str(entry["password_hash"]),
                )
                for username, entry in raw.items()
            }
        except (KeyError, TypeError) as exc:
            raise SetupError("API_USERS_JSON entries need user_id and password_hash") from exc
        return cls(users)

    async def authenticate(self, credentials: Credentials) -> str:
        stored = self._users.get(credentials.username)
        expected_hash = stored.password_hash if stored else _FALLBACK_HASH
        verified = await run_blocking(verify_password, credentials.password, expected_hash)
        if stored is None or not verified:
            logger.info("authentication failed for username=%s", credentials.username)
            raise AuthError("Invalid username or password")
        return stored.user_id
