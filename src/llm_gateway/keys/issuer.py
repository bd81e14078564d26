"""Issuing, listing, revoking and checking per-user API keys."""

from __future__ import annotations

import hashlib
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta

from llm_gateway.clients.proxy_admin import ProxyAdminClient
from llm_gateway.errors import (
    AuthenticationError,
    InternalError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from llm_gateway.keys.key_store import KeyStore
from llm_gateway.models.keys import ApiKeyRecord, IssuedKey
from llm_gateway.models.usage import as_utc, utc_now

logger = logging.getLogger(__name__)

KEY_PREFIX_LEN = 12
LOCAL_KEY_PREFIX = "sk-ai-"
DEFAULT_DURATION = "365d"
MAX_NAME_LEN = 100

_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def parse_duration(duration: str) -> timedelta:
    """``30d`` / ``12h`` / ``90m`` / ``45s`` as a timedelta, the proxy's duration format."""
    unit = _DURATION_UNITS.get(duration[-1:])
    if unit is None or not duration[:-1].isdigit():
        raise ValidationError(f"Invalid duration: {duration!r}")
    return timedelta(**{unit: int(duration[:-1])})


class KeyIssuer:
    """Keys are generated by the proxy and stored here only as a hash and prefix.

    When the proxy cannot issue a key and ``local_fallback`` is set, a random
    local key is stored instead so the caller still gets a credential.
    """

    def __init__(
        self,
        admin: ProxyAdminClient,
        store: KeyStore,
        *,
        duration: str = DEFAULT_DURATION,
        local_fallback: bool = True,
    ):
        self.admin = admin
        self.store = store
        self.duration = duration
        self.local_fallback = local_fallback

    async def issue(self, user_id: str, name: str) -> IssuedKey:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Key name is required")
        name = name.strip()
        if len(name) > MAX_NAME_LEN:
            raise ValidationError(f"Key name must be at most {MAX_NAME_LEN} characters")

        source = "proxy"
        try:
            key = await self.admin.generate_key(user_id, name, duration=self.duration)
        except UpstreamError as e:
            if not self.local_fallback:
                raise
            logger.warning("Proxy key generation failed, issuing local key: %s", e.detail)
            key = LOCAL_KEY_PREFIX + secrets.token_urlsafe(24)
            source = "local"

        now = utc_now()
        record = ApiKeyRecord(
            user_id=user_id,
            name=name,
            key_hash=hash_key(key),
            key_prefix=key[:KEY_PREFIX_LEN],
            source=source,
            created_at=now,
            expires_at=now + parse_duration(self.duration),
        )
        try:
            self.store.insert(record)
        except sqlite3.Error as e:
            logger.exception("Failed to store key %s for %s", record.id, user_id)
            raise InternalError("Failed to save API key") from e

        logger.info("Key issued: id=%s user=%s source=%s", record.id, user_id, source)
        return IssuedKey(
            key=key,
            id=record.id,
            name=name,
            key_prefix=record.key_prefix,
            expires_at=record.expires_at,
        )

    def list_keys(self, user_id: str) -> list[ApiKeyRecord]:
        return self.store.list_for_user(user_id)

    def get_key(self, user_id: str, key_id: str) -> ApiKeyRecord:
        record = self.store.get(key_id, user_id)
        if record is None:
            raise NotFoundError("Key", key_id)
        return record

    async def revoke(self, user_id: str, key_id: str) -> None:
        """Delete the key at the proxy, then mark it inactive here.

        Raises:
            NotFoundError: No such key for this user.
            UpstreamError: The proxy refused the delete; the key stays active.
        """
        record = self.get_key(user_id, key_id)
        if not record.is_active:
            return
        if record.source == "proxy":
            await self.admin.delete_key(record.key_hash)
        self.store.deactivate(key_id, user_id)
        logger.info("Key revoked: id=%s user=%s", key_id, user_id)

    def authenticate(
        self, user_id: str, raw_key: str, *, now: datetime | None = None
    ) -> ApiKeyRecord:
        """Resolve a presented secret to the caller's active key and stamp its last use."""
        now = as_utc(now) if now is not None else utc_now()
        record = self.store.find_by_hash(hash_key(raw_key))
        if record is None or record.user_id != user_id:
            raise AuthenticationError("Invalid API key")
        if not record.is_active:
            raise AuthenticationError("API key has been revoked")
        if record.is_expired(now):
            raise AuthenticationError("API key has expired")
        self.store.touch(record.id, now)
        return record
