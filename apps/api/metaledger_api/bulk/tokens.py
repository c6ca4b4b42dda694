"""Addressable stores for bulk preview tokens.

A token is single use: consuming it removes it from the store whether or
not the execute that follows succeeds. Only the SHA-256 digest of a token
is ever stored.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import redis
from sqlalchemy.orm import Session

from metaledger_api.models import BulkPreviewToken
from metaledger_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class PreviewGrant:
    """What a preview token is bound to."""

    tenant_id: int
    actor_id: str
    params: dict
    expires_at: datetime

    def to_json(self) -> str:
        return json.dumps(
            {
                "tenant_id": self.tenant_id,
                "actor_id": self.actor_id,
                "params": self.params,
                "expires_at": self.expires_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "PreviewGrant":
        data = json.loads(raw)
        return cls(
            tenant_id=data["tenant_id"],
            actor_id=data["actor_id"],
            params=data["params"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class SQLPreviewTokenStore:
    """Token store backed by the bulk_preview_tokens table."""

    def __init__(self, db: Session):
        """Initialize SQL token store."""
        self.db = db

    def save(self, token: str, grant: PreviewGrant, ttl_seconds: int) -> None:
        self.db.add(
            BulkPreviewToken(
                token_digest=digest_token(token),
                tenant_id=grant.tenant_id,
                actor_id=grant.actor_id,
                params_json=grant.params,
                expires_at=grant.expires_at,
            )
        )
        self.db.commit()

    def consume(self, token: str) -> Optional[PreviewGrant]:
        """Remove and return the grant; None if missing or already consumed."""
        digest = digest_token(token)
        row = self.db.query(BulkPreviewToken).filter(BulkPreviewToken.token_digest == digest).first()
        if row is None:
            return None
        grant = PreviewGrant(
            tenant_id=row.tenant_id,
            actor_id=row.actor_id,
            params=row.params_json,
            expires_at=row.expires_at,
        )
        # Conditional delete: only one concurrent consumer sees a deleted row.
        deleted = (
            self.db.query(BulkPreviewToken)
            .filter(BulkPreviewToken.id == row.id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted != 1:
            return None
        return grant

    def purge_expired(self, now: datetime) -> int:
        deleted = (
            self.db.query(BulkPreviewToken)
            .filter(BulkPreviewToken.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted


class RedisPreviewTokenStore:
    """Token store backed by Redis keys that expire with the token."""

    key_prefix = "metaledger:bulk_preview:"

    def __init__(self, client: redis.Redis):
        """Initialize Redis token store."""
        self.client = client

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{digest_token(token)}"

    def save(self, token: str, grant: PreviewGrant, ttl_seconds: int) -> None:
        self.client.setex(self._key(token), max(1, ttl_seconds), grant.to_json())

    def consume(self, token: str) -> Optional[PreviewGrant]:
        raw = self.client.getdel(self._key(token))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return PreviewGrant.from_json(raw)

    def purge_expired(self, now: datetime) -> int:
        # Redis expires keys on its own.
        return 0


def get_preview_token_store(db: Session, settings: Optional[Settings] = None):
    """Token store selected by BULK_PREVIEW_STORE."""
    settings = settings or get_settings()
    if settings.bulk_preview_store == "redis":
        return RedisPreviewTokenStore(redis.from_url(settings.redis_url, decode_responses=True))
    return SQLPreviewTokenStore(db)
