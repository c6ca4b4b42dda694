"""API key authentication with scalable prefix+digest lookup."""

import hashlib
import hmac
import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from metaledger_api.auth.capabilities import Actor, parse_brand_capabilities, validate_capabilities
from metaledger_api.db.session import get_db
from metaledger_api.models import APIKey, Tenant
from metaledger_api.settings import get_settings
from metaledger_api.utils.time import utcnow

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)
settings = get_settings()


def compute_key_prefix(raw_key: str) -> str:
    """Compute prefix (first 8 chars) of API key."""
    return raw_key[:8] if len(raw_key) >= 8 else raw_key


def compute_key_digest(raw_key: str) -> str:
    """Compute HMAC-SHA256 digest of API key."""
    secret = settings.secret_key.encode()
    return hmac.new(secret, raw_key.encode(), hashlib.sha256).hexdigest()


def generate_api_key() -> str:
    """Generate a new raw API key."""
    return f"mlk_{secrets.token_urlsafe(32)}"


def get_api_key_record(db: Session, raw_key: str) -> Optional[APIKey]:
    """Find the active key matching a raw API key."""
    if not raw_key or len(raw_key) < 8:
        return None

    prefix = compute_key_prefix(raw_key)
    digest = compute_key_digest(raw_key)

    candidates = (
        db.query(APIKey)
        .filter(
            APIKey.prefix == prefix,
            APIKey.is_active == True,  # noqa: E712
            APIKey.revoked_at.is_(None),
        )
        .all()
    )
    for api_key_obj in candidates:
        # Constant-time comparison of digest
        if hmac.compare_digest(api_key_obj.digest, digest):
            return api_key_obj
    return None


def actor_from_api_key(api_key_obj: APIKey) -> Actor:
    """Build the service-level actor for an API key."""
    return Actor(
        actor_id=api_key_obj.actor_id,
        tenant_id=api_key_obj.tenant_id,
        producer=api_key_obj.producer,
        capabilities=frozenset(validate_capabilities(api_key_obj.scopes)),
        brand_capabilities=parse_brand_capabilities(api_key_obj.brand_scopes),
    )


def get_current_actor(
    x_api_key: Optional[str] = Security(api_key_header),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the calling actor from the x-api-key header."""
    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide x-api-key header.",
        )

    api_key_obj = get_api_key_record(db, x_api_key)
    if not api_key_obj:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked API key.",
        )

    tenant = db.query(Tenant).filter(Tenant.id == api_key_obj.tenant_id).first()
    if not tenant or tenant.status != "active":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Tenant status is {tenant.status if tenant else 'missing'}.",
        )

    api_key_obj.last_used_at = utcnow()
    db.commit()
    logger.debug(
        "Authenticated API key",
        extra={"tenant_id": tenant.id, "actor_id": api_key_obj.actor_id, "key_id": api_key_obj.id},
    )
    return actor_from_api_key(api_key_obj)
