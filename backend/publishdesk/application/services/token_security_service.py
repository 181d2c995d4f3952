from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from publishdesk.core.security import get_token_identifier
from publishdesk.domain.models.revoked_token import RevokedToken


def revoke_token(db: Session, *, token: str, expires_at: datetime, claims: dict | None = None) -> None:
    token_id = get_token_identifier(token, claims)
    existing = db.execute(select(RevokedToken).where(RevokedToken.token_id == token_id)).scalar_one_or_none()
    if existing is None:
        db.add(RevokedToken(token_id=token_id, expires_at=expires_at))


def is_token_revoked(db: Session, *, token: str, claims: dict | None = None) -> bool:
    token_id = get_token_identifier(token, claims)
    row = db.execute(select(RevokedToken).where(RevokedToken.token_id == token_id)).scalar_one_or_none()
    if row is None:
        return False
    expires_at = row.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at >= datetime.now(timezone.utc)


def prune_expired_revoked_tokens(db: Session) -> None:
    now = datetime.now(timezone.utc)
    db.execute(delete(RevokedToken).where(RevokedToken.expires_at < now))
