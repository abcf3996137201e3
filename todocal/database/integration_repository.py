"""Repository for per-user provider credentials used by integrations.

Security notes:
- Access and refresh tokens are secrets: stored encrypted-at-rest and never logged.
- Callers must ensure decrypted values are not leaked to clients or logs.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from todocal.database.models import IntegrationAccountDB
from todocal.models.constants import PROVIDER_GOOGLE
from todocal.models.integration import IntegrationCredential

logger = logging.getLogger(__name__)
_UNSET = object()


def _require_fernet() -> Fernet:
    key = os.getenv("TOKEN_ENCRYPTION_KEY", "").strip()
    if not key:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY is not set. "
            "Set it to a Fernet key (base64 urlsafe 32-byte) to enable encrypted token storage."
        )
    return Fernet(key)


def encrypt_secret(raw: str) -> str:
    f = _require_fernet()
    return f.encrypt(raw.encode("utf-8")).decode("utf-8")


def decrypt_secret(enc: str) -> str:
    f = _require_fernet()
    try:
        return f.decrypt(enc.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise RuntimeError("Stored token could not be decrypted; TOKEN_ENCRYPTION_KEY may be wrong.") from e


def _to_credential(row: IntegrationAccountDB) -> IntegrationCredential:
    return IntegrationCredential(
        id=row.id,
        user_id=row.user_id,
        provider=row.provider,
        provider_account_id=row.provider_account_id,
        access_token=decrypt_secret(row.access_token_encrypted),
        refresh_token=decrypt_secret(row.refresh_token_encrypted) if row.refresh_token_encrypted else None,
        expires_at=row.expires_at,
        scope=row.scope,
        meta=dict(row.meta or {}),
        revoked_at=row.revoked_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class IntegrationRepository:
    """Credential store: one row per (user, provider)."""

    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, user_id: str, provider: str) -> Optional[IntegrationAccountDB]:
        return (
            self.db.query(IntegrationAccountDB)
            .filter(
                IntegrationAccountDB.user_id == user_id,
                IntegrationAccountDB.provider == provider,
            )
            .first()
        )

    def get(self, user_id: str, provider: str = PROVIDER_GOOGLE) -> Optional[IntegrationCredential]:
        """Get the credential for a user, including revoked ones (history)."""
        row = self._get_row(user_id, provider)
        return _to_credential(row) if row else None

    def get_active(self, user_id: str, provider: str = PROVIDER_GOOGLE) -> Optional[IntegrationCredential]:
        """Get the credential for a user only if it has not been revoked."""
        row = (
            self.db.query(IntegrationAccountDB)
            .filter(
                IntegrationAccountDB.user_id == user_id,
                IntegrationAccountDB.provider == provider,
                IntegrationAccountDB.revoked_at.is_(None),
            )
            .first()
        )
        return _to_credential(row) if row else None

    def upsert_from_consent(
        self,
        user_id: str,
        *,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[datetime],
        scope: Optional[str],
        meta: Optional[Dict[str, Any]] = None,
        provider_account_id: Optional[str] = None,
        provider: str = PROVIDER_GOOGLE,
    ) -> IntegrationCredential:
        """Create or update a credential after a successful code exchange.

        A missing `refresh_token` keeps the stored one; providers commonly omit it
        on repeat consents. Revocation is cleared.
        """
        now = datetime.utcnow()
        try:
            row = self._get_row(user_id, provider)
            if row is None:
                row = IntegrationAccountDB(
                    user_id=user_id,
                    provider=provider,
                    created_at=now,
                )
                self.db.add(row)
            elif refresh_token is None and row.refresh_token_encrypted:
                logger.info(f"Keeping stored refresh token for user {user_id} ({provider}); none returned on re-consent")

            row.provider_account_id = provider_account_id or row.provider_account_id
            row.access_token_encrypted = encrypt_secret(access_token)
            if refresh_token:
                row.refresh_token_encrypted = encrypt_secret(refresh_token)
            row.expires_at = expires_at
            row.scope = scope
            row.meta = dict(meta or {})
            row.revoked_at = None
            row.updated_at = now

            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Upserted {provider} credential for user {user_id}")
            return _to_credential(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to upsert {provider} credential for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def update_access_token(
        self,
        user_id: str,
        *,
        access_token: str,
        expires_at: Optional[datetime],
        refresh_token=_UNSET,
        provider: str = PROVIDER_GOOGLE,
    ) -> Optional[IntegrationCredential]:
        """Store a refreshed access token and its expiry in a single commit.

        Uses an UNSET sentinel so the refresh token is only touched when the
        provider rotated it.
        """
        try:
            row = self._get_row(user_id, provider)
            if row is None:
                return None
            row.access_token_encrypted = encrypt_secret(access_token)
            row.expires_at = expires_at
            if refresh_token is not _UNSET and refresh_token:
                row.refresh_token_encrypted = encrypt_secret(refresh_token)
            row.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(row)
            return _to_credential(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store refreshed {provider} token for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def mark_revoked(
        self,
        user_id: str,
        provider: str = PROVIDER_GOOGLE,
        *,
        revoked_at: Optional[datetime] = None,
    ) -> Optional[IntegrationCredential]:
        """Stamp `revoked_at`; the row stays readable for history."""
        try:
            row = self._get_row(user_id, provider)
            if row is None:
                return None
            row.revoked_at = revoked_at or datetime.utcnow()
            row.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(row)
            return _to_credential(row)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to revoke {provider} credential for user {user_id}: {type(e).__name__}: {str(e)}")
            raise

    def delete(self, user_id: str, provider: str = PROVIDER_GOOGLE) -> int:
        """Delete the stored credential row for a user.

        Returns number of rows deleted (0 or 1).
        """
        affected = (
            self.db.query(IntegrationAccountDB)
            .filter(
                IntegrationAccountDB.user_id == user_id,
                IntegrationAccountDB.provider == provider,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return int(affected)
