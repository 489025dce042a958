"""
auth/credentials.py -- Encrypted storage for users' Twitter tokens.

One row per user, keyed on user_id. store_credentials() overwrites the row on
every successful connect or refresh, so only the latest token pair is ever
retrievable.

Encryption at rest: access and refresh tokens are Fernet-encrypted
(AES-128-CBC + HMAC-SHA256, from the cryptography package) before they reach
the database. The key is CREDENTIAL_ENCRYPTION_KEY when set, otherwise it is
derived from SECRET_KEY. A token that fails to decrypt (rotated key, tampered
row) is treated as "no credentials" -- it is never returned as ciphertext.

store_credentials() and remove_credentials() return booleans instead of
raising: the OAuth callback logs and surfaces a failed write without aborting
the login.

Layer rule: no imports from api/, web/, or replies/.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import datetime, timezone

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import StoredCredential
from auth.store import make_engine
from core import twitter
from core.config import get_settings

logger = logging.getLogger("xreply.auth.credentials")

_metadata = MetaData()

_credentials = Table(
    "twitter_credentials",
    _metadata,
    Column("user_id", String(32), primary_key=True),
    Column("twitter_user_id", String(64), nullable=False),
    Column("twitter_handle", String(50), nullable=False, server_default=""),
    Column("access_token", Text, nullable=False),  # Fernet ciphertext
    Column("refresh_token", Text, nullable=False, server_default=""),  # Fernet ciphertext or ""
    Column("updated_at", String(32), nullable=False),
)


def _build_fernet() -> Fernet:
    """Return the Fernet instance for the configured or derived key."""
    cfg = get_settings()
    if cfg.credential_encryption_key:
        return Fernet(cfg.credential_encryption_key.encode())
    digest = hashlib.sha256(f"twitter-credentials:{cfg.secret_key}".encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class CredentialStore:
    """Repository for StoredCredential rows.

    Usage:
        creds = CredentialStore()
        creds.store_credentials(user.id, StoredCredential(access_token="T1", ...))
        creds.get_credentials(user.id)
        creds.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)
        self._fernet = _build_fernet()

    def _encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode() if value else ""

    def _decrypt(self, value: str) -> str:
        return self._fernet.decrypt(value.encode()).decode() if value else ""

    def store_credentials(self, user_id: str, credential: StoredCredential) -> bool:
        """Insert or overwrite the credential row for user_id.

        Returns True on success, False (logged) on any database failure.
        """
        values = {
            "twitter_user_id": credential.twitter_user_id,
            "twitter_handle": credential.twitter_handle,
            "access_token": self._encrypt(credential.access_token),
            "refresh_token": self._encrypt(credential.refresh_token or ""),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        update = _credentials.update().where(_credentials.c.user_id == user_id).values(**values)
        try:
            try:
                with self.engine.begin() as conn:
                    if conn.execute(update).rowcount == 0:
                        conn.execute(_credentials.insert().values(user_id=user_id, **values))
            except IntegrityError:
                # A concurrent callback inserted the row first; overwrite it.
                with self.engine.begin() as conn:
                    conn.execute(update)
        except SQLAlchemyError:
            logger.exception("Failed to store Twitter credentials for user %s", user_id)
            return False
        logger.info(
            "Stored Twitter credentials for user %s (@%s, refresh_token=%s)",
            user_id,
            credential.twitter_handle,
            bool(credential.refresh_token),
        )
        return True

    def get_credentials(self, user_id: str) -> StoredCredential | None:
        """Return the decrypted credential for user_id, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_credentials.c.user_id == user_id)).fetchone()
        if row is None or not row.access_token:
            return None
        try:
            access_token = self._decrypt(row.access_token)
            refresh_token = self._decrypt(row.refresh_token)
        except InvalidToken:
            logger.error("Stored Twitter credentials for user %s could not be decrypted", user_id)
            return None
        return StoredCredential(
            user_id=row.user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            twitter_user_id=row.twitter_user_id,
            twitter_handle=row.twitter_handle,
            updated_at=row.updated_at,
        )

    def remove_credentials(self, user_id: str) -> bool:
        """Delete the credential row (Twitter disconnect).

        Returns True if a row was removed, False if none existed or the
        delete failed (logged).
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_credentials.delete().where(_credentials.c.user_id == user_id))
        except SQLAlchemyError:
            logger.exception("Failed to remove Twitter credentials for user %s", user_id)
            return False
        return result.rowcount > 0

    def has_valid_credentials(self, user_id: str) -> bool:
        credential = self.get_credentials(user_id)
        return credential is not None and len(credential.access_token) > 0

    def close(self) -> None:
        self.engine.dispose()


def refresh_stored_credentials(store: CredentialStore, user_id: str) -> bool:
    """Refresh the user's Twitter tokens and persist the new pair.

    Single attempt, no retry. Returns False when the user has no refresh
    token, the refresh grant fails, or the new pair cannot be stored. The
    old pair is left untouched on failure.
    """
    credential = store.get_credentials(user_id)
    if credential is None or not credential.refresh_token:
        logger.info("No refresh token available for user %s", user_id)
        return False

    token = twitter.refresh_access_token(credential.refresh_token)
    if token is None:
        return False

    credential.access_token = token.access_token
    # Twitter rotates refresh tokens; keep the old one only if none came back.
    credential.refresh_token = token.refresh_token or credential.refresh_token
    return store.store_credentials(user_id, credential)
