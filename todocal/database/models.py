"""SQLAlchemy database models for todocal."""

from datetime import datetime
import uuid
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, UniqueConstraint

from todocal.database.database import Base


class UserDB(Base):
    """Database model for User.

    Rows are owned by the host application's identity layer; the integration
    core only references them.
    """
    
    __tablename__ = "users"
    
    id = Column(String, primary_key=True)
    
    # User profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from todocal.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class IntegrationAccountDB(Base):
    """Per-user OAuth credential for an external calendar provider.

    Tokens are stored encrypted-at-rest (see repository layer); do NOT log raw tokens.
    """

    __tablename__ = "integration_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_integration_accounts_user_provider"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String, nullable=False)  # e.g. "google"
    provider_account_id = Column(String, nullable=True)  # Google "sub" claim

    access_token_encrypted = Column(String, nullable=False)
    refresh_token_encrypted = Column(String, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    scope = Column(String, nullable=True)
    meta = Column(JSON, nullable=False, default=dict)  # {email, name, avatar}

    revoked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class OAuthStateDB(Base):
    """Single-use OAuth `state` nonce mapped to the user who started the flow."""

    __tablename__ = "oauth_states"

    nonce = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
