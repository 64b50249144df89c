from datetime import datetime, timezone
from typing import Any
from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from wif_broker.shared.db.base import Base


class KVEntry(Base):
    """
    One key of the installation key-value store.

    Holds the persisted OIDC key pair (privateKey, publicKey, keyId) and the
    refresh state (expiresAt, configChecksum). The key pair must survive
    restarts, otherwise the Workload Identity Provider can no longer verify
    tokens signed after the restart.
    """
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
