"""
Matchbox — Notification model.

One row per delivery-worthy event, written whether or not a live stream
received it.  Clients reconcile from this table after reconnecting.
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from matchbox.database import Base, BigIntId

NOTIFICATION_TYPES = ("match", "message")


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, comment="match / message"
    )
    target_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, comment="Match id the event refers to"
    )
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.type} -> {self.user_id}>"
