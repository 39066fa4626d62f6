"""
Matchbox — Match and Swipe models.

A match row exists at most once per unordered pair of users; the pair is
stored in canonical order (``user_a_id < user_b_id``) so the unique
constraint on ``(user_a_id, user_b_id)`` covers both swipe orders.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from matchbox.database import Base, BigIntId


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
        CheckConstraint("user_a_id < user_b_id", name="ck_match_pair_order"),
        Index("ix_matches_user_b_id", "user_b_id"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_a_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_b_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_message_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    user_a_last_read: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    user_b_last_read: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # ── Participant helpers ────────────────────────────────────────

    @property
    def participants(self) -> tuple[str, str]:
        return (self.user_a_id, self.user_b_id)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def partner_of(self, user_id: str) -> str:
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"{user_id} is not a participant of match {self.id}")

    def last_read_for(self, user_id: str) -> datetime:
        if user_id == self.user_a_id:
            return self.user_a_last_read
        if user_id == self.user_b_id:
            return self.user_b_last_read
        raise ValueError(f"{user_id} is not a participant of match {self.id}")

    def set_last_read(self, user_id: str, when: datetime) -> None:
        if user_id == self.user_a_id:
            self.user_a_last_read = when
        elif user_id == self.user_b_id:
            self.user_b_last_read = when
        else:
            raise ValueError(f"{user_id} is not a participant of match {self.id}")

    def __repr__(self) -> str:
        return f"<Match {self.id} {self.user_a_id} <-> {self.user_b_id}>"


class Swipe(Base):
    __tablename__ = "swipes"
    __table_args__ = (
        UniqueConstraint("user_id", "profile_id", name="uq_swipe_pair"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    profile_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    is_like: Mapped[bool] = mapped_column(Boolean, nullable=False)
    message: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Optional note attached to a like"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        verdict = "like" if self.is_like else "skip"
        return f"<Swipe {self.user_id} -> {self.profile_id} {verdict}>"
