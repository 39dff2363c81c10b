"""
goalcircle.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users            — User directory (id + display name from the identity gate)
- goals            — Community goals with the PENDING → ACTIVE lifecycle
- goal_members     — Membership rows, unique per (goal, user)
- goal_votes       — One promotion vote per (goal, user)
- tips             — Improvement tips posted under a goal
- tip_votes        — One up/down vote per (tip, user)
- success_stories  — Append-only stories posted under a goal
- chat_messages    — Append-only group chat log
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GoalCircle ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class GoalStatus(enum.StrEnum):
    """Goal lifecycle.  PENDING → ACTIVE is the only transition."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"


class MembershipRole(enum.StrEnum):
    OWNER = "owner"
    MEMBER = "member"


class MembershipStatus(enum.StrEnum):
    """Per-user progress on a goal.  JOINED → COMPLETED happens once."""
    JOINED = "JOINED"
    COMPLETED = "COMPLETED"


class VoteAction(enum.StrEnum):
    UPVOTE = "upvote"
    REMOVE = "remove"


# ---------------------------------------------------------------------------
# Users — one row per verified identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r}>"


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------
class Goal(Base):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_by: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GoalStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_goals_created_at", "created_at"),
        Index("ix_goals_created_by", "created_by"),
    )

    def __repr__(self) -> str:
        return f"<Goal id={self.id} name={self.name!r} status={self.status}>"


# ---------------------------------------------------------------------------
# GoalMember — membership, role and completion status
# ---------------------------------------------------------------------------
class GoalMember(Base):
    __tablename__ = "goal_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MembershipRole.MEMBER.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MembershipStatus.JOINED.value
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("goal_id", "user_id", name="uq_goal_members_goal_user"),
        Index("ix_goal_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<GoalMember goal={self.goal_id} user={self.user_id} "
            f"role={self.role} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# GoalVote — promotion votes
# ---------------------------------------------------------------------------
class GoalVote(Base):
    __tablename__ = "goal_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_value: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("goal_id", "user_id", name="uq_goal_votes_goal_user"),
    )

    def __repr__(self) -> str:
        return f"<GoalVote goal={self.goal_id} user={self.user_id} value={self.vote_value}>"


# ---------------------------------------------------------------------------
# Tips
# ---------------------------------------------------------------------------
class Tip(Base):
    __tablename__ = "tips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_tips_goal_time", "goal_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Tip id={self.id} goal={self.goal_id} title={self.title!r}>"


class TipVote(Base):
    __tablename__ = "tip_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tip_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tips.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_value: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # +1 / -1

    __table_args__ = (
        UniqueConstraint("tip_id", "user_id", name="uq_tip_votes_tip_user"),
    )

    def __repr__(self) -> str:
        return f"<TipVote tip={self.tip_id} user={self.user_id} value={self.vote_value}>"


# ---------------------------------------------------------------------------
# Success stories
# ---------------------------------------------------------------------------
class SuccessStory(Base):
    __tablename__ = "success_stories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_success_stories_goal_time", "goal_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SuccessStory id={self.id} goal={self.goal_id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# ChatMessage — append-only group chat log
# ---------------------------------------------------------------------------
class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_chat_messages_goal_time", "goal_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ChatMessage id={self.id} goal={self.goal_id} user={self.user_id}>"
