"""Initial GoalCircle schema

Revision ID: 5c2e8a7d41f0
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c2e8a7d41f0"
down_revision = None
branch_labels = None
depends_on = None


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.BigInteger(),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def _goal_fk() -> sa.Column:
    return sa.Column(
        "goal_id",
        sa.Integer(),
        sa.ForeignKey("goals.id", ondelete="CASCADE"),
        nullable=False,
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        _created_at(),
    )

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        _created_at(),
    )
    op.create_index("ix_goals_created_at", "goals", ["created_at"])
    op.create_index("ix_goals_created_by", "goals", ["created_by"])

    op.create_table(
        "goal_members",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _goal_fk(),
        _user_fk(),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("status", sa.String(20), nullable=False, server_default="JOINED"),
        sa.Column(
            "joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.UniqueConstraint("goal_id", "user_id", name="uq_goal_members_goal_user"),
    )
    op.create_index("ix_goal_members_user", "goal_members", ["user_id"])

    op.create_table(
        "goal_votes",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _goal_fk(),
        _user_fk(),
        sa.Column("vote_value", sa.SmallInteger(), nullable=False, server_default="1"),
        sa.UniqueConstraint("goal_id", "user_id", name="uq_goal_votes_goal_user"),
    )

    op.create_table(
        "tips",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _goal_fk(),
        _user_fk(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_tips_goal_time", "tips", ["goal_id", "created_at"])

    op.create_table(
        "tip_votes",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "tip_id",
            sa.Integer(),
            sa.ForeignKey("tips.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk(),
        sa.Column("vote_value", sa.SmallInteger(), nullable=False),
        sa.UniqueConstraint("tip_id", "user_id", name="uq_tip_votes_tip_user"),
    )

    op.create_table(
        "success_stories",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _goal_fk(),
        _user_fk(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_success_stories_goal_time", "success_stories", ["goal_id", "created_at"]
    )

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _goal_fk(),
        _user_fk(),
        sa.Column("message_text", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_chat_messages_goal_time", "chat_messages", ["goal_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_chat_messages_goal_time", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_success_stories_goal_time", table_name="success_stories")
    op.drop_table("success_stories")
    op.drop_table("tip_votes")
    op.drop_index("ix_tips_goal_time", table_name="tips")
    op.drop_table("tips")
    op.drop_table("goal_votes")
    op.drop_index("ix_goal_members_user", table_name="goal_members")
    op.drop_table("goal_members")
    op.drop_index("ix_goals_created_by", table_name="goals")
    op.drop_index("ix_goals_created_at", table_name="goals")
    op.drop_table("goals")
    op.drop_table("users")
