"""
goalcircle.services.goal_service — Goal Lifecycle Engine
=========================================================

Owns goal creation and deletion, membership join/leave/complete, vote
casting/removal, and the PENDING → ACTIVE promotion rule.

Concurrency model — no in-process locks.  Mutual exclusion is delegated
to the store:

* Unique constraints on ``(goal_id, user_id)`` turn duplicate-insert races
  into one winner and one :class:`ConflictError`.
* Promotion is a single conditional statement::

      UPDATE goals SET status = 'ACTIVE'
       WHERE id = :goal_id
         AND status = 'PENDING'
         AND (SELECT SUM(vote_value) FROM goal_votes WHERE goal_id = :goal_id) >= :threshold

  Its rowcount (0 or 1) is the promotion signal.  However many voters race
  past the threshold, exactly one of them sees ``rowcount == 1``.
* The vote upsert commits *before* the promotion statement runs, so the
  last voter to commit always counts every earlier committed vote and the
  threshold can't be missed by two voters hiding from each other.

Every public function opens its own unit of work and returns plain dicts;
no ORM objects escape a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from goalcircle.database.engine import dialect_insert, unit_of_work
from goalcircle.database.models import (
    ChatMessage,
    Goal,
    GoalMember,
    GoalStatus,
    GoalVote,
    MembershipRole,
    MembershipStatus,
    SuccessStory,
    Tip,
    TipVote,
    User,
    VoteAction,
)
from goalcircle.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from goalcircle.services.user_service import ANONYMOUS_NAME

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_VOTE_THRESHOLD = 2

GOAL_NOT_FOUND = "Goal not found"


# ---------------------------------------------------------------------------
# VoteOutcome — result of cast_vote
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VoteOutcome:
    action: str
    vote_count: int
    status: str
    promoted: bool = False

    @property
    def message(self) -> str:
        if self.action == VoteAction.UPVOTE:
            return "Goal upvoted successfully"
        return "Vote removed successfully"

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "action": self.action,
            "vote_count": self.vote_count,
            "status": self.status,
            "promoted": self.promoted,
        }


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def goal_dict(g: Goal) -> dict:
    return {
        "id": g.id,
        "name": g.name,
        "description": g.description,
        "created_by": g.created_by,
        "status": g.status,
        "created_at": _iso(g.created_at),
    }


def membership_dict(m: GoalMember) -> dict:
    return {
        "id": m.id,
        "goal_id": m.goal_id,
        "user_id": m.user_id,
        "role": m.role,
        "status": m.status,
        "joined_at": _iso(m.joined_at),
    }


# ---------------------------------------------------------------------------
# Lookups shared by the service modules
# ---------------------------------------------------------------------------
def require_goal(session: Session, goal_id: int) -> Goal:
    goal = session.get(Goal, goal_id)
    if goal is None:
        raise NotFoundError(GOAL_NOT_FOUND)
    return goal


def get_membership(session: Session, user_id: int, goal_id: int) -> GoalMember | None:
    return session.scalar(
        select(GoalMember).where(
            GoalMember.user_id == user_id, GoalMember.goal_id == goal_id
        )
    )


def vote_total(session: Session, goal_id: int) -> int:
    """Sum of vote values for a goal, recomputed from the store every time."""
    total = session.scalar(
        select(func.coalesce(func.sum(GoalVote.vote_value), 0)).where(
            GoalVote.goal_id == goal_id
        )
    )
    return int(total or 0)


# ---------------------------------------------------------------------------
# Create / delete
# ---------------------------------------------------------------------------
def create_goal(engine: Engine, user_id: int, name: str, description: str | None) -> dict:
    """Insert a PENDING goal and its owner membership in one transaction."""
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("Goal name is required")

    with unit_of_work(engine, "Failed to create goal") as session:
        goal = Goal(
            name=name,
            description=description,
            created_by=user_id,
            status=GoalStatus.PENDING.value,
        )
        session.add(goal)
        session.flush()
        session.add(GoalMember(
            goal_id=goal.id,
            user_id=user_id,
            role=MembershipRole.OWNER.value,
            status=MembershipStatus.JOINED.value,
        ))
        session.flush()
        result = goal_dict(goal)

    logger.info("Goal %d created by user %d", result["id"], user_id)
    return result


def delete_goal(engine: Engine, user_id: int, goal_id: int) -> None:
    """Delete a goal and everything hanging off it.  Creator only."""
    with unit_of_work(engine, "Failed to delete goal") as session:
        goal = require_goal(session, goal_id)
        if goal.created_by != user_id:
            raise ForbiddenError("Only the goal creator can delete this goal")

        tip_ids = select(Tip.id).where(Tip.goal_id == goal_id)
        session.execute(delete(TipVote).where(TipVote.tip_id.in_(tip_ids)))
        for model in (Tip, SuccessStory, ChatMessage, GoalVote, GoalMember):
            session.execute(delete(model).where(model.goal_id == goal_id))
        session.delete(goal)

    logger.info("Goal %d deleted by user %d", goal_id, user_id)


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
def join_goal(engine: Engine, user_id: int, goal_id: int) -> dict:
    """Add the caller as a ``member``.  A second join is a Conflict."""
    with unit_of_work(engine, "Failed to join goal") as session:
        require_goal(session, goal_id)
        membership = GoalMember(
            goal_id=goal_id,
            user_id=user_id,
            role=MembershipRole.MEMBER.value,
            status=MembershipStatus.JOINED.value,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(membership)
                session.flush()
        except IntegrityError:
            raise ConflictError("You have already joined this goal.") from None
        return membership_dict(membership)


def leave_goal(engine: Engine, user_id: int, goal_id: int) -> None:
    """Hard-delete the caller's membership."""
    with unit_of_work(engine, "Failed to leave goal") as session:
        result = session.execute(
            delete(GoalMember).where(
                GoalMember.user_id == user_id, GoalMember.goal_id == goal_id
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Membership not found or already left")


def complete_goal(engine: Engine, user_id: int, goal_id: int) -> dict:
    """Mark the caller's membership COMPLETED.  One-way, once per user."""
    with unit_of_work(engine, "Failed to complete goal") as session:
        membership = get_membership(session, user_id, goal_id)
        if membership is None:
            raise NotFoundError("Membership not found or goal not joined")
        if membership.status == MembershipStatus.COMPLETED:
            raise ConflictError("You have already completed this goal.")

        result = session.execute(
            update(GoalMember)
            .where(
                GoalMember.id == membership.id,
                GoalMember.status == MembershipStatus.JOINED.value,
            )
            .values(status=MembershipStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # A concurrent request completed it between our read and write.
            raise ConflictError("You have already completed this goal.")

        session.refresh(membership)
        return membership_dict(membership)


# ---------------------------------------------------------------------------
# Votes & promotion
# ---------------------------------------------------------------------------
def promote_if_threshold_reached(engine: Engine, goal_id: int, threshold: int) -> bool:
    """Run the PENDING → ACTIVE compare-and-swap.

    Returns ``True`` only for the single call that actually flipped the
    status.
    """
    vote_sum = (
        select(func.coalesce(func.sum(GoalVote.vote_value), 0))
        .where(GoalVote.goal_id == goal_id)
        .scalar_subquery()
    )
    with unit_of_work(engine, "Failed to process vote") as session:
        result = session.execute(
            update(Goal)
            .where(
                Goal.id == goal_id,
                Goal.status == GoalStatus.PENDING.value,
                vote_sum >= threshold,
            )
            .values(status=GoalStatus.ACTIVE.value)
            .execution_options(synchronize_session=False)
        )
        promoted = result.rowcount == 1

    if promoted:
        logger.info("Goal %d promoted to ACTIVE (threshold=%d)", goal_id, threshold)
    return promoted


def cast_vote(
    engine: Engine,
    user_id: int,
    goal_id: int,
    action: str,
    threshold: int = DEFAULT_VOTE_THRESHOLD,
) -> VoteOutcome:
    """Upvote (idempotent upsert) or remove the caller's vote.

    Removing a vote never demotes an ACTIVE goal.
    """
    if action not in (VoteAction.UPVOTE, VoteAction.REMOVE):
        raise InvalidInputError("Invalid action. Use 'upvote' or 'remove'.")

    with unit_of_work(engine, "Failed to process vote") as session:
        require_goal(session, goal_id)
        if action == VoteAction.UPVOTE:
            stmt = dialect_insert(session, GoalVote.__table__).values(
                goal_id=goal_id, user_id=user_id, vote_value=1
            )
            session.execute(
                stmt.on_conflict_do_update(
                    index_elements=["goal_id", "user_id"],
                    set_={"vote_value": stmt.excluded.vote_value},
                )
            )
        else:
            result = session.execute(
                delete(GoalVote).where(
                    GoalVote.goal_id == goal_id, GoalVote.user_id == user_id
                )
            )
            if result.rowcount == 0:
                raise NotFoundError("No existing vote to remove")

    promoted = False
    if action == VoteAction.UPVOTE:
        promoted = promote_if_threshold_reached(engine, goal_id, threshold)

    with unit_of_work(engine, "Failed to process vote") as session:
        status = session.scalar(select(Goal.status).where(Goal.id == goal_id))
        count = vote_total(session, goal_id)

    return VoteOutcome(
        action=str(action),
        vote_count=count,
        status=status or GoalStatus.PENDING.value,
        promoted=promoted,
    )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
def list_goals(
    engine: Engine,
    user_id: int,
    search_term: str = "",
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Search goals by name, newest first, annotated for the caller."""
    page = max(page, 1)
    offset = (page - 1) * limit

    totals = (
        select(
            GoalVote.goal_id.label("goal_id"),
            func.sum(GoalVote.vote_value).label("total_votes"),
        )
        .group_by(GoalVote.goal_id)
        .subquery()
    )
    name_filter = Goal.name.icontains(search_term or "", autoescape=True)

    query = (
        select(
            Goal,
            GoalMember.user_id.label("member_user_id"),
            GoalVote.user_id.label("voter_user_id"),
            func.coalesce(totals.c.total_votes, 0).label("vote_count"),
        )
        .outerjoin(
            GoalMember,
            and_(GoalMember.goal_id == Goal.id, GoalMember.user_id == user_id),
        )
        .outerjoin(
            GoalVote,
            and_(GoalVote.goal_id == Goal.id, GoalVote.user_id == user_id),
        )
        .outerjoin(totals, totals.c.goal_id == Goal.id)
        .where(name_filter)
        .order_by(Goal.created_at.desc(), Goal.id.desc())
        .offset(offset)
        .limit(limit)
    )

    with unit_of_work(engine, "Failed to fetch goals") as session:
        rows = session.execute(query).all()
        total = session.scalar(
            select(func.count()).select_from(Goal).where(name_filter)
        ) or 0

        goals = [
            {
                **goal_dict(row.Goal),
                "joined": row.member_user_id is not None,
                # Vote state only matters while the goal can still be promoted.
                "user_voted": (
                    row.Goal.status == GoalStatus.PENDING
                    and row.voter_user_id is not None
                ),
                "vote_count": int(row.vote_count or 0),
            }
            for row in rows
        ]

    return {"goals": goals, "total": total, "page": page, "limit": limit}


def list_joined_goals(engine: Engine, user_id: int) -> dict:
    with unit_of_work(engine, "Failed to fetch joined goals") as session:
        goals = session.scalars(
            select(Goal)
            .join(GoalMember, GoalMember.goal_id == Goal.id)
            .where(GoalMember.user_id == user_id)
            .order_by(Goal.created_at.desc(), Goal.id.desc())
        ).all()
        return {"goals": [goal_dict(g) for g in goals]}


def list_owned_goals(engine: Engine, user_id: int) -> dict:
    with unit_of_work(engine, "Failed to fetch owned goals") as session:
        goals = session.scalars(
            select(Goal)
            .where(Goal.created_by == user_id)
            .order_by(Goal.created_at.desc(), Goal.id.desc())
        ).all()
        return {"goals": [goal_dict(g) for g in goals]}


# ---------------------------------------------------------------------------
# Detail
# ---------------------------------------------------------------------------
def get_goal_detail(engine: Engine, goal_id: int) -> dict:
    """Goal metadata, member counts, tips with vote tallies, and stories."""
    with unit_of_work(engine, "Failed to fetch goal details") as session:
        row = session.execute(
            select(Goal, User.username)
            .outerjoin(User, User.id == Goal.created_by)
            .where(Goal.id == goal_id)
        ).first()
        if row is None:
            raise NotFoundError(GOAL_NOT_FOUND)
        goal, owner_name = row

        member_count = session.scalar(
            select(func.count()).select_from(GoalMember)
            .where(GoalMember.goal_id == goal_id)
        ) or 0
        accomplished_count = session.scalar(
            select(func.count()).select_from(GoalMember)
            .where(
                GoalMember.goal_id == goal_id,
                GoalMember.status == MembershipStatus.COMPLETED.value,
            )
        ) or 0

        up_votes = func.coalesce(
            func.sum(case((TipVote.vote_value == 1, 1), else_=0)), 0
        )
        down_votes = func.coalesce(
            func.sum(case((TipVote.vote_value == -1, 1), else_=0)), 0
        )
        tip_rows = session.execute(
            select(
                Tip,
                User.username,
                up_votes.label("up"),
                down_votes.label("down"),
            )
            .outerjoin(User, User.id == Tip.user_id)
            .outerjoin(TipVote, TipVote.tip_id == Tip.id)
            .where(Tip.goal_id == goal_id)
            .group_by(Tip.id, User.username)
            .order_by(Tip.created_at.desc(), Tip.id.desc())
        ).all()

        story_rows = session.execute(
            select(SuccessStory, User.username)
            .outerjoin(User, User.id == SuccessStory.user_id)
            .where(SuccessStory.goal_id == goal_id)
            .order_by(SuccessStory.created_at.desc(), SuccessStory.id.desc())
        ).all()

        return {
            "id": goal.id,
            "name": goal.name,
            "description": goal.description,
            "status": goal.status,
            "userName": owner_name or ANONYMOUS_NAME,
            "memberCount": member_count,
            "accomplishedCount": accomplished_count,
            "tips": [
                {
                    "id": tip.id,
                    "title": tip.title,
                    "content": tip.content,
                    "owner": name or ANONYMOUS_NAME,
                    "numberOfUpVote": int(up or 0),
                    "numberOfDownVote": int(down or 0),
                }
                for tip, name, up, down in tip_rows
            ],
            "successStories": [
                {
                    "id": story.id,
                    "title": story.title,
                    "content": story.content,
                    "owner": name or ANONYMOUS_NAME,
                }
                for story, name in story_rows
            ],
        }
