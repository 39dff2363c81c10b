"""
goalcircle.services.tip_service — Tips and Tip Votes
=====================================================

Tips are free-form advice posted under a goal.  Each user holds at most one
vote per tip (+1 or -1); voting again overwrites the previous value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from goalcircle.database.engine import dialect_insert, unit_of_work
from goalcircle.database.models import Tip, TipVote
from goalcircle.services.errors import InvalidInputError, NotFoundError
from goalcircle.services.goal_service import require_goal

if TYPE_CHECKING:
    from sqlalchemy import Engine

VALID_TIP_VOTES = (1, -1)


def tip_dict(t: Tip) -> dict:
    return {
        "id": t.id,
        "goal_id": t.goal_id,
        "user_id": t.user_id,
        "title": t.title,
        "content": t.content,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


def add_tip(engine: Engine, user_id: int, goal_id: int, title: str, content: str) -> dict:
    with unit_of_work(engine, "Failed to add tip") as session:
        require_goal(session, goal_id)
        tip = Tip(goal_id=goal_id, user_id=user_id, title=title, content=content)
        session.add(tip)
        session.flush()
        return tip_dict(tip)


def list_tips(
    engine: Engine,
    goal_id: int,
    search_term: str = "",
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Page through a goal's tips (content search), each with its vote sum."""
    page = max(page, 1)
    offset = (page - 1) * limit

    sums = (
        select(
            TipVote.tip_id.label("tip_id"),
            func.sum(TipVote.vote_value).label("vote_count"),
        )
        .group_by(TipVote.tip_id)
        .subquery()
    )
    filters = (
        Tip.goal_id == goal_id,
        Tip.content.icontains(search_term or "", autoescape=True),
    )

    with unit_of_work(engine, "Failed to fetch tips") as session:
        rows = session.execute(
            select(Tip, func.coalesce(sums.c.vote_count, 0).label("vote_count"))
            .outerjoin(sums, sums.c.tip_id == Tip.id)
            .where(*filters)
            .order_by(Tip.created_at.desc(), Tip.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        total = session.scalar(
            select(func.count()).select_from(Tip).where(*filters)
        ) or 0

        tips = [
            {**tip_dict(row.Tip), "vote_count": int(row.vote_count or 0)}
            for row in rows
        ]

    return {"tips": tips, "page": page, "limit": limit, "total": total}


def vote_tip(
    engine: Engine, user_id: int, goal_id: int, tip_id: int, vote_value: int
) -> None:
    """Record (or overwrite) the caller's +1/-1 on a tip.  Idempotent."""
    if isinstance(vote_value, bool) or vote_value not in VALID_TIP_VOTES:
        raise InvalidInputError("voteValue must be +1 or -1.")

    with unit_of_work(engine, "Failed to vote on tip") as session:
        tip = session.get(Tip, tip_id)
        if tip is None or tip.goal_id != goal_id:
            raise NotFoundError("Tip not found")

        stmt = dialect_insert(session, TipVote.__table__).values(
            tip_id=tip_id, user_id=user_id, vote_value=vote_value
        )
        session.execute(
            stmt.on_conflict_do_update(
                index_elements=["tip_id", "user_id"],
                set_={"vote_value": stmt.excluded.vote_value},
            )
        )
