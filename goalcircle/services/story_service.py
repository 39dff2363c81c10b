"""
goalcircle.services.story_service — Success Stories
====================================================

Append-only records of members who reached a goal.  No lifecycle beyond
creation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from goalcircle.database.engine import unit_of_work
from goalcircle.database.models import SuccessStory
from goalcircle.services.goal_service import require_goal

if TYPE_CHECKING:
    from sqlalchemy import Engine


def story_dict(s: SuccessStory) -> dict:
    return {
        "id": s.id,
        "goal_id": s.goal_id,
        "user_id": s.user_id,
        "title": s.title,
        "content": s.content,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


def add_story(engine: Engine, user_id: int, goal_id: int, title: str, content: str) -> dict:
    with unit_of_work(engine, "Failed to add success story") as session:
        require_goal(session, goal_id)
        story = SuccessStory(goal_id=goal_id, user_id=user_id, title=title, content=content)
        session.add(story)
        session.flush()
        return story_dict(story)


def list_stories(engine: Engine, goal_id: int, page: int = 1, limit: int = 10) -> dict:
    page = max(page, 1)
    with unit_of_work(engine, "Failed to fetch success stories") as session:
        stories = session.scalars(
            select(SuccessStory)
            .where(SuccessStory.goal_id == goal_id)
            .order_by(SuccessStory.created_at.desc(), SuccessStory.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        total = session.scalar(
            select(func.count()).select_from(SuccessStory)
            .where(SuccessStory.goal_id == goal_id)
        ) or 0
        return {
            "successStories": [story_dict(s) for s in stories],
            "page": page,
            "limit": limit,
            "total": total,
        }
