"""
goalcircle.api.routes.goals — Goal, tip, and success-story endpoints
======================================================================

Every endpoint requires a bearer token.  Handlers are plain ``def`` so
FastAPI runs the synchronous service calls on its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from goalcircle.api.deps import CurrentUser, get_config, get_current_user, get_engine
from goalcircle.config import GoalCircleConfig
from goalcircle.services import chat_service, goal_service, story_service, tip_service

router = APIRouter(prefix="/goals", tags=["goals"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GoalCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class VoteRequest(BaseModel):
    action: str


class TipBody(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)


class TipCreate(BaseModel):
    tip: TipBody


class TipVoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vote_value: int = Field(alias="voteValue")


class StoryBody(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)


class StoryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success_story: StoryBody = Field(alias="successStory")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _page_size(limit: int | None, cfg: GoalCircleConfig) -> int:
    if limit is None:
        return cfg.default_page_size
    return min(limit, cfg.max_page_size)


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------
@router.get("")
def list_goals(
    query: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: GoalCircleConfig = Depends(get_config),
):
    return goal_service.list_goals(
        engine, user.id, search_term=query, page=page, limit=_page_size(limit, cfg)
    )


@router.get("/joined")
def list_joined_goals(
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return goal_service.list_joined_goals(engine, user.id)


@router.get("/owned")
def list_owned_goals(
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return goal_service.list_owned_goals(engine, user.id)


@router.get("/{goal_id}")
def get_goal(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return goal_service.get_goal_detail(engine, goal_id)


@router.post("", status_code=201)
def create_goal(
    body: GoalCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    goal = goal_service.create_goal(engine, user.id, body.name, body.description)
    return {"message": "Goal created successfully", "goal": goal}


@router.delete("/{goal_id}")
def delete_goal(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    goal_service.delete_goal(engine, user.id, goal_id)
    return {"message": "Goal deleted successfully"}


@router.post("/{goal_id}/vote")
def vote_goal(
    goal_id: int,
    body: VoteRequest,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: GoalCircleConfig = Depends(get_config),
):
    outcome = goal_service.cast_vote(
        engine, user.id, goal_id, body.action, threshold=cfg.vote_threshold
    )
    return outcome.to_dict()


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
@router.post("/{goal_id}/join")
def join_goal(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    membership = goal_service.join_goal(engine, user.id, goal_id)
    return {"message": "Joined goal successfully", "membership": membership}


@router.delete("/{goal_id}/leave")
def leave_goal(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    goal_service.leave_goal(engine, user.id, goal_id)
    return {"message": "Left the goal successfully"}


@router.put("/{goal_id}/complete")
def complete_goal(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    membership = goal_service.complete_goal(engine, user.id, goal_id)
    return {"message": "Goal marked as completed", "membership": membership}


# ---------------------------------------------------------------------------
# Tips
# ---------------------------------------------------------------------------
@router.post("/{goal_id}/tips", status_code=201)
def add_tip(
    goal_id: int,
    body: TipCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    tip = tip_service.add_tip(engine, user.id, goal_id, body.tip.title, body.tip.content)
    return {"message": "Tip added successfully", "tip": tip}


@router.get("/{goal_id}/tips")
def list_tips(
    goal_id: int,
    search_term: str = Query("", alias="searchTerm"),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: GoalCircleConfig = Depends(get_config),
):
    return tip_service.list_tips(
        engine, goal_id, search_term=search_term, page=page, limit=_page_size(limit, cfg)
    )


@router.post("/{goal_id}/tips/{tip_id}/vote")
def vote_tip(
    goal_id: int,
    tip_id: int,
    body: TipVoteRequest,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    tip_service.vote_tip(engine, user.id, goal_id, tip_id, body.vote_value)
    return {"message": "Tip vote recorded successfully"}


# ---------------------------------------------------------------------------
# Success stories
# ---------------------------------------------------------------------------
@router.post("/{goal_id}/success-stories", status_code=201)
def add_story(
    goal_id: int,
    body: StoryCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    story = story_service.add_story(
        engine, user.id, goal_id, body.success_story.title, body.success_story.content
    )
    return {"message": "Success story added", "story": story}


@router.get("/{goal_id}/success-stories")
def list_stories(
    goal_id: int,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: GoalCircleConfig = Depends(get_config),
):
    return story_service.list_stories(
        engine, goal_id, page=page, limit=_page_size(limit, cfg)
    )


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------
@router.get("/{goal_id}/chat-messages")
def get_chat_messages(
    goal_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: GoalCircleConfig = Depends(get_config),
):
    messages = chat_service.chat_history(
        engine, user.id, goal_id, limit=cfg.chat_history_limit
    )
    return {"messages": messages}
