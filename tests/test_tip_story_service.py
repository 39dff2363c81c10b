"""
tests/test_tip_story_service.py — Tips, Tip Votes and Success Stories
======================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select

from goalcircle.database.engine import get_session
from goalcircle.database.models import TipVote
from goalcircle.services import goal_service, story_service, tip_service
from goalcircle.services.errors import InvalidInputError, NotFoundError


@pytest.fixture
def goal(db_engine, users) -> dict:
    return goal_service.create_goal(db_engine, users["alice"], "Learn Go", None)


class TestTips:
    def test_add_and_list(self, db_engine, users, goal):
        tip_service.add_tip(db_engine, users["bob"], goal["id"], "Tour", "Take the tour")
        tip_service.add_tip(db_engine, users["carol"], goal["id"], "Book", "Read the book")

        result = tip_service.list_tips(db_engine, goal["id"])

        assert result["total"] == 2
        assert [t["title"] for t in result["tips"]] == ["Book", "Tour"]
        assert all(t["vote_count"] == 0 for t in result["tips"])

    def test_search_matches_content(self, db_engine, users, goal):
        tip_service.add_tip(db_engine, users["bob"], goal["id"], "Tour", "Take the TOUR")
        tip_service.add_tip(db_engine, users["bob"], goal["id"], "Book", "Read the book")

        result = tip_service.list_tips(db_engine, goal["id"], search_term="tour")
        assert [t["title"] for t in result["tips"]] == ["Tour"]
        assert result["total"] == 1

    def test_add_to_missing_goal(self, db_engine, users):
        with pytest.raises(NotFoundError, match="Goal not found"):
            tip_service.add_tip(db_engine, users["bob"], 77, "T", "C")

    def test_revote_overwrites(self, db_engine, users, goal):
        tip = tip_service.add_tip(db_engine, users["bob"], goal["id"], "T", "C")

        tip_service.vote_tip(db_engine, users["carol"], goal["id"], tip["id"], 1)
        tip_service.vote_tip(db_engine, users["carol"], goal["id"], tip["id"], -1)

        with get_session(db_engine) as session:
            votes = session.scalars(select(TipVote)).all()
        assert [(v.user_id, v.vote_value) for v in votes] == [(users["carol"], -1)]
        listed = tip_service.list_tips(db_engine, goal["id"])["tips"]
        assert listed[0]["vote_count"] == -1

    @pytest.mark.parametrize("value", [0, 2, -2, True])
    def test_rejects_bad_vote_value(self, db_engine, users, goal, value):
        tip = tip_service.add_tip(db_engine, users["bob"], goal["id"], "T", "C")
        with pytest.raises(InvalidInputError, match="voteValue must be"):
            tip_service.vote_tip(db_engine, users["carol"], goal["id"], tip["id"], value)

    def test_tip_must_belong_to_goal(self, db_engine, users, goal):
        other = goal_service.create_goal(db_engine, users["bob"], "Other", None)
        tip = tip_service.add_tip(db_engine, users["bob"], goal["id"], "T", "C")
        with pytest.raises(NotFoundError, match="Tip not found"):
            tip_service.vote_tip(db_engine, users["carol"], other["id"], tip["id"], 1)


class TestStories:
    def test_add_and_page(self, db_engine, users, goal):
        for i in range(3):
            story_service.add_story(db_engine, users["bob"], goal["id"], f"S{i}", "done")

        first = story_service.list_stories(db_engine, goal["id"], page=1, limit=2)
        second = story_service.list_stories(db_engine, goal["id"], page=2, limit=2)

        assert first["total"] == 3
        assert [s["title"] for s in first["successStories"]] == ["S2", "S1"]
        assert [s["title"] for s in second["successStories"]] == ["S0"]

    def test_add_to_missing_goal(self, db_engine, users):
        with pytest.raises(NotFoundError):
            story_service.add_story(db_engine, users["bob"], 5, "T", "C")
