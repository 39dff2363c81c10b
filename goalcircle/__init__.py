"""
GoalCircle — Social Goal Tracking Backend
==========================================
Users create goals, join and leave them, vote to promote a goal from
PENDING to ACTIVE, share tips and success stories, and chat in real time
with the other members of a goal's group.

Package layout::

    goalcircle/
    ├── __main__.py        # ``python -m goalcircle`` → uvicorn
    ├── config.py          # YAML → typed Python config
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, unit of work, async helper
    │   └── models.py      # ORM models (goals, members, votes, tips, chat)
    ├── services/
    │   ├── errors.py          # Domain error taxonomy
    │   ├── user_service.py    # User directory (identity → users row)
    │   ├── goal_service.py    # Goal lifecycle + vote-driven promotion
    │   ├── tip_service.py     # Tips and tip votes
    │   ├── story_service.py   # Success stories
    │   └── chat_service.py    # Membership-gated chat persistence
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT identity gate, engine/config deps
        ├── chat_rooms.py  # Live room registry for WebSocket broadcast
        └── routes/        # Goal REST endpoints + chat WebSocket
"""

__version__ = "0.1.0"
