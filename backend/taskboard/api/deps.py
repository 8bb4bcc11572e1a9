"""Reusable FastAPI dependencies shared by route modules."""

from __future__ import annotations

from fastapi import Depends

from taskboard.db.session import get_session

SESSION_DEP = Depends(get_session)
