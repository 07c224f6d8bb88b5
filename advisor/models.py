from __future__ import annotations
"""
Advisor — Pydantic Request Models
"""
from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Emptiness is checked by the route so it can answer 400, not 422
    question: str | None = Field(default=None, max_length=4000)
    profile: dict | None = None
    session_id: str | None = Field(default=None, alias="sessionId", max_length=100)
