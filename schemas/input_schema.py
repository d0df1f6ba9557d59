# -------------------------------------------------------------------
# schemas/input_schema.py
#
# WHAT THIS FILE IS FOR
# --------------------
# Public request schema of the JR Score API.
#
# Both camelCase and snake_case JSON field names are accepted:
#   - snake_case: user_id, force_recalculate, chat_history, user_context
#   - camelCase:  userId, forceRecalculate, chatHistory, userContext
#
# implemented via alias=camelCase + populate_by_name=True.
#
# PROFILE SOURCE
# --------------
# - user_context omitted: the onboarding profile is read from the store
# - user_context given:   it is used as the profile for this cycle
#                         (the onboarding route already has it in hand)
#
# user_id is stripped; a blank id is a validation error.
#
# Any breaking change here is a public API change.
# -------------------------------------------------------------------

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from schemas.score_schema import OnboardingChatMessage


class JRScoreRequest(BaseModel):
    """
    Score (or re-score) a user's completed onboarding.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "usr_123",
                "forceRecalculate": False,
                "userContext": {
                    "name": "Asha",
                    "status": "Student",
                    "college": "IIT Delhi",
                    "course": "B.Tech",
                    "cgpa": 8.1,
                    "subjects": ["Python", "SQL"],
                    "careerAspiration": "Data Scientist",
                    "completedAt": "2026-10-01T10:00:00Z",
                },
            }
        },
    )

    user_id: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)] = Field(
        ...,
        alias="userId",
        description="User whose onboarding completion is being scored",
    )

    force_recalculate: bool = Field(
        False,
        alias="forceRecalculate",
        description="Re-score even if this completion was already scored",
    )

    chat_history: Optional[List[OnboardingChatMessage]] = Field(
        None,
        alias="chatHistory",
        max_length=200,
        description="Optional onboarding chat transcript forwarded to the scorer",
    )

    user_context: Optional[Dict[str, Any]] = Field(
        None,
        alias="userContext",
        description="Optional onboarding profile; read from storage when omitted",
    )
