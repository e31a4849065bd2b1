from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from fastapi_users import schemas

from .models import PromptOutcome

# =========================
# USER SCHEMAS
# =========================
class UserRead(schemas.BaseUser[int]):
    username: Optional[str] = None

class UserCreate(schemas.BaseUserCreate):
    username: Optional[str] = None

class UserUpdate(schemas.BaseUserUpdate):
    username: Optional[str] = None


# =========================
# PROMPT SCHEMAS
# =========================
class ActivePromptRead(BaseModel):
    id: Optional[str] = None
    user_id: int
    prompt_text: str
    context_note: Optional[str] = None
    tier: int
    prompt_score: Optional[float] = None
    is_locked: bool = False
    expires_at: Optional[datetime] = None
    skip_count: Optional[int] = None
    shown_count: Optional[int] = None
    last_shown_at: Optional[datetime] = None
    anchor_entity: Optional[str] = None
    anchor_year: Optional[int] = None
    memory_type: Optional[str] = None
    source_story_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PromptHistoryRead(BaseModel):
    id: str
    prompt_id: str
    user_id: int
    prompt_text: str
    tier: Optional[int] = None
    outcome: PromptOutcome
    skip_count: Optional[int] = None
    anchor_entity: Optional[str] = None
    anchor_year: Optional[int] = None
    memory_type: Optional[str] = None
    story_id: Optional[str] = None
    created_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        use_enum_values = True


# =========================
# REQUEST BODIES
# =========================
class SkipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt_id: Optional[str] = Field(default=None, alias="promptId")
    prompt_text: Optional[str] = Field(default=None, alias="promptText")


class AnswerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt_id: Optional[str] = Field(default=None, alias="promptId")
    story_id: Optional[str] = Field(default=None, alias="storyId")


# =========================
# RESPONSE BODIES
# =========================
class NextPromptResponse(BaseModel):
    prompt: ActivePromptRead


class SkipResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    retired: bool
    next_prompt: ActivePromptRead = Field(alias="nextPrompt")


class AnswerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    history: PromptHistoryRead
    next_prompt: ActivePromptRead = Field(alias="nextPrompt")


class CleanupResponse(BaseModel):
    success: bool = True
    summary: dict
    issues: List[dict] = []
