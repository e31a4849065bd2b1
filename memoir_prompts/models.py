from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, Text, DateTime, func,
    UniqueConstraint, Index, Float, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy import Enum as SAEnum
from datetime import datetime, timezone
import enum
import uuid

from .database import Base


class PromptTier(int, enum.Enum):
    DECADE = 0        # synthesized on demand, never stored
    STORY = 1         # derived from the user's latest story
    PERSONALIZED = 2
    MILESTONE = 3


class PromptOutcome(str, enum.Enum):
    skipped = "skipped"
    answered = "answered"
    expired = "expired"


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    # Naive timestamps are treated as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# ---------------------------
# USER MODEL
# ---------------------------
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), unique=True, index=True, nullable=False)
    username = Column(String, index=True)
    hashed_password = Column(String(1024), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    profile = relationship("UserProfile", back_populates="user", uselist=False, passive_deletes=True)
    active_prompts = relationship(
        "ActivePrompt",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class UserProfile(Base):
    __tablename__ = "user_profile"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), unique=True, index=True)
    display_name = Column(String(128), nullable=True)
    birth_year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    user = relationship("User", back_populates="profile")


# ---------------------------
# STORIES (read-only to the prompt engine)
# ---------------------------
class Story(Base):
    __tablename__ = "stories"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(200), nullable=True)
    story_text = Column(Text, nullable=True)
    story_year = Column(Integer, nullable=True)
    emotions = Column(JSON, nullable=True)   # list[str]
    entities = Column(JSON, nullable=True)   # list[{"kind": "person"|"place"|"object", "text": str}]
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ---------------------------
# ACTIVE PROMPTS
# ---------------------------
class ActivePrompt(Base):
    __tablename__ = "active_prompts"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)

    prompt_text = Column(Text, nullable=False)
    context_note = Column(Text, nullable=True)  # e.g. "Based on your 1995 story"

    anchor_entity = Column(Text, nullable=True)
    anchor_year = Column(Integer, nullable=True)
    anchor_hash = Column(String(40), nullable=True, index=True)  # sha1(kind|entity|year)

    tier = Column(Integer, nullable=False)
    memory_type = Column(String(32), nullable=True)  # person_expansion, place_memory, ...
    prompt_score = Column(Float, nullable=True)

    is_locked = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # skip_count is NULL on rows created before the column existed;
    # shown_count stands in as the rejection counter for those.
    skip_count = Column(Integer, nullable=True)
    shown_count = Column(Integer, default=0)
    last_shown_at = Column(DateTime(timezone=True), nullable=True)

    source_story_id = Column(String(36), ForeignKey("stories.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="active_prompts")

    __table_args__ = (
        Index("ix_active_prompts_user_rank", "user_id", "tier", "prompt_score"),
    )

    @property
    def rejection_field(self) -> str:
        return "skip_count" if self.skip_count is not None else "shown_count"

    @property
    def rejection_count(self) -> int:
        if self.skip_count is not None:
            return int(self.skip_count)
        return int(self.shown_count or 0)

    @property
    def prompt_tier(self) -> PromptTier:
        return PromptTier(int(self.tier))

    def is_expired(self, now: datetime) -> bool:
        exp = as_utc(self.expires_at)
        return exp is not None and exp <= now

    def is_eligible(self, now: datetime) -> bool:
        return not self.is_locked and not self.is_expired(now)

    def __repr__(self):
        return f"<ActivePrompt {self.id} tier={self.tier} score={self.prompt_score}>"


# ---------------------------
# PROMPT HISTORY (terminal, immutable)
# ---------------------------
class PromptHistory(Base):
    __tablename__ = "prompt_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    prompt_id = Column(String(36), nullable=False)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)

    prompt_text = Column(Text, nullable=False)
    anchor_entity = Column(Text, nullable=True)
    anchor_year = Column(Integer, nullable=True)
    anchor_hash = Column(String(40), nullable=True)
    tier = Column(Integer, nullable=True)
    memory_type = Column(String(32), nullable=True)
    prompt_score = Column(Float, nullable=True)

    outcome = Column(SAEnum(PromptOutcome, name="prompt_outcome"), nullable=False)
    skip_count = Column(Integer, nullable=True)
    story_id = Column(String(36), ForeignKey("stories.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), server_default=func.now())

    # one archive row per retired prompt
    __table_args__ = (UniqueConstraint("prompt_id", name="uq_prompt_history_prompt"),)
