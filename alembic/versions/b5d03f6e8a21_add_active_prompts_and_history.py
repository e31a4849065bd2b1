"""add active_prompts and prompt_history

Revision ID: b5d03f6e8a21
Revises: 4a7e1c2b9d10
Create Date: 2026-10-18 09:40:03.552917

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'b5d03f6e8a21'
down_revision: Union[str, Sequence[str], None] = '4a7e1c2b9d10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

prompt_outcome = postgresql.ENUM("skipped", "answered", "expired", name="prompt_outcome", create_type=False)


def upgrade() -> None:
    prompt_outcome.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "active_prompts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("context_note", sa.Text()),
        sa.Column("anchor_entity", sa.Text()),
        sa.Column("anchor_year", sa.Integer()),
        sa.Column("anchor_hash", sa.String(length=40)),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("memory_type", sa.String(length=32)),
        sa.Column("prompt_score", sa.Float()),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        # nullable: rows from before the column existed count on shown_count
        sa.Column("skip_count", sa.Integer(), nullable=True),
        sa.Column("shown_count", sa.Integer(), server_default="0"),
        sa.Column("last_shown_at", sa.DateTime(timezone=True)),
        sa.Column("source_story_id", sa.String(length=36), sa.ForeignKey("stories.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_active_prompts_user_id", "active_prompts", ["user_id"])
    op.create_index("ix_active_prompts_anchor_hash", "active_prompts", ["anchor_hash"])
    op.create_index("ix_active_prompts_user_rank", "active_prompts", ["user_id", "tier", "prompt_score"])

    op.create_table(
        "prompt_history",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("prompt_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("anchor_entity", sa.Text()),
        sa.Column("anchor_year", sa.Integer()),
        sa.Column("anchor_hash", sa.String(length=40)),
        sa.Column("tier", sa.Integer()),
        sa.Column("memory_type", sa.String(length=32)),
        sa.Column("prompt_score", sa.Float()),
        sa.Column("outcome", prompt_outcome, nullable=False),
        sa.Column("skip_count", sa.Integer()),
        sa.Column("story_id", sa.String(length=36), sa.ForeignKey("stories.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("archived_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint("prompt_id", name="uq_prompt_history_prompt"),
    )
    op.create_index("ix_prompt_history_user_id", "prompt_history", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_prompt_history_user_id", table_name="prompt_history")
    op.drop_table("prompt_history")
    op.drop_index("ix_active_prompts_user_rank", table_name="active_prompts")
    op.drop_index("ix_active_prompts_anchor_hash", table_name="active_prompts")
    op.drop_index("ix_active_prompts_user_id", table_name="active_prompts")
    op.drop_table("active_prompts")
    prompt_outcome.drop(op.get_bind(), checkfirst=True)
