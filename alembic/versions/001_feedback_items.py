"""Create feedback_items table

Revision ID: 001_feedback_items
Revises:
Create Date: 2026-03-02
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_feedback_items"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "feedback_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False, server_default="web"),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("author", sa.String(length=255), nullable=True),
        sa.Column("blob_key", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PROCESSING"),
        sa.Column("sentiment", sa.String(length=16), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("urgency", sa.String(length=16), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("tags", sa.String(length=512), nullable=True),
        sa.Column("vector_id", sa.String(length=64), nullable=True),
        sa.Column("failure_reason", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("processing_completed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_feedback_items_status", "feedback_items", ["status"])
    op.create_index("ix_feedback_items_sentiment", "feedback_items", ["sentiment"])
    op.create_index("ix_feedback_items_category", "feedback_items", ["category"])
    op.create_index("ix_feedback_items_created_at", "feedback_items", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_feedback_items_created_at", table_name="feedback_items")
    op.drop_index("ix_feedback_items_category", table_name="feedback_items")
    op.drop_index("ix_feedback_items_sentiment", table_name="feedback_items")
    op.drop_index("ix_feedback_items_status", table_name="feedback_items")
    op.drop_table("feedback_items")
