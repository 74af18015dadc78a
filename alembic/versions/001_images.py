"""Read-model tables: images, classified_images.

Revision ID: 001_images
Revises: None
Create Date: 2026-10-19 00:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_images"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Generated images, projected from ImageCreatedEvent
    op.create_table(
        "images",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("base64_data", sa.Text, nullable=False),
        sa.Column("platform_used", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_images_created_at", "images", ["created_at"])

    # Classified images, projected from ImageClassifiedEvent
    op.create_table(
        "classified_images",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("original_url", sa.Text, nullable=False),
        sa.Column("classified_image_base64", sa.Text, nullable=False),
        sa.Column("classification_result", sa.String(64), nullable=False),
        sa.Column("classified_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_classified_images_classified_at", "classified_images", ["classified_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_classified_images_classified_at", table_name="classified_images")
    op.drop_table("classified_images")
    op.drop_index("ix_images_created_at", table_name="images")
    op.drop_table("images")
