"""Create the entities table.

Revision ID: 001_entities
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_entities"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "entities",
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("entity_key", sa.String(256), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("kind", "entity_key"),
    )
    op.create_index("idx_entities_kind", "entities", ["kind"])


def downgrade() -> None:
    op.drop_index("idx_entities_kind", table_name="entities")
    op.drop_table("entities")
