"""Derived ranking flags and team photo

Revision ID: 002
Revises: 001
Create Date: 2026-02-20 00:00:00.000000

Changes:
  - registrations: add etranger / mosaique / mixte (nullable — rows created
    before this revision hold NULL until the admin recalculation runs)
  - registrations: add team_photo / team_photo_type for PHOTO_MODE=team
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── derived flags ─────────────────────────────────────────────────────────
    for column in ("etranger", "mosaique", "mixte"):
        op.add_column("registrations", sa.Column(column, sa.Boolean(), nullable=True))

    # ── team photo ────────────────────────────────────────────────────────────
    op.add_column(
        "registrations",
        sa.Column("team_photo", sa.LargeBinary(length=16 * 1024 * 1024), nullable=True),
    )
    op.add_column(
        "registrations",
        sa.Column("team_photo_type", sa.String(50), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("registrations", "team_photo_type")
    op.drop_column("registrations", "team_photo")
    for column in ("mixte", "mosaique", "etranger"):
        op.drop_column("registrations", column)
