"""Initial schema — clubs and registrations

Revision ID: 001
Revises:
Create Date: 2026-01-10 00:00:00.000000

Changes:
  - Create clubs table (unique name; "Open" is the hidden sentinel club)
  - Create registrations table (athlete1 always, athlete2 for pairs, per-athlete photos)
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_PHOTO = sa.LargeBinary(length=16 * 1024 * 1024)


def _athlete_columns(slot: int, nullable: bool) -> list:
    prefix = f"athlete{slot}_"
    return [
        sa.Column(prefix + "last_name", sa.String(255), nullable=nullable),
        sa.Column(prefix + "first_name", sa.String(255), nullable=nullable),
        sa.Column(prefix + "birth_date", sa.Date(), nullable=nullable),
        sa.Column(prefix + "club_id", sa.Integer(), sa.ForeignKey("clubs.id"), nullable=True),
        sa.Column(prefix + "nationality", sa.String(100), nullable=nullable),
        sa.Column(prefix + "gender", sa.String(10), nullable=nullable),
        sa.Column(prefix + "email", sa.String(255), nullable=nullable),
        sa.Column(prefix + "phone", sa.String(50), nullable=nullable),
        sa.Column(prefix + "photo", _PHOTO, nullable=True),
        sa.Column(prefix + "photo_type", sa.String(50), nullable=True),
    ]


def upgrade() -> None:
    # ── clubs ─────────────────────────────────────────────────────────────────
    op.create_table(
        "clubs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
    )
    op.create_index("ix_clubs_name", "clubs", ["name"], unique=True)

    # ── registrations ─────────────────────────────────────────────────────────
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("is_pair", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_athlete_columns(1, nullable=False),
        *_athlete_columns(2, nullable=True),
        sa.Column("locale", sa.String(10), nullable=False, server_default="fr"),
    )
    op.create_index("ix_registrations_created_at", "registrations", ["created_at"])
    op.create_index("ix_registrations_athlete1_email", "registrations", ["athlete1_email"])
    op.create_index("ix_registrations_athlete2_email", "registrations", ["athlete2_email"])


def downgrade() -> None:
    op.drop_index("ix_registrations_athlete2_email", table_name="registrations")
    op.drop_index("ix_registrations_athlete1_email", table_name="registrations")
    op.drop_index("ix_registrations_created_at", table_name="registrations")
    op.drop_table("registrations")
    op.drop_index("ix_clubs_name", table_name="clubs")
    op.drop_table("clubs")
