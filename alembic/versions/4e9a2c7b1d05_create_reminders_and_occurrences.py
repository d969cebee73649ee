"""Create reminders and reminder_occurrences

Revision ID: 4e9a2c7b1d05
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4e9a2c7b1d05"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "reminders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("pet_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("schedule_type", sa.String(), nullable=False),
        sa.Column("weekday_mask", sa.Integer(), nullable=True),
        sa.Column("interval_days", sa.Integer(), nullable=True),
        sa.Column("date_once", sa.Date(), nullable=True),
        sa.Column("times", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_reminders_pet_id"), "reminders", ["pet_id"], unique=False)

    op.create_table(
        "reminder_occurrences",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("reminder_id", sa.String(), sa.ForeignKey("reminders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pet_id", sa.String(), nullable=False),
        sa.Column("occurs_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("reminder_id", "occurs_at", name="uq_reminder_occurrence_instant"),
    )
    op.create_index(op.f("ix_reminder_occurrences_reminder_id"), "reminder_occurrences", ["reminder_id"], unique=False)
    op.create_index(op.f("ix_reminder_occurrences_pet_id"), "reminder_occurrences", ["pet_id"], unique=False)
    op.create_index(op.f("ix_reminder_occurrences_occurs_at"), "reminder_occurrences", ["occurs_at"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_reminder_occurrences_occurs_at"), table_name="reminder_occurrences")
    op.drop_index(op.f("ix_reminder_occurrences_pet_id"), table_name="reminder_occurrences")
    op.drop_index(op.f("ix_reminder_occurrences_reminder_id"), table_name="reminder_occurrences")
    op.drop_table("reminder_occurrences")
    op.drop_index(op.f("ix_reminders_pet_id"), table_name="reminders")
    op.drop_table("reminders")
