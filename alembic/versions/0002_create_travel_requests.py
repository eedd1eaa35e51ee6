"""create travel requests

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 09:14:03.118350

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, Sequence[str], None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

travel_request_status = sa.Enum(
    "SOLICITED", "APPROVED", "CANCELED", name="travel_request_status"
)


def upgrade() -> None:
    """Create the travel_requests table."""
    op.create_table(
        "travel_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("traveler_name", sa.String(255), nullable=False),
        sa.Column("destination_name", sa.String(255), nullable=False),
        sa.Column("departure_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("return_date", sa.DateTime(timezone=True)),
        sa.Column(
            "status",
            travel_request_status,
            nullable=False,
            server_default="SOLICITED",
        ),
        sa.Column("canceled_by", sa.Uuid(), sa.ForeignKey("users.id")),
        sa.Column("canceled_at", sa.DateTime(timezone=True)),
        sa.Column("approved_by", sa.Uuid(), sa.ForeignKey("users.id")),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_travel_requests_user_id", "travel_requests", ["user_id"])
    op.create_index("ix_travel_requests_status", "travel_requests", ["status"])


def downgrade() -> None:
    """Drop the travel_requests table."""
    op.drop_index("ix_travel_requests_status", table_name="travel_requests")
    op.drop_index("ix_travel_requests_user_id", table_name="travel_requests")
    op.drop_table("travel_requests")
    travel_request_status.drop(op.get_bind(), checkfirst=True)
