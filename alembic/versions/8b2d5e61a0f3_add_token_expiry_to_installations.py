"""Add token expiry to installations

Revision ID: 8b2d5e61a0f3
Revises: 3c9a1f0e7d42
Create Date: 2026-10-17 09:41:07.318225

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "8b2d5e61a0f3"
down_revision = "3c9a1f0e7d42"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("slackwire_installations", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True)
        )


def downgrade():
    with op.batch_alter_table("slackwire_installations", schema=None) as batch_op:
        batch_op.drop_column("expires_at")
