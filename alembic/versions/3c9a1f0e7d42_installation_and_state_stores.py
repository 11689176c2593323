"""Installation and OAuth state stores

Revision ID: 3c9a1f0e7d42
Revises:
Create Date: 2026-10-16 10:12:41.204518

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3c9a1f0e7d42"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "slackwire_installations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("team_id", sa.Text(), nullable=False),
        sa.Column("enterprise_id", sa.Text(), nullable=False),
        sa.Column("bot_token", sa.Text(), nullable=True),
        sa.Column("bot_user_id", sa.Text(), nullable=True),
        sa.Column("scopes", sa.Text(), nullable=False),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("app_id", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Text(), nullable=True),
        sa.Column("user_token", sa.Text(), nullable=True),
        sa.Column("user_scopes", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "enterprise_id", name="installation_key_idx"),
    )
    op.create_table(
        "slackwire_oauth_states",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("state", sa.Text(), nullable=False),
        sa.Column("redirect_hint", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("state"),
    )
    with op.batch_alter_table("slackwire_oauth_states", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_slackwire_oauth_states_expires_at"),
            ["expires_at"],
            unique=False,
        )


def downgrade():
    with op.batch_alter_table("slackwire_oauth_states", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_slackwire_oauth_states_expires_at"))

    op.drop_table("slackwire_oauth_states")
    op.drop_table("slackwire_installations")
