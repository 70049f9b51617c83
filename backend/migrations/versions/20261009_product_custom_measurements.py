"""Add allow_custom_measurements to products

Revision ID: 20261009_custom_measure
Revises: 20261001_initial
Create Date: 2026-10-09

NULL reads as False. Until this runs, product reads and writes skip the
flag and /health reports "degraded".
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261009_custom_measure"
down_revision = "20261001_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("allow_custom_measurements", sa.Boolean(), nullable=True, server_default=sa.false())
        )


def downgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_column("allow_custom_measurements")
