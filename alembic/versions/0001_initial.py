"""initial schema

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-19
"""

from alembic import op

from circlerank.db.base import Base
from circlerank.models import *  # noqa: F401,F403

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade() -> None:
    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
