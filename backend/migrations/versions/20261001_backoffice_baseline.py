"""Back-office baseline: identity, master data, approvals and activity log

Revision ID: 20261001_baseline
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_baseline"
down_revision = None
branch_labels = None
depends_on = None


# Production tables have their own revision
PRODUCTION_TABLES = {"labours", "labour_rate_rules", "labour_rate_rule_exclusions", "bom_header", "bom_rm_line"}


def _baseline_tables():
    from backoffice.extensions import db
    import backoffice.models  # noqa: F401

    return [t for t in db.metadata.sorted_tables if t.name not in PRODUCTION_TABLES]


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in _baseline_tables():
        if not inspector.has_table(table.name):
            table.create(bind)


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in reversed(_baseline_tables()):
        if inspector.has_table(table.name):
            table.drop(bind)
