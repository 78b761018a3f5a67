"""Labour rates, BOM tables and the hard-delete permission flag

Revision ID: 20261019_production_costing
Revises: 20261001_baseline
Create Date: 2026-10-19 10:30:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_production_costing"
down_revision = "20261001_baseline"
branch_labels = None
depends_on = None


def _columns(inspector, table_name):
    return {col["name"] for col in inspector.get_columns(table_name)}


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if "can_hard_delete" not in _columns(inspector, "role_permissions"):
        with op.batch_alter_table("role_permissions", schema=None) as batch_op:
            batch_op.add_column(
                sa.Column("can_hard_delete", sa.Boolean(), nullable=False, server_default=sa.false())
            )

    if "can_hard_delete" not in _columns(inspector, "user_permissions_override"):
        with op.batch_alter_table("user_permissions_override", schema=None) as batch_op:
            batch_op.add_column(sa.Column("can_hard_delete", sa.Boolean(), nullable=True))

    if not inspector.has_table("labours"):
        op.create_table(
            "labours",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=32), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("name_ur", sa.String(length=120), nullable=True),
            sa.Column("dept_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
            sa.CheckConstraint("lower(trim(status)) IN ('active', 'inactive')", name="ck_labours_status"),
            sa.ForeignKeyConstraint(["dept_id"], ["departments.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
            sa.UniqueConstraint("name"),
            sqlite_autoincrement=True,
        )

    if not inspector.has_table("labour_rate_rules"):
        op.create_table(
            "labour_rate_rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("applies_to_all_labours", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("labour_id", sa.Integer(), nullable=True),
            sa.Column("dept_id", sa.Integer(), nullable=False),
            sa.Column("apply_on", sa.String(length=16), nullable=False, server_default="SKU"),
            sa.Column("sku_id", sa.Integer(), nullable=True),
            sa.Column("subgroup_id", sa.Integer(), nullable=True),
            sa.Column("group_id", sa.Integer(), nullable=True),
            sa.Column("article_type", sa.String(length=8), nullable=True),
            sa.Column("rate_type", sa.String(length=16), nullable=False, server_default="PER_PAIR"),
            sa.Column("rate_value", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.CheckConstraint("apply_on IN ('SKU', 'SUBGROUP', 'GROUP', 'FLAT')", name="labour_rate_rules_apply_on_chk"),
            sa.CheckConstraint("rate_type IN ('PER_DOZEN', 'PER_PAIR')", name="labour_rate_rules_rate_type_chk"),
            sa.CheckConstraint("lower(trim(status)) IN ('active', 'inactive')", name="labour_rate_rules_status_chk"),
            sa.CheckConstraint(
                "article_type IS NULL OR article_type IN ('FG', 'SFG', 'BOTH')",
                name="labour_rate_rules_article_type_chk",
            ),
            sa.ForeignKeyConstraint(["labour_id"], ["labours.id"]),
            sa.ForeignKeyConstraint(["dept_id"], ["departments.id"]),
            sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
            sa.ForeignKeyConstraint(["subgroup_id"], ["product_subgroups.id"]),
            sa.ForeignKeyConstraint(["group_id"], ["product_groups.id"]),
            sa.PrimaryKeyConstraint("id"),
            sqlite_autoincrement=True,
        )

    inspector = sa.inspect(bind)
    indexes = {ix["name"] for ix in inspector.get_indexes("labour_rate_rules")}
    with op.batch_alter_table("labour_rate_rules", schema=None) as batch_op:
        if "ix_labour_rate_rules_labour_id" not in indexes:
            batch_op.create_index("ix_labour_rate_rules_labour_id", ["labour_id"], unique=False)
        if "ix_labour_rate_rules_dept_id" not in indexes:
            batch_op.create_index("ix_labour_rate_rules_dept_id", ["dept_id"], unique=False)

    if "uq_labour_rate_rules_labour_dept_sku" not in indexes:
        where = sa.text("applies_to_all_labours = false AND labour_id IS NOT NULL AND sku_id IS NOT NULL")
        op.create_index(
            "uq_labour_rate_rules_labour_dept_sku",
            "labour_rate_rules",
            ["labour_id", "dept_id", "sku_id"],
            unique=True,
            postgresql_where=where,
            sqlite_where=where,
        )

    if not inspector.has_table("labour_rate_rule_exclusions"):
        op.create_table(
            "labour_rate_rule_exclusions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("rule_id", sa.Integer(), nullable=False),
            sa.Column("sku_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.ForeignKeyConstraint(["rule_id"], ["labour_rate_rules.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sku_id"], ["skus.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("rule_id", "sku_id", name="uq_labour_rate_rule_exclusions_rule_sku"),
            sqlite_autoincrement=True,
        )

    if not inspector.has_table("bom_header"):
        op.create_table(
            "bom_header",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("bom_no", sa.String(length=64), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("level", sa.String(length=16), nullable=False),
            sa.Column("output_qty", sa.Numeric(18, 3), nullable=False, server_default="1"),
            sa.Column("output_uom_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="DRAFT"),
            sa.Column("version_no", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("level IN ('FINISHED', 'SEMI_FINISHED')", name="ck_bom_header_level"),
            sa.CheckConstraint("status IN ('DRAFT', 'PENDING', 'APPROVED')", name="ck_bom_header_status"),
            sa.CheckConstraint("output_qty > 0", name="ck_bom_header_output_qty"),
            sa.CheckConstraint("version_no > 0", name="ck_bom_header_version"),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["output_uom_id"], ["uom.id"]),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("bom_no"),
            sqlite_autoincrement=True,
        )
        op.create_index("ix_bom_header_item_id", "bom_header", ["item_id"], unique=False)

    if not inspector.has_table("bom_rm_line"):
        op.create_table(
            "bom_rm_line",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("bom_id", sa.Integer(), nullable=False),
            sa.Column("rm_item_id", sa.Integer(), nullable=False),
            sa.Column("color_id", sa.Integer(), nullable=True),
            sa.Column("size_id", sa.Integer(), nullable=True),
            sa.Column("dept_id", sa.Integer(), nullable=False),
            sa.Column("qty", sa.Numeric(18, 3), nullable=False),
            sa.Column("uom_id", sa.Integer(), nullable=False),
            sa.Column("normal_loss_pct", sa.Numeric(6, 3), nullable=False, server_default="0"),
            sa.CheckConstraint("qty > 0", name="ck_bom_rm_line_qty"),
            sa.CheckConstraint("normal_loss_pct >= 0 AND normal_loss_pct <= 100", name="ck_bom_rm_line_loss"),
            sa.ForeignKeyConstraint(["bom_id"], ["bom_header.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["rm_item_id"], ["items.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["color_id"], ["colors.id"]),
            sa.ForeignKeyConstraint(["size_id"], ["sizes.id"]),
            sa.ForeignKeyConstraint(["dept_id"], ["departments.id"]),
            sa.ForeignKeyConstraint(["uom_id"], ["uom.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "bom_id", "rm_item_id", "dept_id", "color_id", "size_id",
                name="uq_bom_rm_line_bom_rm_dept_color_size",
            ),
            sqlite_autoincrement=True,
        )


def downgrade():
    # Safety: only drop what is present.
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in ("bom_rm_line", "bom_header", "labour_rate_rule_exclusions", "labour_rate_rules", "labours"):
        if inspector.has_table(table_name):
            op.drop_table(table_name)

    if "can_hard_delete" in _columns(inspector, "user_permissions_override"):
        with op.batch_alter_table("user_permissions_override", schema=None) as batch_op:
            batch_op.drop_column("can_hard_delete")

    if "can_hard_delete" in _columns(inspector, "role_permissions"):
        with op.batch_alter_table("role_permissions", schema=None) as batch_op:
            batch_op.drop_column("can_hard_delete")
