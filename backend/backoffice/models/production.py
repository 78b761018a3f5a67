from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db


class Labour(db.Model):
    """Contract / daily-wage labour, costed per department."""
    __tablename__ = "labours"
    __table_args__ = (
        db.CheckConstraint("lower(trim(status)) IN ('active', 'inactive')", name="ck_labours_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    name_ur = db.Column(db.String(120), nullable=True)
    dept_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")


class LabourRateRule(db.Model):
    """
    Piece rate paid to labour for work in a department.

    A rule targets one labour or all labours, and one SKU, subgroup, group or
    a flat rate. article_type narrows the rule to FG, SFG or BOTH (NULL = any).
    """
    __tablename__ = "labour_rate_rules"
    __table_args__ = (
        db.CheckConstraint("apply_on IN ('SKU', 'SUBGROUP', 'GROUP', 'FLAT')", name="labour_rate_rules_apply_on_chk"),
        db.CheckConstraint("rate_type IN ('PER_DOZEN', 'PER_PAIR')", name="labour_rate_rules_rate_type_chk"),
        db.CheckConstraint("lower(trim(status)) IN ('active', 'inactive')", name="labour_rate_rules_status_chk"),
        db.CheckConstraint(
            "article_type IS NULL OR article_type IN ('FG', 'SFG', 'BOTH')",
            name="labour_rate_rules_article_type_chk",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    applies_to_all_labours = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    labour_id = db.Column(db.Integer, db.ForeignKey("labours.id"), nullable=True, index=True)
    dept_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)
    apply_on = db.Column(db.String(16), nullable=False, default="SKU")
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=True)
    subgroup_id = db.Column(db.Integer, db.ForeignKey("product_subgroups.id"), nullable=True)
    group_id = db.Column(db.Integer, db.ForeignKey("product_groups.id"), nullable=True)
    article_type = db.Column(db.String(8), nullable=True)
    rate_type = db.Column(db.String(16), nullable=False, default="PER_PAIR")
    rate_value = db.Column(db.Numeric(18, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    exclusions = db.relationship(
        "LabourRateRuleExclusion",
        backref="rule",
        cascade="all, delete-orphan",
        lazy=True,
    )


# One labour-specific rate per (labour, department, SKU)
db.Index(
    "uq_labour_rate_rules_labour_dept_sku",
    LabourRateRule.labour_id,
    LabourRateRule.dept_id,
    LabourRateRule.sku_id,
    unique=True,
    postgresql_where=sa.and_(
        LabourRateRule.applies_to_all_labours == sa.false(),
        LabourRateRule.labour_id.isnot(None),
        LabourRateRule.sku_id.isnot(None),
    ),
    sqlite_where=sa.and_(
        LabourRateRule.applies_to_all_labours == sa.false(),
        LabourRateRule.labour_id.isnot(None),
        LabourRateRule.sku_id.isnot(None),
    ),
)


class LabourRateRuleExclusion(db.Model):
    """SKUs excluded from a group/subgroup-wide labour rate rule."""
    __tablename__ = "labour_rate_rule_exclusions"
    __table_args__ = (
        db.UniqueConstraint("rule_id", "sku_id", name="uq_labour_rate_rule_exclusions_rule_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("labour_rate_rules.id", ondelete="CASCADE"), nullable=False)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id", ondelete="RESTRICT"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class BomHeader(db.Model):
    """Bill of materials for an item at one level (FINISHED / SEMI_FINISHED)."""
    __tablename__ = "bom_header"
    __table_args__ = (
        db.CheckConstraint("level IN ('FINISHED', 'SEMI_FINISHED')", name="ck_bom_header_level"),
        db.CheckConstraint("status IN ('DRAFT', 'PENDING', 'APPROVED')", name="ck_bom_header_status"),
        db.CheckConstraint("output_qty > 0", name="ck_bom_header_output_qty"),
        db.CheckConstraint("version_no > 0", name="ck_bom_header_version"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bom_no = db.Column(db.String(64), nullable=False, unique=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True)
    level = db.Column(db.String(16), nullable=False)
    output_qty = db.Column(db.Numeric(18, 3), nullable=False, default=1)
    output_uom_id = db.Column(db.Integer, db.ForeignKey("uom.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT")
    version_no = db.Column(db.Integer, nullable=False, default=1)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    rm_lines = db.relationship("BomRmLine", backref="bom", cascade="all, delete-orphan", lazy=True)


class BomRmLine(db.Model):
    """Raw material consumption line, optionally color/size specific."""
    __tablename__ = "bom_rm_line"
    __table_args__ = (
        db.UniqueConstraint(
            "bom_id", "rm_item_id", "dept_id", "color_id", "size_id",
            name="uq_bom_rm_line_bom_rm_dept_color_size",
        ),
        db.CheckConstraint("qty > 0", name="ck_bom_rm_line_qty"),
        db.CheckConstraint("normal_loss_pct >= 0 AND normal_loss_pct <= 100", name="ck_bom_rm_line_loss"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bom_id = db.Column(db.Integer, db.ForeignKey("bom_header.id", ondelete="CASCADE"), nullable=False)
    rm_item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    color_id = db.Column(db.Integer, db.ForeignKey("colors.id"), nullable=True)
    size_id = db.Column(db.Integer, db.ForeignKey("sizes.id"), nullable=True)
    dept_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False)
    qty = db.Column(db.Numeric(18, 3), nullable=False)
    uom_id = db.Column(db.Integer, db.ForeignKey("uom.id"), nullable=False)
    normal_loss_pct = db.Column(db.Numeric(6, 3), nullable=False, default=0)
