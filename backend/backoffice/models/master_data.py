from __future__ import annotations

from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy.orm import declared_attr

from ..extensions import db
from backoffice.time_utils import to_utc_z


ITEM_TYPES = ("RM", "SFG", "FG")
PARTY_TYPES = ("CUSTOMER", "SUPPLIER", "BOTH")
ACCOUNT_TYPES = ("ASSET", "LIABILITY", "EQUITY", "REVENUE", "EXPENSE")


class AuditFieldsMixin:
    """
    created_by/created_at/updated_by/updated_at carried by every master.

    WHY: Masters are edited by many users over years; the last writer and the
    creator are shown on every list screen.
    """

    @declared_attr
    def created_by(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    @declared_attr
    def updated_by(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def audit_dict(self) -> dict:
        return {
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class BilingualMasterMixin(AuditFieldsMixin):
    """Latin name + Urdu name + active flag."""

    name = db.Column(db.String(120), nullable=False)
    name_ur = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true())

    def to_dict(self) -> dict:
        data = {"id": self.id}
        for column in self.__table__.columns:
            if column.key in data or column.key in {"created_at", "updated_at"}:
                continue
            value = getattr(self, column.key)
            data[column.key] = float(value) if isinstance(value, Decimal) else value
        data.update(self.audit_dict())
        return data


class Uom(BilingualMasterMixin, db.Model):
    """
    Unit of measure.

    LOCK: code cannot be renamed once items or conversions reference the unit
    (see basic_info_service).
    """
    __tablename__ = "uom"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)


class UomConversion(AuditFieldsMixin, db.Model):
    """1 from_uom = factor x to_uom."""
    __tablename__ = "uom_conversions"
    __table_args__ = (
        db.UniqueConstraint("from_uom_id", "to_uom_id", name="uq_uom_conversions_pair"),
        db.CheckConstraint("factor > 0", name="ck_uom_conversions_factor"),
        db.CheckConstraint("from_uom_id <> to_uom_id", name="ck_uom_conversions_distinct"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    from_uom_id = db.Column(db.Integer, db.ForeignKey("uom.id"), nullable=False, index=True)
    to_uom_id = db.Column(db.Integer, db.ForeignKey("uom.id"), nullable=False, index=True)
    factor = db.Column(db.Numeric(18, 6), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true())

    from_uom = db.relationship("Uom", foreign_keys=[from_uom_id])
    to_uom = db.relationship("Uom", foreign_keys=[to_uom_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_uom_id": self.from_uom_id,
            "to_uom_id": self.to_uom_id,
            "from_uom": self.from_uom.code if self.from_uom else None,
            "to_uom": self.to_uom.code if self.to_uom else None,
            "factor": float(self.factor) if self.factor is not None else None,
            "is_active": self.is_active,
            **self.audit_dict(),
        }


class Size(BilingualMasterMixin, db.Model):
    __tablename__ = "sizes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)


class Color(BilingualMasterMixin, db.Model):
    __tablename__ = "colors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)


class Grade(BilingualMasterMixin, db.Model):
    __tablename__ = "grades"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)


class PackingType(BilingualMasterMixin, db.Model):
    __tablename__ = "packing_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)


class ProductGroup(BilingualMasterMixin, db.Model):
    __tablename__ = "product_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)


class ProductGroupItemType(db.Model):
    """Item types a product group applies to. Replaced wholesale on edit."""
    __tablename__ = "product_group_item_types"
    __table_args__ = (
        db.CheckConstraint("item_type IN ('RM', 'SFG', 'FG')", name="ck_product_group_item_types_type"),
    )

    group_id = db.Column(db.Integer, db.ForeignKey("product_groups.id", ondelete="CASCADE"), primary_key=True)
    item_type = db.Column(db.String(8), primary_key=True)


class ProductSubgroup(BilingualMasterMixin, db.Model):
    __tablename__ = "product_subgroups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(80), nullable=False, unique=True)
    group_id = db.Column(db.Integer, db.ForeignKey("product_groups.id"), nullable=True, index=True)


class ProductSubgroupItemType(db.Model):
    """Item types a product subgroup applies to. Replaced wholesale on edit."""
    __tablename__ = "product_subgroup_item_types"
    __table_args__ = (
        db.CheckConstraint("item_type IN ('RM', 'SFG', 'FG')", name="ck_product_subgroup_item_types_type"),
    )

    subgroup_id = db.Column(db.Integer, db.ForeignKey("product_subgroups.id", ondelete="CASCADE"), primary_key=True)
    item_type = db.Column(db.String(8), primary_key=True)


class ProductType(BilingualMasterMixin, db.Model):
    __tablename__ = "product_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(80), nullable=False, unique=True)


class PartyGroup(BilingualMasterMixin, db.Model):
    __tablename__ = "party_groups"
    __table_args__ = (
        db.CheckConstraint("party_type IN ('CUSTOMER', 'SUPPLIER', 'BOTH')", name="ck_party_groups_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    party_type = db.Column(db.String(16), nullable=False, default="BOTH")


class AccountGroup(BilingualMasterMixin, db.Model):
    __tablename__ = "account_groups"
    __table_args__ = (
        db.CheckConstraint(
            "account_type IN ('ASSET', 'LIABILITY', 'EQUITY', 'REVENUE', 'EXPENSE')",
            name="ck_account_groups_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_type = db.Column(db.String(16), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    is_contra = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())


class Department(BilingualMasterMixin, db.Model):
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    is_production = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())


class Item(BilingualMasterMixin, db.Model):
    """
    Finished-good / semi-finished / raw-material master.

    code is unique case-insensitively (functional unique index on lower(code)).
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("item_type IN ('RM', 'SFG', 'FG')", name="ck_items_item_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(8), nullable=False)
    code = db.Column(db.String(80), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey("product_groups.id"), nullable=True)
    subgroup_id = db.Column(db.Integer, db.ForeignKey("product_subgroups.id"), nullable=True)
    product_type_id = db.Column(db.Integer, db.ForeignKey("product_types.id"), nullable=True)
    base_uom_id = db.Column(db.Integer, db.ForeignKey("uom.id"), nullable=True, index=True)

    variants = db.relationship(
        "Variant",
        backref="item",
        cascade="all, delete-orphan",
        lazy=True,
    )


db.Index("ux_items_code_lower", sa.func.lower(Item.code), unique=True)


class Variant(AuditFieldsMixin, db.Model):
    """
    (item, size, grade, color, packing) combination with a sale rate.

    INVARIANT: the 5-tuple is unique. NULL color/packing are distinct values
    in the unique predicate, so lookups must match them with IS NULL.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint(
            "item_id", "size_id", "grade_id", "color_id", "packing_type_id",
            name="uq_variants_combo",
        ),
        db.CheckConstraint("sale_rate >= 0", name="ck_variants_sale_rate"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    size_id = db.Column(db.Integer, db.ForeignKey("sizes.id"), nullable=True)
    grade_id = db.Column(db.Integer, db.ForeignKey("grades.id"), nullable=True)
    color_id = db.Column(db.Integer, db.ForeignKey("colors.id"), nullable=True)
    packing_type_id = db.Column(db.Integer, db.ForeignKey("packing_types.id"), nullable=True)
    sale_rate = db.Column(db.Numeric(18, 2), nullable=False, default=0, server_default="0")
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true())

    size = db.relationship("Size")
    grade = db.relationship("Grade")
    color = db.relationship("Color")
    packing_type = db.relationship("PackingType")
    sku = db.relationship(
        "Sku",
        backref="variant",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "size_id": self.size_id,
            "grade_id": self.grade_id,
            "color_id": self.color_id,
            "packing_type_id": self.packing_type_id,
            "size": self.size.name if self.size else None,
            "grade": self.grade.name if self.grade else None,
            "color": self.color.name if self.color else None,
            "packing": self.packing_type.name if self.packing_type else None,
            "sale_rate": float(self.sale_rate) if self.sale_rate is not None else 0.0,
            "is_active": self.is_active,
            "sku_code": self.sku.sku_code if self.sku else None,
            "barcode": self.sku.barcode if self.sku else None,
            **self.audit_dict(),
        }


class Sku(db.Model):
    """
    1:1 satellite of Variant carrying the human-readable code.

    sku_code is globally unique and case-sensitive. is_active tracks the
    parent Variant.
    """
    __tablename__ = "skus"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(
        db.Integer,
        db.ForeignKey("variants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    sku_code = db.Column(db.String(200), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.true())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "sku_code": self.sku_code,
            "barcode": self.barcode,
            "is_active": self.is_active,
        }
