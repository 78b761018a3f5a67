# Overview: Resource descriptors for the basic-info master screens.

"""
Each basic-info screen is one ResourceDescriptor: the model it writes, the
form fields it accepts, how Urdu names are produced and whether a code is
derived from the name. One generic CRUD service consumes them.

FIELD KINDS:
- text            trimmed string
- checkbox        "on"/"true" -> True, anything else False
- select          single choice; empty -> None; options or a foreign model
- multi_checkbox  list of choices (item-type maps)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models import (
    ACCOUNT_TYPES,
    ITEM_TYPES,
    PARTY_TYPES,
    AccountGroup,
    Color,
    Department,
    Grade,
    PackingType,
    PartyGroup,
    ProductGroup,
    ProductGroupItemType,
    ProductSubgroup,
    ProductSubgroupItemType,
    ProductType,
    Size,
    Uom,
)

TEXT = "text"
CHECKBOX = "checkbox"
SELECT = "select"
MULTI_CHECKBOX = "multi_checkbox"

FIELD_KINDS = (TEXT, CHECKBOX, SELECT, MULTI_CHECKBOX)

SCOPE_PREFIX = "master_data.basic_info"

ITEM_TYPE_LABELS = {"RM": "raw_materials", "SFG": "semi_finished_goods", "FG": "finished_goods"}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = TEXT
    required: bool = False
    options: tuple[str, ...] = ()
    foreign_model: type | None = None

    def __post_init__(self):
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Unknown field kind: {self.kind}")


@dataclass(frozen=True)
class ItemTypeMap:
    """Child table listing the item types (RM/SFG/FG) a row applies to."""
    model: type
    key: str


@dataclass(frozen=True)
class ResourceDescriptor:
    slug: str
    title_key: str
    model: type
    entity_type: str
    fields: tuple[FieldSpec, ...]
    translate_mode: str = "translate"
    auto_code: bool = False
    item_type_map: ItemTypeMap | None = None
    defaults: dict = field(default_factory=dict)

    @property
    def scope_key(self) -> str:
        return f"{SCOPE_PREFIX}.{self.slug.replace('-', '_')}"

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)


_NAME = FieldSpec("name", required=True)
_NAME_UR = FieldSpec("name_ur")
_ITEM_TYPES = FieldSpec("item_types", kind=MULTI_CHECKBOX, required=True, options=ITEM_TYPES)


RESOURCES: dict[str, ResourceDescriptor] = {
    r.slug: r
    for r in (
        ResourceDescriptor(
            slug="units",
            title_key="units",
            model=Uom,
            entity_type="UOM",
            fields=(FieldSpec("code", required=True), _NAME, _NAME_UR),
        ),
        ResourceDescriptor(
            slug="sizes",
            title_key="sizes",
            model=Size,
            entity_type="SIZE",
            fields=(_NAME, _NAME_UR),
        ),
        ResourceDescriptor(
            slug="colors",
            title_key="colors",
            model=Color,
            entity_type="COLOR",
            fields=(_NAME, _NAME_UR),
        ),
        ResourceDescriptor(
            slug="grades",
            title_key="grades",
            model=Grade,
            entity_type="GRADE",
            fields=(_NAME, _NAME_UR),
            translate_mode="transliterate",
        ),
        ResourceDescriptor(
            slug="packing-types",
            title_key="packing_types",
            model=PackingType,
            entity_type="PACKING_TYPE",
            fields=(_NAME, _NAME_UR),
            translate_mode="transliterate",
        ),
        ResourceDescriptor(
            slug="product-groups",
            title_key="groups",
            model=ProductGroup,
            entity_type="PRODUCT_GROUP",
            fields=(_NAME, _NAME_UR, _ITEM_TYPES),
            translate_mode="transliterate",
            item_type_map=ItemTypeMap(ProductGroupItemType, "group_id"),
            defaults={"is_active": True, "item_types": list(ITEM_TYPES)},
        ),
        ResourceDescriptor(
            slug="product-subgroups",
            title_key="product_subgroups",
            model=ProductSubgroup,
            entity_type="PRODUCT_SUBGROUP",
            fields=(
                FieldSpec("group_id", kind=SELECT, foreign_model=ProductGroup),
                _NAME,
                _NAME_UR,
                _ITEM_TYPES,
            ),
            translate_mode="transliterate",
            auto_code=True,
            item_type_map=ItemTypeMap(ProductSubgroupItemType, "subgroup_id"),
        ),
        ResourceDescriptor(
            slug="product-types",
            title_key="product_types",
            model=ProductType,
            entity_type="PRODUCT_TYPE",
            fields=(_NAME, _NAME_UR),
            translate_mode="transliterate",
            auto_code=True,
        ),
        ResourceDescriptor(
            slug="party-groups",
            title_key="party_groups",
            model=PartyGroup,
            entity_type="PARTY_GROUP",
            fields=(FieldSpec("party_type", kind=SELECT, required=True, options=PARTY_TYPES), _NAME, _NAME_UR),
            translate_mode="transliterate",
        ),
        ResourceDescriptor(
            slug="account-groups",
            title_key="account_groups",
            model=AccountGroup,
            entity_type="ACCOUNT_GROUP",
            fields=(
                FieldSpec("account_type", kind=SELECT, required=True, options=ACCOUNT_TYPES),
                _NAME,
                _NAME_UR,
                FieldSpec("code", required=True),
                FieldSpec("is_contra", kind=CHECKBOX),
            ),
            translate_mode="transliterate",
            defaults={"is_contra": False},
        ),
        ResourceDescriptor(
            slug="departments",
            title_key="departments",
            model=Department,
            entity_type="DEPARTMENT",
            fields=(_NAME, _NAME_UR, FieldSpec("is_production", kind=CHECKBOX)),
            defaults={"is_production": False},
        ),
    )
}

# Older screens linked to "groups" for product groups
ALIASES = {"groups": "product-groups"}

# Approval entity type per screen slug, including non-descriptor screens
ENTITY_TYPES = {
    **{slug: r.entity_type for slug, r in RESOURCES.items()},
    "groups": "PRODUCT_GROUP",
    "uom-conversions": "UOM_CONVERSION",
}


def get_descriptor(slug: str) -> ResourceDescriptor | None:
    return RESOURCES.get(ALIASES.get(slug, slug))


def get_descriptor_by_entity_type(entity_type: str) -> ResourceDescriptor | None:
    for descriptor in RESOURCES.values():
        if descriptor.entity_type == entity_type:
            return descriptor
    return None


def entity_type_for(slug: str) -> str | None:
    return ENTITY_TYPES.get(slug)
