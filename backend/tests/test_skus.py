"""
SKU / variant expansion tests.

Verifies:
- One variant + SKU per combination of the attribute axes
- Per-combination rates must cover every combination
- Re-running an expansion refreshes instead of duplicating
- SKU code minting and collision suffixes
- Edit, toggle and bulk rate updates
- Only finished goods are expanded; FG and SFG are listed with filters
  and a pending-approval flag per row
"""

from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.models import ApprovalRequest, Color, Item, PackingType, ProductSubgroup, Sku, Variant
from backoffice.services import approval_service, sku_service
from backoffice.services.sku_service import ExpansionRequest, build_sku_code, mint_unique_sku
from backoffice.validation import ConflictError, ValidationError


SKUS_PATH = "/master-data/products/skus"

BULK_FORM = {
    "item_id": "7",
    "size_ids": ["3", "4"],
    "grade_ids": ["1"],
    "combo_keys": ["3|1|0|0", "4|1|0|0"],
    "combo_rates": ["550", "600"],
    "_csrf": "VALID",
}


def variants_by_size(db_session):
    return {v.size_id: v for v in db_session.query(Variant).filter_by(item_id=7).all()}


class TestSkuCodes:

    def test_segments_are_upper_snake(self):
        assert build_sku_code("shoe", "Size 40", "A", None, "") == "SHOE-SIZE_40-A"

    def test_empty_segments_are_dropped(self):
        assert build_sku_code("belt", None, None) == "BELT"

    def test_mint_suffixes_on_collision(self, shoe, db_session):
        variant = Variant(item_id=shoe.id, size_id=3, grade_id=1, sale_rate=0)
        db_session.add(variant)
        db_session.flush()
        db_session.add(Sku(variant_id=variant.id, sku_code="SHOE-40-A"))
        db_session.commit()

        assert mint_unique_sku("SHOE-40-A") == "SHOE-40-A-2"
        assert mint_unique_sku("shoe-40-a") == "shoe-40-a"
        assert mint_unique_sku("SHOE-40-A", exclude_sku_id=variant.sku.id) == "SHOE-40-A"


class TestBulkCreate:

    def test_creates_one_variant_per_size(self, client, admin_headers, shoe, db_session):
        resp = client.post(SKUS_PATH, data=BULK_FORM, headers=admin_headers)

        assert resp.status_code == 302
        variants = variants_by_size(db_session)
        assert set(variants) == {3, 4}
        assert variants[3].sale_rate == Decimal("550")
        assert variants[4].sale_rate == Decimal("600")
        assert variants[3].color_id is None and variants[3].packing_type_id is None

        codes = [variants[3].sku.sku_code, variants[4].sku.sku_code]
        assert all(code.startswith("SHOE") for code in codes)
        assert "40" in codes[0] and "41" in codes[1]
        assert codes[0] != codes[1]

    def test_rerun_refreshes_without_duplicates(self, client, admin_headers, shoe, db_session):
        client.post(SKUS_PATH, data=BULK_FORM, headers=admin_headers)
        first_codes = {size: v.sku.sku_code for size, v in variants_by_size(db_session).items()}

        rerun = {**BULK_FORM, "combo_rates": ["560", "610"]}
        resp = client.post(SKUS_PATH, data=rerun, headers=admin_headers)

        assert resp.status_code == 302
        variants = variants_by_size(db_session)
        assert db_session.query(Variant).count() == 2
        assert db_session.query(Sku).count() == 2
        assert variants[3].sale_rate == Decimal("560")
        assert {size: v.sku.sku_code for size, v in variants.items()} == first_codes

    def test_colliding_base_gets_suffix(self, shoe, admin_user, db_session):
        belt = Variant(item_id=shoe.id, size_id=3, grade_id=1, color_id=5, sale_rate=0)
        db_session.add(belt)
        db_session.flush()
        db_session.add(Sku(variant_id=belt.id, sku_code="SHOE-40-A"))
        db_session.commit()

        request = ExpansionRequest(item_id=7, size_ids=[3], grade_ids=[1])
        result = sku_service.expand_variants(request, admin_user.id)

        assert result.created == 1
        created = db_session.get(Variant, result.variant_ids[0])
        assert created.sku.sku_code == "SHOE-40-A-2"

    def test_partial_rate_map_is_rejected(self, client, admin_headers, shoe, db_session):
        partial = {**BULK_FORM, "combo_keys": ["3|1|0|0"], "combo_rates": ["550"]}

        resp = client.post(SKUS_PATH, data=partial, headers=admin_headers)

        assert resp.status_code == 302
        assert db_session.query(Variant).count() == 0
        flash = client.get(SKUS_PATH, headers=admin_headers).json["flash"]
        assert flash["error"] == "Required fields are missing."
        assert flash["modalMode"] == "create"

    def test_mismatched_rate_lists_are_rejected(self, shoe, admin_user):
        request = ExpansionRequest(item_id=7, size_ids=[3], grade_ids=[1],
                                   combo_keys=["3|1|0|0"], combo_rates=[])
        with pytest.raises(ValidationError):
            sku_service.expand_variants(request, admin_user.id)

    def test_default_rate_without_map(self, shoe, admin_user, db_session):
        request = ExpansionRequest(item_id=7, size_ids=[3, 4], grade_ids=[1], sale_rate_default=Decimal("99"))
        sku_service.expand_variants(request, admin_user.id)

        assert {v.sale_rate for v in db_session.query(Variant).all()} == {Decimal("99")}

    def test_optional_axes_multiply(self, shoe, admin_user, db_session):
        db_session.add_all([Color(id=6, name="Brown"), PackingType(id=2, name="Box")])
        db_session.commit()

        request = ExpansionRequest(item_id=7, size_ids=[3, 4], grade_ids=[1], color_ids=[5, 6], packing_type_ids=[2])
        result = sku_service.expand_variants(request, admin_user.id)

        assert result.created == 4
        codes = {v.sku.sku_code for v in db_session.query(Variant).all()}
        assert "SHOE-40-A-BLACK-BOX" in codes
        assert "SHOE-41-A-BROWN-BOX" in codes

    def test_unknown_attribute_rolls_back(self, shoe, admin_user, db_session):
        request = ExpansionRequest(item_id=7, size_ids=[3, 99], grade_ids=[1])
        with pytest.raises(ValidationError):
            sku_service.expand_variants(request, admin_user.id)
        assert db_session.query(Variant).count() == 0

    def test_missing_axis_is_rejected(self, shoe, admin_user):
        with pytest.raises(ValidationError):
            sku_service.expand_variants(ExpansionRequest(item_id=7, size_ids=[3], grade_ids=[]), admin_user.id)

    def test_only_finished_goods_can_be_expanded(self, client, admin_headers, shoe, db_session):
        shoe.item_type = "SFG"
        db_session.commit()

        resp = client.post(SKUS_PATH, data=BULK_FORM, headers=admin_headers)

        assert resp.status_code == 302
        assert db_session.query(Variant).count() == 0
        assert db_session.query(ApprovalRequest).count() == 0
        flash = client.get(SKUS_PATH, headers=admin_headers).json["flash"]
        assert flash["error"] == "Only finished products can be added from this screen."

    @pytest.mark.parametrize("item_type", ["RM", "SFG"])
    def test_expansion_refuses_unfinished_items(self, shoe, admin_user, db_session, item_type):
        shoe.item_type = item_type
        db_session.commit()

        with pytest.raises(ValidationError):
            sku_service.expand_variants(ExpansionRequest(item_id=7, size_ids=[3], grade_ids=[1]), admin_user.id)
        assert db_session.query(Variant).count() == 0

    def test_queued_when_policy_requires_approval(self, client, clerk_headers, shoe, db_session):
        approval_service.set_policy(sku_service.SCOPE_KEY, "create", True)

        resp = client.post(SKUS_PATH, data=BULK_FORM, headers=clerk_headers)

        assert resp.status_code == 302
        assert db_session.query(Variant).count() == 0
        row = db_session.query(ApprovalRequest).one()
        assert row.entity_type == "SKU"
        assert row.new_value["combo_keys"] == ["3|1|0|0", "4|1|0|0"]

    def test_approving_queued_expansion_creates_variants(self, client, clerk_headers, admin_user, shoe, db_session):
        approval_service.set_policy(sku_service.SCOPE_KEY, "create", True)
        client.post(SKUS_PATH, data=BULK_FORM, headers=clerk_headers)
        row = db_session.query(ApprovalRequest).one()

        approval_service.approve_request(row.id, admin_user)

        variants = variants_by_size(db_session)
        assert variants[4].sale_rate == Decimal("600")


class TestSingleVariant:

    @pytest.fixture
    def expanded(self, shoe, admin_user, db_session):
        request = ExpansionRequest(item_id=7, size_ids=[3, 4], grade_ids=[1], sale_rate_default=Decimal("500"))
        sku_service.expand_variants(request, admin_user.id)
        return variants_by_size(db_session)

    def test_toggle_moves_variant_and_sku_together(self, client, admin_headers, expanded, db_session):
        variant = expanded[3]
        resp = client.post(f"{SKUS_PATH}/{variant.id}/toggle", data={"_csrf": "VALID"}, headers=admin_headers)

        assert resp.status_code == 302
        db_session.refresh(variant)
        assert variant.is_active is False
        assert variant.sku.is_active is False

    def test_edit_into_existing_combination_conflicts(self, admin_user, expanded):
        with pytest.raises(ConflictError):
            sku_service.edit_variant(expanded[3].id, {"size_ids": [4]}, admin_user.id)

    def test_edit_remints_code(self, admin_user, expanded, db_session):
        db_session.add(PackingType(id=2, name="Box"))
        db_session.commit()

        variant = sku_service.edit_variant(expanded[3].id, {"packing_type_ids": [2], "sale_rate": "520"}, admin_user.id)

        assert variant.sku.sku_code == "SHOE-40-A-BOX"
        assert variant.sale_rate == Decimal("520")

    def test_delete_removes_sku(self, client, admin_headers, expanded, db_session):
        variant_id = expanded[4].id
        resp = client.post(f"{SKUS_PATH}/{variant_id}/delete", data={"_csrf": "VALID"}, headers=admin_headers)

        assert resp.status_code == 302
        assert db_session.get(Variant, variant_id) is None
        assert db_session.query(Sku).count() == 1

    def test_bulk_update_skips_bad_pairs(self, client, admin_headers, expanded, db_session):
        resp = client.post(f"{SKUS_PATH}/bulk-update", data={
            "variant_ids": [str(expanded[3].id), str(expanded[4].id), "999"],
            "new_rates": ["700", "abc", "1"],
            "_csrf": "VALID",
        }, headers=admin_headers)

        assert resp.status_code == 302
        db_session.refresh(expanded[3])
        db_session.refresh(expanded[4])
        assert expanded[3].sale_rate == Decimal("700")
        assert expanded[4].sale_rate == Decimal("500")

    def test_item_config(self, client, admin_headers, expanded):
        resp = client.get(f"{SKUS_PATH}/config/7", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["size_ids"] == [3, 4]
        assert resp.json["grade_ids"] == [1]
        assert resp.json["color_ids"] == []
        assert resp.json["existing_combinations"] == ["3|1|0|0", "4|1|0|0"]

    def test_item_variants(self, client, admin_headers, expanded):
        resp = client.get(f"{SKUS_PATH}/item-variants/7", headers=admin_headers)

        variants = resp.json["variants"]
        assert [v["size"] for v in variants] == ["40", "41"]
        assert variants[0]["sku_code"] == "SHOE-40-A"
        assert variants[0]["sale_rate"] == 500.0

    def test_list_filters_by_search(self, client, admin_headers, expanded):
        resp = client.get(f"{SKUS_PATH}?search=41", headers=admin_headers)

        assert resp.status_code == 200
        assert [item["sku_code"] for item in resp.json["items"]] == ["SHOE-41-A"]


class TestListing:

    @pytest.fixture
    def catalog(self, shoe, admin_user, clerk_user, db_session):
        """
        Shoe (FG, subgroup 1): sizes 40 and 41, created by admin today.
        Sole (SFG): size 40, created by clerk on 2024-03-10.
        Leather (RM): size 40, never listed.
        """
        db_session.add(ProductSubgroup(id=1, code="formal", name="Formal"))
        shoe.subgroup_id = 1
        db_session.add_all([
            Item(id=8, item_type="SFG", code="sole", name="Sole"),
            Item(id=9, item_type="RM", code="leather", name="Leather"),
        ])
        db_session.commit()

        sku_service.expand_variants(ExpansionRequest(item_id=7, size_ids=[3, 4], grade_ids=[1]), admin_user.id)
        db_session.add_all([
            Variant(item_id=8, size_id=3, grade_id=1, sale_rate=0, created_by=clerk_user.id,
                    created_at=datetime(2024, 3, 10, 9, 30)),
            Variant(item_id=9, size_id=3, grade_id=1, sale_rate=0),
        ])
        db_session.commit()

    def listed(self, client, headers, query=""):
        resp = client.get(f"{SKUS_PATH}{query}", headers=headers)
        assert resp.status_code == 200
        return [(item["item_id"], item["size"]) for item in resp.json["items"]]

    def test_lists_finished_and_semi_finished_goods(self, client, admin_headers, catalog):
        assert self.listed(client, admin_headers) == [(7, "41"), (7, "40"), (8, "40")]

    def test_item_type_filter(self, client, admin_headers, catalog):
        assert self.listed(client, admin_headers, "?item_type=sfg") == [(8, "40")]
        assert self.listed(client, admin_headers, "?item_type=FG") == [(7, "41"), (7, "40")]

    def test_subgroup_filter(self, client, admin_headers, catalog):
        assert self.listed(client, admin_headers, "?subgroup_id=1") == [(7, "41"), (7, "40")]
        assert self.listed(client, admin_headers, "?subgroup_id=2") == []

    def test_creator_filter(self, client, admin_headers, clerk_user, admin_user, catalog):
        assert self.listed(client, admin_headers, f"?created_by={clerk_user.id}") == [(8, "40")]
        assert self.listed(client, admin_headers, f"?created_by={admin_user.id}") == [(7, "41"), (7, "40")]

    def test_date_range_is_inclusive_by_day(self, client, admin_headers, catalog):
        assert self.listed(client, admin_headers, "?date_from=2024-03-10&date_to=2024-03-10") == [(8, "40")]
        assert self.listed(client, admin_headers, "?date_to=2024-03-09") == []
        assert self.listed(client, admin_headers, "?date_from=2024-03-11") == [(7, "41"), (7, "40")]

    def test_unparsable_date_is_ignored(self, client, admin_headers, catalog):
        assert len(self.listed(client, admin_headers, "?date_from=yesterday")) == 3

    def test_rows_flag_pending_approval(self, client, admin_headers, clerk_headers, admin_user, catalog, db_session):
        approval_service.set_policy(sku_service.SCOPE_KEY, "edit", True)
        target = variants_by_size(db_session)[3]

        resp = client.post(f"{SKUS_PATH}/{target.id}", data={"sale_rate": "650", "_csrf": "VALID"},
                           headers=clerk_headers)
        assert resp.status_code == 302

        items = client.get(SKUS_PATH, headers=admin_headers).json["items"]
        assert {item["id"]: item["pending_approval"] for item in items} == {
            item["id"]: item["id"] == target.id for item in items
        }

        row = db_session.query(ApprovalRequest).one()
        approval_service.approve_request(row.id, admin_user)

        items = client.get(SKUS_PATH, headers=admin_headers).json["items"]
        assert not any(item["pending_approval"] for item in items)
