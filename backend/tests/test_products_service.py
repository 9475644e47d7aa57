# Overview: Pytest coverage for catalog master data and barcode resolution.

import pytest

from micropos.models import OutboxEntry, Product, ProductBarcode
from micropos.services import ledger_service
from micropos.services import products_service as ps
from micropos.validation import NotFoundError, ValidationError


class TestCreateProduct:
    def test_create_with_barcodes(self, db_session, org):
        product = ps.create_product(
            org.id,
            {"name": "Cola 330ml", "price_cents": 150, "cost_cents": 90, "tax_rate_bps": 1000},
            barcodes=["5449000000996", {"barcode": "5449000000997", "unit_type": "carton", "factor": 24}],
        )

        assert product.stock == 0
        assert product.price_cents == 150
        rows = db_session.query(ProductBarcode).filter_by(product_id=product.id).all()
        by_code = {row.barcode: row for row in rows}
        assert by_code["5449000000996"].is_primary is True
        assert by_code["5449000000996"].unit_type == "piece"
        assert by_code["5449000000997"].is_primary is False
        assert by_code["5449000000997"].unit_type == "carton"
        assert by_code["5449000000997"].factor == 24

    def test_outbox_rows_written(self, db_session, org):
        product = ps.create_product(org.id, {"name": "Tea"}, barcodes=["111"])
        entries = db_session.query(OutboxEntry).all()
        assert {e.table_name for e in entries} == {"products", "product_barcodes"}
        assert any(e.record_id == product.id for e in entries)

    def test_stock_cannot_be_seeded(self, db_session, org):
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"name": "Tea", "stock": 10})
        assert db_session.query(Product).count() == 0

    def test_name_required(self, db_session, org):
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"price_cents": 100})

    @pytest.mark.parametrize("field, value", [
        ("price_cents", -1),
        ("price_cents", 1.5),
        ("tax_rate_bps", 10001),
        ("min_stock", -2),
    ])
    def test_bad_fields(self, db_session, org, field, value):
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"name": "Tea", field: value})

    def test_barcode_factor_is_capped(self, db_session, org):
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"name": "Tea"}, barcodes=[{"barcode": "1001", "factor": 1_000_001}])

    def test_two_primary_barcodes_rejected(self, db_session, org):
        with pytest.raises(ValidationError):
            ps.create_product(
                org.id,
                {"name": "Tea"},
                barcodes=[{"barcode": "1", "is_primary": True}, {"barcode": "2", "is_primary": True}],
            )

    def test_duplicate_barcode_in_payload_rejected(self, db_session, org):
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"name": "Tea"}, barcodes=["1", "1"])

    def test_barcode_unique_per_org(self, db_session, org, other_org):
        ps.create_product(org.id, {"name": "Tea"}, barcodes=["123"])

        with pytest.raises(ValidationError) as excinfo:
            ps.create_product(org.id, {"name": "Coffee"}, barcodes=["123"])
        assert excinfo.value.details == {"barcodes": ["123"]}
        assert db_session.query(Product).filter_by(org_id=org.id).count() == 1

        # same code in another org is fine
        ps.create_product(other_org.id, {"name": "Tea"}, barcodes=["123"])

    def test_unknown_org(self, db_session):
        with pytest.raises(NotFoundError):
            ps.create_product("missing", {"name": "Tea"})

    def test_category_must_belong_to_org(self, db_session, org, other_org):
        foreign = ps.create_category(other_org.id, "Drinks")
        with pytest.raises(ValidationError):
            ps.create_product(org.id, {"name": "Tea", "category_id": foreign.id})

        own = ps.create_category(org.id, "Drinks")
        product = ps.create_product(org.id, {"name": "Tea", "category_id": own.id})
        assert product.category_id == own.id

    def test_duplicate_category_name(self, db_session, org):
        ps.create_category(org.id, "Drinks")
        with pytest.raises(ValidationError):
            ps.create_category(org.id, "Drinks")


class TestUpdateProduct:
    def test_partial_update(self, db_session, org, product):
        updated = ps.update_product(org.id, product.id, {"price_cents": 5500, "unknown": "x"})
        assert updated.price_cents == 5500
        assert updated.name == "Widget"
        assert updated.version_id == 2

    def test_stock_patch_rejected(self, db_session, org, product):
        with pytest.raises(ValidationError):
            ps.update_product(org.id, product.id, {"stock": 99})
        assert db_session.get(Product, product.id).stock == 0

    def test_scoped_to_org(self, db_session, other_org, product):
        with pytest.raises(NotFoundError):
            ps.update_product(other_org.id, product.id, {"price_cents": 1})

    def test_price_change_does_not_touch_posted_items(self, db_session, org, warehouse, product):
        invoice = ledger_service.post_invoice(
            {"org_id": org.id, "type": "SALE", "warehouse_id": warehouse.id},
            [{"product_id": product.id, "qty": 1}],
        )
        ps.update_product(org.id, product.id, {"price_cents": 9999})

        reloaded = ledger_service.get_invoice(org.id, invoice.id)
        assert reloaded.items[0].price_cents == 5000
        assert reloaded.grand_total_cents == 6000


class TestReads:
    def test_list_products(self, db_session, org, other_org, make_product):
        make_product(name="B")
        make_product(name="A")
        make_product(name="C", is_active=False)
        make_product(name="Z", org_id=other_org.id)

        assert [p.name for p in ps.list_products(org.id)] == ["A", "B", "C"]
        assert [p.name for p in ps.list_products(org.id, active_only=True)] == ["A", "B"]

    def test_get_product(self, db_session, org, other_org, product):
        assert ps.get_product(org.id, product.id).id == product.id
        with pytest.raises(NotFoundError):
            ps.get_product(other_org.id, product.id)

    def test_low_stock(self, db_session, org, warehouse, make_product):
        low = make_product(name="Low", min_stock=5)
        make_product(name="Untracked", min_stock=5, is_stock_tracking=False)
        fine = make_product(name="Fine", min_stock=1)
        ledger_service.post_invoice(
            {"org_id": org.id, "type": "PURCHASE", "warehouse_id": warehouse.id},
            [{"product_id": low.id, "qty": 2}, {"product_id": fine.id, "qty": 10}],
        )

        assert [p.id for p in ps.low_stock_products(org.id)] == [low.id]


class TestBarcodeLookup:
    def test_piece_barcode(self, db_session, org):
        product = ps.create_product(org.id, {"name": "Cola", "price_cents": 150}, barcodes=["1001"])
        hit = ps.lookup_barcode(org.id, "1001")
        assert hit["product"].id == product.id
        assert hit["qty"] == 1
        assert hit["unit_price_cents"] == 150

    def test_carton_barcode_with_override(self, db_session, org):
        ps.create_product(
            org.id,
            {"name": "Cola", "price_cents": 150},
            barcodes=["1001", {"barcode": "1002", "factor": 24, "price_override_cents": 140}],
        )
        hit = ps.lookup_barcode(org.id, "1002")
        assert hit["qty"] == 24
        assert hit["unit_price_cents"] == 140

    def test_unknown_or_foreign_barcode(self, db_session, org, other_org):
        ps.create_product(other_org.id, {"name": "Cola"}, barcodes=["1001"])
        assert ps.lookup_barcode(org.id, "1001") is None
        assert ps.lookup_barcode(org.id, "nope") is None
