# Overview: Pytest coverage for manual stock entry, auto-save and restocking/waste recorders.

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.extensions import db
from stockledger.models import Item
from stockledger.models.inventory import SOURCE_MANUAL
from stockledger.services import ledger_service
from stockledger.services.inventory_service import record_restocking, record_waste, list_restocking
from stockledger.services.stock_service import (
    auto_save_closing,
    parse_stock_entries,
    record_manual_closing,
    record_manual_opening,
)
from stockledger.validation import NotFoundError, ValidationError

from conftest import add_opening, add_sale, make_item


class TestParseStockEntries:

    def test_valid_entries(self):
        parsed = parse_stock_entries([{"item_id": 1, "quantity": "4.5"}, {"item_id": 2, "quantity": 0}])
        assert parsed[0]["quantity"] == Decimal("4.5")
        assert parsed[1]["quantity"] == Decimal("0")

    @pytest.mark.parametrize("entries", [None, [], "x", [{"item_id": 1}], [{"item_id": 1, "quantity": -1}]])
    def test_invalid_entries(self, entries):
        with pytest.raises(ValidationError):
            parse_stock_entries(entries)

    def test_duplicate_item_rejected(self):
        with pytest.raises(ValidationError, match="duplicate"):
            parse_stock_entries([{"item_id": 1, "quantity": 1}, {"item_id": 1, "quantity": 2}])

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError, match="items\\[0\\]"):
            parse_stock_entries([{"item_id": 1, "quantity": 1, "source": "AUTO"}])


class TestManualOpening:

    def test_records_manual_row_and_updates_item_prices(self, db_session, item_a, scope_a, admin_a, today):
        rows, cascade = record_manual_opening(
            today.isoformat(),
            [{"item_id": item_a.id, "quantity": 12, "cost_price": "110.00", "selling_price": "160.00"}],
            scope=scope_a,
            actor_id=admin_a.id,
        )

        assert cascade is None
        assert rows[0].source == SOURCE_MANUAL
        assert rows[0].quantity == Decimal("12.000")
        assert rows[0].notes == "Manually entered opening stock"
        item = db.session.get(Item, item_a.id)
        assert item.cost_price == Decimal("110.00")
        assert item.selling_price == Decimal("160.00")

    def test_past_date_cascades_forward(self, db_session, item_a, scope_a, days_ago):
        add_sale(item_a, scope_a, days_ago(1), 2)

        _, cascade = record_manual_opening(days_ago(2), [{"item_id": item_a.id, "quantity": 10}], scope=scope_a)

        assert cascade.ok
        assert ledger_service.get_closing(item_a.id, days_ago(2), scope_a) == Decimal("10.000")
        assert ledger_service.get_closing(item_a.id, days_ago(1), scope_a) == Decimal("8.000")

    def test_unknown_item(self, db_session, item_a, scope_a, today):
        with pytest.raises(NotFoundError):
            record_manual_opening(today, [{"item_id": 4242, "quantity": 1}], scope=scope_a)

    def test_future_date_rejected(self, db_session, item_a, scope_a, days_ago):
        with pytest.raises(ValidationError):
            record_manual_opening(days_ago(-1), [{"item_id": item_a.id, "quantity": 1}], scope=scope_a)


class TestManualClosing:

    def test_today_count_stands_until_settled(self, db_session, item_a, scope_a, today):
        add_opening(item_a, scope_a, today, 10)

        rows, cascade = record_manual_closing(today, [{"item_id": item_a.id, "quantity": 6}], scope=scope_a)

        assert cascade is None
        assert rows[0].source == SOURCE_MANUAL
        assert rows[0].notes == "Manually entered closing stock"
        assert ledger_service.get_closing(item_a.id, today, scope_a) == Decimal("6.000")

        auto_save_closing(today, scope=scope_a)
        assert ledger_service.get_closing(item_a.id, today, scope_a) == Decimal("10.000")

    def test_past_count_is_settled_from_components(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(2), 10)
        add_sale(item_a, scope_a, days_ago(2), 3)
        add_sale(item_a, scope_a, days_ago(1), 1)

        _, cascade = record_manual_closing(days_ago(2), [{"item_id": item_a.id, "quantity": 6}], scope=scope_a)

        assert cascade.ok
        row = ledger_service.get_closing_row(item_a.id, days_ago(2), scope_a)
        assert row.quantity == Decimal("7.000")
        assert row.source != SOURCE_MANUAL
        assert ledger_service.get_opening(item_a.id, days_ago(1), scope_a) == Decimal("7.000")
        assert ledger_service.get_closing(item_a.id, days_ago(1), scope_a) == Decimal("6.000")


class TestAutoSaveClosing:

    def test_closes_and_cascades(self, db_session, org_a, item_a, scope_a, days_ago):
        other = make_item(db_session, org_a, "Beans")
        add_opening(item_a, scope_a, days_ago(2), 4)
        add_opening(other, scope_a, days_ago(2), 9)
        add_sale(other, scope_a, days_ago(1), 3)

        results, cascade = auto_save_closing(days_ago(2), scope=scope_a)

        assert {r.item_id for r in results} == {item_a.id, other.id}
        assert cascade is not None and cascade.ok
        assert ledger_service.get_closing(other.id, days_ago(1), scope_a) == Decimal("6.000")

    def test_today_does_not_cascade(self, db_session, item_a, scope_a, today):
        add_opening(item_a, scope_a, today, 4)

        results, cascade = auto_save_closing(today, scope=scope_a)

        assert results[0].quantity == Decimal("4.000")
        assert cascade is None

    def test_committed_closing_survives_failed_follow_up(self, db_session, item_a, scope_a, days_ago, monkeypatch):
        from stockledger.services import cascade_service

        add_opening(item_a, scope_a, days_ago(2), 4)

        def store_down(organization_id):
            raise OperationalError("SELECT organizations", {}, Exception("db gone"))

        monkeypatch.setattr(cascade_service, "organization_today", store_down)

        results, cascade = auto_save_closing(days_ago(2), scope=scope_a)

        assert results[0].quantity == Decimal("4.000")
        assert not cascade.ok
        assert ledger_service.get_closing(item_a.id, days_ago(2), scope_a) == Decimal("4.000")


class TestRecorders:

    def test_restocking_past_date_cascades(self, db_session, item_a, scope_a, admin_a, days_ago):
        add_opening(item_a, scope_a, days_ago(2), 1)
        add_sale(item_a, scope_a, days_ago(1), 1)

        row, cascade = record_restocking(
            item_id=item_a.id,
            day=days_ago(2),
            quantity=Decimal("5"),
            scope=scope_a,
            actor_id=admin_a.id,
            cost_price=Decimal("95.00"),
        )

        assert row.recorded_by == admin_a.id
        assert cascade.ok
        assert ledger_service.get_closing(item_a.id, days_ago(1), scope_a) == Decimal("5.000")
        assert [r.id for r in list_restocking(days_ago(2), scope_a)] == [row.id]

    def test_waste_reduces_closing(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(1), 5)

        _, cascade = record_waste(
            item_id=item_a.id,
            day=days_ago(1),
            quantity=Decimal("2"),
            scope=scope_a,
            reason="spoiled",
        )

        assert cascade.ok
        assert ledger_service.get_closing(item_a.id, days_ago(1), scope_a) == Decimal("3.000")

    def test_recorders_reject_non_positive_quantity(self, db_session, item_a, scope_a, today):
        with pytest.raises(ValidationError):
            record_restocking(item_id=item_a.id, day=today, quantity=Decimal("0"), scope=scope_a)
        with pytest.raises(ValidationError):
            record_waste(item_id=item_a.id, day=today, quantity=Decimal("-1"), scope=scope_a)
