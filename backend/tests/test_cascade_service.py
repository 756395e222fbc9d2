# Overview: Pytest coverage for forward propagation of closing stock.

"""
Cascade Tests

Prove that re-settling a past day walks forward correctly:
1. opening(D+1) == closing(D) for every day with downstream activity
2. Days beyond the last activity are never fabricated
3. Manual openings survive propagation; manual closings are re-settled
4. A failing item does not stop the others, and the failure is reported
5. The walk is bounded by LEDGER_CASCADE_MAX_DAYS
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.extensions import db
from stockledger.models import OpeningStock, ClosingStock
from stockledger.models.inventory import SOURCE_MANUAL
from stockledger.services import cascade_service, ledger_service
from stockledger.services.cascade_service import (
    cascade,
    cascade_update_from_date,
    reconcile_history,
)
from stockledger.services.ledger_service import StoreError
from stockledger.services.sales_service import update_sale
from stockledger.validation import ValidationError

from conftest import add_opening, add_closing, add_restocking, add_sale, add_waste, make_item


def _opening(item, day, scope):
    return ledger_service.get_opening(item.id, day, scope)


def _closing(item, day, scope):
    return ledger_service.get_closing(item.id, day, scope)


class TestForwardWalk:

    def test_scenario_a_next_day_opening(self, db_session, item_a, scope_a, days_ago):
        """Closing of 11 becomes the next day's opening."""
        day = days_ago(2)
        add_opening(item_a, scope_a, day, 10)
        add_restocking(item_a, scope_a, day, 5)
        add_sale(item_a, scope_a, day, 3)
        add_waste(item_a, scope_a, day, 1)
        add_restocking(item_a, scope_a, days_ago(1), 1)

        result = cascade(day, scope_a)

        assert result.ok
        assert _closing(item_a, day, scope_a) == Decimal("11.000")
        assert _opening(item_a, days_ago(1), scope_a) == Decimal("11.000")
        assert _closing(item_a, days_ago(1), scope_a) == Decimal("12.000")

    def test_scenario_c_sale_edit_recomputes_following_days(self, db_session, item_a, scope_a, admin_a, days_ago, today):
        """Editing a 3-days-ago sale re-settles that day and the two after it only."""
        d3, d2, d1 = days_ago(3), days_ago(2), days_ago(1)
        add_opening(item_a, scope_a, d3, 20)
        sale = add_sale(item_a, scope_a, d3, 2)
        add_restocking(item_a, scope_a, d2, 2)
        add_sale(item_a, scope_a, d1, 1)
        cascade(d3, scope_a)

        assert _closing(item_a, d1, scope_a) == Decimal("19.000")

        _, result = update_sale(sale.id, {"quantity": Decimal("5")}, scope=scope_a, actor_id=admin_a.id)

        assert result is not None and result.ok
        assert _closing(item_a, d3, scope_a) == Decimal("15.000")
        assert _opening(item_a, d2, scope_a) == Decimal("15.000")
        assert _closing(item_a, d2, scope_a) == Decimal("17.000")
        assert _opening(item_a, d1, scope_a) == Decimal("17.000")
        assert _closing(item_a, d1, scope_a) == Decimal("16.000")
        # Today has no activity: nothing is written for it
        assert ledger_service.get_opening_row(item_a.id, today, scope_a) is None
        assert ledger_service.get_closing_row(item_a.id, today, scope_a) is None

    def test_stops_after_last_activity(self, db_session, item_a, scope_a, days_ago):
        day = days_ago(10)
        add_opening(item_a, scope_a, day, 4)

        result = cascade(day, scope_a)

        assert result.steps == 1
        assert _closing(item_a, day, scope_a) == Decimal("4.000")
        assert db.session.query(OpeningStock).count() == 1
        assert db.session.query(ClosingStock).count() == 1

    def test_fills_gap_days_up_to_last_activity(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(4), 9)
        add_sale(item_a, scope_a, days_ago(1), 2)

        result = cascade(days_ago(4), scope_a)

        assert result.steps == 4
        assert _opening(item_a, days_ago(3), scope_a) == Decimal("9.000")
        assert _opening(item_a, days_ago(1), scope_a) == Decimal("9.000")
        assert _closing(item_a, days_ago(1), scope_a) == Decimal("7.000")

    def test_items_without_activity_after_start_are_skipped(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(5), 3)

        result = cascade(days_ago(2), scope_a)

        assert result.steps == 0
        assert result.items_processed == 1
        assert _closing(item_a, days_ago(2), scope_a) is None

    def test_today_reclosed_only_when_closing_exists(self, db_session, item_a, scope_a, days_ago, today):
        add_opening(item_a, scope_a, days_ago(1), 5)
        add_sale(item_a, scope_a, today, 1)

        cascade(days_ago(1), scope_a)
        assert _opening(item_a, today, scope_a) == Decimal("5.000")
        assert ledger_service.get_closing_row(item_a.id, today, scope_a) is None

        add_closing(item_a, scope_a, today, 99)
        cascade(days_ago(1), scope_a)
        assert _closing(item_a, today, scope_a) == Decimal("4.000")

    def test_idempotent(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(3), 10)
        add_sale(item_a, scope_a, days_ago(2), 3)
        add_sale(item_a, scope_a, days_ago(1), 3)

        first = cascade(days_ago(3), scope_a)
        snapshot = sorted((r.date, r.quantity) for r in db.session.query(ClosingStock).all())
        second = cascade(days_ago(3), scope_a)

        assert first.days_updated > 0
        assert second.days_updated == 0
        assert sorted((r.date, r.quantity) for r in db.session.query(ClosingStock).all()) == snapshot

    def test_future_start_is_a_no_op(self, db_session, item_a, scope_a, days_ago):
        result = cascade(days_ago(-1), scope_a)
        assert result.steps == 0
        assert result.ok


class TestManualEntries:

    def test_manual_opening_is_not_overwritten(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(3), 10)
        add_opening(item_a, scope_a, days_ago(2), 50, source=SOURCE_MANUAL)
        add_sale(item_a, scope_a, days_ago(2), 5)
        add_sale(item_a, scope_a, days_ago(1), 1)

        result = cascade(days_ago(3), scope_a)

        assert result.ok
        row = ledger_service.get_opening_row(item_a.id, days_ago(2), scope_a)
        assert row.quantity == Decimal("50.000")
        assert row.source == SOURCE_MANUAL
        assert _closing(item_a, days_ago(2), scope_a) == Decimal("45.000")
        assert _opening(item_a, days_ago(1), scope_a) == Decimal("45.000")

    def test_manual_closing_is_resettled_from_components(self, db_session, item_a, scope_a, days_ago):
        add_opening(item_a, scope_a, days_ago(2), 10)
        add_closing(item_a, scope_a, days_ago(2), 7, source=SOURCE_MANUAL)
        add_sale(item_a, scope_a, days_ago(1), 2)

        result = cascade(days_ago(2), scope_a)

        assert result.ok
        row = ledger_service.get_closing_row(item_a.id, days_ago(2), scope_a)
        assert row.quantity == Decimal("10.000")
        assert row.source != SOURCE_MANUAL
        assert _opening(item_a, days_ago(1), scope_a) == Decimal("10.000")
        assert _closing(item_a, days_ago(1), scope_a) == Decimal("8.000")


class TestFailureIsolation:

    def test_failing_item_does_not_stop_others(self, db_session, org_a, item_a, scope_a, days_ago, monkeypatch):
        healthy = make_item(db_session, org_a, "Beans")
        for item in (item_a, healthy):
            add_opening(item, scope_a, days_ago(2), 4)
            add_sale(item, scope_a, days_ago(1), 1)

        real_close_day = cascade_service.close_day
        calls = []

        def flaky_close_day(item_id, day, scope, **kwargs):
            if item_id == item_a.id:
                calls.append(day)
                raise StoreError("failed to write closing stock")
            return real_close_day(item_id, day, scope, **kwargs)

        monkeypatch.setattr(cascade_service, "close_day", flaky_close_day)

        result = cascade(days_ago(2), scope_a)

        assert not result.ok
        assert [e.item_id for e in result.errors] == [item_a.id]
        assert result.errors[0].day == days_ago(2)
        # Retried once at the day level
        assert len(calls) == 2
        assert "1 item(s) failed" in str(result.failure)
        assert result.to_dict()["warning"] is not None

        assert _closing(healthy, days_ago(1), scope_a) == Decimal("3.000")
        assert _closing(item_a, days_ago(2), scope_a) is None

    def test_transient_failure_is_retried(self, db_session, item_a, scope_a, days_ago, monkeypatch):
        add_opening(item_a, scope_a, days_ago(1), 4)

        real_close_day = cascade_service.close_day
        attempts = []

        def close_once_failing(item_id, day, scope, **kwargs):
            attempts.append(day)
            if len(attempts) == 1:
                raise StoreError("transient")
            return real_close_day(item_id, day, scope, **kwargs)

        monkeypatch.setattr(cascade_service, "close_day", close_once_failing)

        result = cascade(days_ago(1), scope_a)

        assert result.ok
        assert _closing(item_a, days_ago(1), scope_a) == Decimal("4.000")

    def test_unexpected_error_is_recorded(self, db_session, item_a, scope_a, days_ago, monkeypatch):
        add_opening(item_a, scope_a, days_ago(1), 4)

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(cascade_service, "_walk_item", broken)

        result = cascade(days_ago(1), scope_a)

        assert len(result.errors) == 1
        assert result.errors[0].error == "boom"

    def test_setup_failure_is_reported_not_raised(self, db_session, item_a, scope_a, days_ago, monkeypatch):
        add_opening(item_a, scope_a, days_ago(2), 4)

        def store_down(*args, **kwargs):
            raise OperationalError("SELECT items", {}, Exception("db gone"))

        monkeypatch.setattr(ledger_service, "list_items", store_down)

        result = cascade(days_ago(2), scope_a)

        assert not result.ok
        assert result.items_processed == 0
        assert result.errors[0].item_id is None
        assert "db gone" in result.errors[0].error
        assert result.to_dict()["errors"][0]["item_id"] is None

    def test_reconcile_history_reports_unreadable_calendar(self, db_session, item_a, scope_a, days_ago, monkeypatch):
        def store_down(organization_id):
            raise OperationalError("SELECT organizations", {}, Exception("db gone"))

        monkeypatch.setattr(cascade_service, "organization_today", store_down)

        result = reconcile_history(days_ago(1), scope_a, actor_id=None)

        assert result is not None
        assert not result.ok
        assert result.steps == 0


class TestTruncation:

    def test_step_cap_truncates_item(self, app, db_session, item_a, scope_a, days_ago, monkeypatch):
        monkeypatch.setitem(app.config, "LEDGER_CASCADE_MAX_DAYS", 2)
        add_opening(item_a, scope_a, days_ago(5), 10)
        add_sale(item_a, scope_a, days_ago(1), 1)

        result = cascade(days_ago(5), scope_a)

        assert result.truncated_item_ids == [item_a.id]
        assert result.steps == 2
        assert not result.ok
        assert "truncated" in str(result.failure)
        assert _opening(item_a, days_ago(3), scope_a) == Decimal("10.000")
        assert _closing(item_a, days_ago(3), scope_a) is None


class TestEntryPoints:

    def test_cascade_update_from_date_validates(self, db_session, item_a, scope_a, days_ago):
        with pytest.raises(ValidationError):
            cascade_update_from_date(days_ago(-1).isoformat(), None, scope_a)
        with pytest.raises(ValidationError):
            cascade_update_from_date(None, None, scope_a)

    def test_cascade_update_from_date_walks_all_items(self, db_session, org_a, item_a, scope_a, days_ago):
        other = make_item(db_session, org_a, "Beans")
        add_opening(item_a, scope_a, days_ago(2), 1)
        add_opening(other, scope_a, days_ago(2), 2)
        add_sale(other, scope_a, days_ago(1), 1)

        result = cascade_update_from_date(days_ago(2).isoformat(), None, scope_a)

        assert result.items_processed == 2
        assert _closing(other, days_ago(1), scope_a) == Decimal("1.000")

    def test_reconcile_history_skips_today(self, db_session, item_a, scope_a, today):
        assert reconcile_history(today, scope_a, actor_id=None) is None

    def test_other_scopes_untouched(self, db_session, org_a, item_a, item_b, scope_a, scope_b, days_ago):
        add_opening(item_b, scope_b, days_ago(2), 8)
        add_opening(item_a, scope_a, days_ago(2), 3)

        cascade(days_ago(2), scope_a)

        assert _closing(item_b, days_ago(2), scope_b) is None
        assert db.session.query(ClosingStock).filter_by(organization_id=scope_b.organization_id).count() == 0
