from datetime import timedelta
from decimal import Decimal

import pytest

from smartpos.models import Coupon, Ticket, TicketLine, StockMovement
from smartpos.services import (
    cash_session_service,
    catalog_service,
    promotions_service,
    stock_ledger,
    ticket_service,
)
from smartpos.services.errors import (
    AlreadyCancelled,
    CouponNotFound,
    CouponUsageExceeded,
    InsufficientStock,
    ProductNotFound,
    SessionReconciled,
    TicketNotFound,
    ValidationError,
)
from smartpos.services.ticket_service import CreateTicketRequest, TicketLineRequest
from smartpos.time_utils import utcnow


# =============================================================================
# CREATE
# =============================================================================

def test_sale_happy_path(make_product, sell):
    product = make_product(sale_price="10.00", tax_percentage="10.00", stock=5)

    ticket = sell((product, 2))

    assert ticket.status == "COMPLETED"
    assert ticket.ticket_type == "SALE"
    assert ticket.subtotal == Decimal("20.00")
    assert ticket.tax_amount == Decimal("2.00")
    assert ticket.discount_amount == Decimal("0.00")
    assert ticket.total == Decimal("22.00")
    assert ticket.completed_at is not None
    assert stock_ledger.get_current_stock(product.id) == 3

    lines = ticket.lines
    assert len(lines) == 1
    assert lines[0].unit_price == Decimal("10.00")
    assert lines[0].line_subtotal == Decimal("20.00")
    movement = stock_ledger.list_movements(ticket_id=ticket.id)[0]
    assert lines[0].stock_movement_id == movement.id
    assert movement.quantity_change == -2


def test_sale_totals_sum_rounded_lines(make_product, sell):
    a = make_product(sale_price="19.99", tax_percentage="16.00", stock=10)
    b = make_product(sale_price="0.99", purchase_price="0.50", tax_percentage="16.00", stock=10)

    ticket = sell((a, 3), (b, 1))

    # 59.97 * 0.16 = 9.5952 -> 9.60 ; 0.99 * 0.16 = 0.1584 -> 0.16
    assert ticket.subtotal == Decimal("60.96")
    assert ticket.tax_amount == Decimal("9.76")
    assert ticket.total == Decimal("70.72")


def test_sale_may_drive_stock_negative(make_product, sell):
    product = make_product(stock=1)

    sell((product, 4))

    assert stock_ledger.get_current_stock(product.id) == -3


def test_return_uses_purchase_price_and_restocks(make_product, sell):
    product = make_product(sale_price="10.00", purchase_price="6.00", tax_percentage="0", stock=5)

    ticket = sell((product, 2), ticket_type="RETURN")

    assert ticket.subtotal == Decimal("12.00")
    assert ticket.total == Decimal("12.00")
    assert stock_ledger.get_current_stock(product.id) == 7


def test_defective_return_does_not_restock(make_product, sell):
    product = make_product(stock=5)

    ticket = sell((product, 2, True), ticket_type="RETURN")

    assert ticket.lines[0].is_defective is True
    assert stock_ledger.get_current_stock(product.id) == 5
    movement = stock_ledger.list_movements(ticket_id=ticket.id)[0]
    assert movement.is_defective is True
    assert movement.quantity_change == 0


def test_defective_flag_rejected_on_sale(make_product, sell, row_counts):
    product = make_product(stock=5)
    before = row_counts()

    with pytest.raises(ValidationError):
        sell((product, 1, True))
    assert row_counts() == before


@pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
def test_bad_quantity_rejected(make_product, sell, quantity):
    product = make_product(stock=5)

    with pytest.raises(ValidationError):
        sell((product, quantity))


def test_empty_ticket_rejected(db_session):
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(CreateTicketRequest(ticket_type="SALE", lines=[]))


def test_unknown_product_writes_nothing(make_product, sell, row_counts):
    product = make_product(stock=5)
    before = row_counts()

    with pytest.raises(ProductNotFound) as exc:
        ticket_service.create_ticket(CreateTicketRequest(
            ticket_type="SALE",
            lines=[TicketLineRequest(product_id=product.id, quantity=1),
                   TicketLineRequest(product_id=99999, quantity=1)],
        ))

    assert exc.value.details == {"product_ids": [99999]}
    assert row_counts() == before
    assert stock_ledger.get_current_stock(product.id) == 5


def test_invalid_coupon_rolls_back_everything(make_product, sell, row_counts, db_session):
    product = make_product(stock=5)
    before = row_counts()
    lines_before = db_session.query(TicketLine).count()

    with pytest.raises(CouponNotFound):
        sell((product, 2), coupon_code="MISSING")

    assert row_counts() == before
    assert db_session.query(TicketLine).count() == lines_before
    assert stock_ledger.get_current_stock(product.id) == 5


def test_coupon_and_discount_combine(make_product, make_coupon, make_discount, sell, db_session):
    product = make_product(sale_price="50.00", tax_percentage="10.00", stock=5)
    make_coupon(code="SAVE10")
    discount = make_discount(discount_value=Decimal("5.00"))

    ticket = sell((product, 2), coupon_code="SAVE10", discount_id=discount.id)

    # subtotal 100, tax 10, coupon 10, discount 5
    assert ticket.discount_amount == Decimal("15.00")
    assert ticket.total == Decimal("95.00")
    assert ticket.coupon_code == "SAVE10"
    assert ticket.discount_id == discount.id
    coupon = db_session.query(Coupon).filter_by(code="SAVE10").one()
    assert coupon.current_usage_count == 1


def test_total_clamped_at_zero(make_product, make_discount, sell):
    product = make_product(sale_price="10.00", tax_percentage="0", stock=5)
    discount = make_discount(discount_value=Decimal("50.00"))

    ticket = sell((product, 1), discount_id=discount.id)

    assert ticket.discount_amount == Decimal("50.00")
    assert ticket.total == Decimal("0.00")


def test_coupon_usage_cap_enforced_across_tickets(make_product, make_coupon, sell, row_counts):
    product = make_product(stock=5)
    make_coupon(code="LAST", max_usage_count=1)

    sell((product, 1), coupon_code="LAST")
    before = row_counts()

    with pytest.raises(CouponUsageExceeded):
        sell((product, 1), coupon_code="LAST")
    assert row_counts() == before


def test_ticket_attaches_to_open_session(make_product, sell):
    product = make_product(stock=5)
    session = cash_session_service.open_session()

    ticket = sell((product, 1))

    assert ticket.cash_session_id == session.id


def test_ticket_without_session_is_allowed(make_product, sell):
    product = make_product(stock=5)

    ticket = sell((product, 1))

    assert ticket.cash_session_id is None


def test_customer_recorded(make_product, customer, sell):
    product = make_product(stock=5)

    ticket = sell((product, 1), customer_id=customer.id)

    assert ticket.customer_id == customer.id
    assert ticket.to_dict()["customer_name"] == "Maria Lopez"


def test_ticket_numbers_are_sequential(make_product, sell):
    # make_product seeds stock through adjustment ticket TICKET-000001
    product = make_product(stock=5)

    first = sell((product, 1))
    second = sell((product, 1))

    assert first.number == "TICKET-000002"
    assert second.number == "TICKET-000003"


def test_failed_ticket_does_not_consume_a_number(make_product, sell):
    product = make_product(stock=5)

    with pytest.raises(CouponNotFound):
        sell((product, 1), coupon_code="MISSING")
    ticket = sell((product, 1))

    assert ticket.number == "TICKET-000002"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def test_sale_sends_notification(make_product, customer, sell, notifier):
    product = make_product(stock=5)
    other = make_product(stock=5)

    ticket = sell((product, 2), (other, 1), customer_id=customer.id)

    assert len(notifier.summaries) == 1
    summary = notifier.summaries[0]
    assert summary.ticket_number == ticket.number
    assert summary.customer_name == "Maria Lopez"
    assert summary.item_count == 2
    assert summary.total == str(ticket.total)
    assert summary.status == "COMPLETED"


def test_return_sends_no_notification(make_product, sell, notifier):
    product = make_product(stock=5)

    sell((product, 1), ticket_type="RETURN")

    assert notifier.summaries == []


def test_notification_failure_does_not_fail_ticket(make_product, sell, notifier, db_session):
    product = make_product(stock=5)
    notifier.fail = True

    ticket = sell((product, 1))

    assert ticket.status == "COMPLETED"
    assert db_session.get(Ticket, ticket.id) is not None
    assert stock_ledger.get_current_stock(product.id) == 4


# =============================================================================
# SESSION GUARD
# =============================================================================

def _reconcile_open_session_in_place(db_session):
    """Force the open session into reconciled-but-open, which the guard must reject."""
    session = cash_session_service.current_open_session()
    session.reconciled = True
    db_session.commit()
    return session


def test_new_ticket_rejected_when_open_session_reconciled(make_product, sell, row_counts, db_session):
    product = make_product(stock=5)
    cash_session_service.open_session()
    _reconcile_open_session_in_place(db_session)
    before = row_counts()

    with pytest.raises(SessionReconciled):
        sell((product, 1))

    assert row_counts() == before
    assert stock_ledger.get_current_stock(product.id) == 5


def test_cancel_rejected_for_reconciled_session(make_product, sell, db_session):
    product = make_product(stock=5)
    session = cash_session_service.open_session()
    ticket = sell((product, 2))
    cash_session_service.close_session(session.id)
    cash_session_service.reconcile_session(session.id)

    with pytest.raises(SessionReconciled):
        ticket_service.cancel_ticket(ticket.id)

    db_session.refresh(ticket)
    assert ticket.status == "COMPLETED"
    assert stock_ledger.get_current_stock(product.id) == 3


# =============================================================================
# CANCEL
# =============================================================================

def test_cancel_sale_restores_stock(make_product, sell):
    product = make_product(stock=5)
    ticket = sell((product, 2))

    cancelled = ticket_service.cancel_ticket(ticket.id)

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancelled_at is not None
    assert stock_ledger.get_current_stock(product.id) == 5
    assert stock_ledger.replay_stock(product.id) == 5
    movements = stock_ledger.list_movements(ticket_id=ticket.id)
    assert [m.quantity_change for m in movements] == [-2, 2]
    assert movements[1].reverses_movement_id == movements[0].id


def test_cancel_return_removes_restocked_units(make_product, sell):
    product = make_product(stock=5)
    ticket = sell((product, 3), (product, 1, True), ticket_type="RETURN")
    assert stock_ledger.get_current_stock(product.id) == 8

    ticket_service.cancel_ticket(ticket.id)

    assert stock_ledger.get_current_stock(product.id) == 5


def test_cancel_twice(make_product, sell, db_session):
    product = make_product(stock=5)
    ticket = sell((product, 2))
    ticket_service.cancel_ticket(ticket.id)
    movement_count = db_session.query(StockMovement).count()

    with pytest.raises(AlreadyCancelled):
        ticket_service.cancel_ticket(ticket.id)

    assert db_session.query(StockMovement).count() == movement_count
    assert stock_ledger.get_current_stock(product.id) == 5


def test_cancel_unknown_ticket(db_session):
    with pytest.raises(TicketNotFound):
        ticket_service.cancel_ticket(4242)


def test_cancel_keeps_coupon_usage(make_product, make_coupon, sell, db_session):
    product = make_product(stock=5)
    make_coupon(code="KEEP")
    ticket = sell((product, 1), coupon_code="KEEP")

    ticket_service.cancel_ticket(ticket.id)

    coupon = db_session.query(Coupon).filter_by(code="KEEP").one()
    assert coupon.current_usage_count == 1


# =============================================================================
# BULK ADJUSTMENT
# =============================================================================

def test_bulk_adjustment_applies_all(make_product):
    a = make_product(stock=10)
    b = make_product(stock=2)

    ticket = ticket_service.bulk_adjustment({a.id: -4, b.id: 3}, "Cycle count")

    assert ticket.status == "COMPLETED"
    assert ticket.ticket_type == "RETURN"
    assert ticket.reason == "Cycle count"
    assert ticket.is_adjustment
    assert ticket.total == Decimal("0.00")
    assert ticket.cash_session_id is None
    assert stock_ledger.get_current_stock(a.id) == 6
    assert stock_ledger.get_current_stock(b.id) == 5
    assert sorted(line.quantity for line in ticket.lines) == [3, 4]
    movements = stock_ledger.list_movements(ticket_id=ticket.id)
    assert {m.movement_type for m in movements} == {"ADJUSTMENT"}


def test_bulk_adjustment_is_all_or_nothing(make_product, row_counts):
    a = make_product(stock=10)
    b = make_product(stock=2)
    before = row_counts()

    with pytest.raises(InsufficientStock) as exc:
        ticket_service.bulk_adjustment({a.id: -4, b.id: -3}, "Shrinkage")

    assert exc.value.details["product_id"] == b.id
    assert row_counts() == before
    assert stock_ledger.get_current_stock(a.id) == 10
    assert stock_ledger.get_current_stock(b.id) == 2


def test_bulk_adjustment_is_not_attached_to_session(make_product):
    product = make_product()
    cash_session_service.open_session()

    ticket = ticket_service.bulk_adjustment({product.id: 5}, "Delivery")

    assert ticket.cash_session_id is None


@pytest.mark.parametrize("adjustments,reason", [
    ({}, "Count"),
    ({1: 0}, "Count"),
    ({1: 5}, ""),
    ({1: 5}, "   "),
])
def test_bulk_adjustment_validation(db_session, adjustments, reason):
    with pytest.raises(ValidationError):
        ticket_service.bulk_adjustment(adjustments, reason)


def test_bulk_adjustment_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        ticket_service.bulk_adjustment({999: 5}, "Count")


# =============================================================================
# QUERIES
# =============================================================================

def test_ticket_lookups(make_product, customer, sell):
    product = make_product(stock=10)
    first = sell((product, 1), customer_id=customer.id)
    second = sell((product, 1), customer_id=customer.id)
    sell((product, 1))

    assert ticket_service.get_ticket_by_number(first.number).id == first.id
    assert [t.id for t in ticket_service.list_tickets_for_customer(customer.id)] == [second.id, first.id]
    assert len(ticket_service.list_recent_tickets(limit=2)) == 2

    summary = ticket_service.ticket_summary(first)
    assert summary["ticket"]["number"] == first.number
    assert summary["lines"][0]["product_id"] == product.id

    with pytest.raises(TicketNotFound):
        ticket_service.get_ticket_by_number("TICKET-999999")
    with pytest.raises(ValidationError):
        ticket_service.list_recent_tickets(limit=0)


def test_tickets_between(make_product, sell):
    product = make_product(stock=10)
    ticket = sell((product, 1))
    now = utcnow()

    found = ticket_service.list_tickets_between(now - timedelta(minutes=5), now + timedelta(minutes=5))

    assert ticket.id in [t.id for t in found]
    assert ticket_service.list_tickets_between(now + timedelta(days=1), now + timedelta(days=2)) == []
    with pytest.raises(ValidationError):
        ticket_service.list_tickets_between(now, now - timedelta(days=1))


def test_coupon_larger_than_ticket_clamps_total(make_product, make_coupon, sell):
    product = make_product(sale_price="25.00", purchase_price="10.00", tax_percentage="16.00", stock=5)
    make_coupon(code="BIG70", discount_type="FIXED_AMOUNT", discount_value=Decimal("70.00"))

    ticket = sell((product, 2), coupon_code="BIG70")

    assert ticket.subtotal == Decimal("50.00")
    assert ticket.tax_amount == Decimal("8.00")
    assert ticket.total == Decimal("0.00")


def test_adjustment_below_zero_persists_no_ticket(make_product, db_session):
    product = make_product(stock=5)
    tickets_before = db_session.query(Ticket).count()

    with pytest.raises(InsufficientStock):
        ticket_service.bulk_adjustment({product.id: -10}, "Damaged")

    assert stock_ledger.get_current_stock(product.id) == 5
    assert db_session.query(Ticket).count() == tickets_before


def test_ticket_joins_callers_uncommitted_work(db_session):
    product = catalog_service.create_product(
        code="P-PEND", name="Pending product", sale_price="4.00", purchase_price="2.00", commit=False,
    )

    ticket = ticket_service.create_ticket(CreateTicketRequest(
        ticket_type="SALE",
        lines=[TicketLineRequest(product_id=product.id, quantity=1)],
    ))

    assert ticket.status == "COMPLETED"
    assert catalog_service.get_product_by_code("P-PEND").id == product.id
    assert stock_ledger.get_current_stock(product.id) == -1


def test_coupon_created_in_same_transaction_applies(make_product, db_session):
    product = make_product(sale_price="10.00", tax_percentage="0", stock=5)
    now = utcnow()
    promotions_service.create_coupon({
        "code": "PENDING5",
        "discount_type": "FIXED_AMOUNT",
        "discount_value": Decimal("5.00"),
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=1),
    }, commit=False)

    ticket = ticket_service.create_ticket(CreateTicketRequest(
        ticket_type="SALE",
        lines=[TicketLineRequest(product_id=product.id, quantity=1)],
        coupon_code="PENDING5",
    ))

    assert ticket.total == Decimal("5.00")
    assert db_session.query(Coupon).filter_by(code="PENDING5").one().current_usage_count == 1
