# Overview: Ticket workflow: create, cancel and bulk-adjust as single atomic units.

"""
Ticket Service

LIFECYCLE:
- PENDING -> COMPLETED inside one transaction (never observable half-built)
- COMPLETED -> CANCELLED via cancel_ticket (stock reversed in the same transaction)
- CANCELLED is terminal

ORDER OF WORK (create_ticket):
1. Resolve products and customer; fail before any write
2. Open the ticket in PENDING, attached to the current open cash session
3. Price each line, record its stock movement
4. Resolve coupon / discount against the subtotal
5. total = max(0, subtotal + tax - discount)
6. COMPLETED; count the coupon use
7. After commit: best-effort sale notification
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from flask import current_app

from ..extensions import db
from ..models import Ticket, TicketLine, Product
from ..models.stock import MOVEMENT_SALE, MOVEMENT_RETURN, MOVEMENT_ADJUSTMENT
from ..models.tickets import (
    TICKET_TYPES,
    TICKET_TYPE_SALE,
    TICKET_TYPE_RETURN,
    TICKET_STATUS_PENDING,
    TICKET_STATUS_COMPLETED,
    TICKET_STATUS_CANCELLED,
)
from smartpos.money import ZERO
from smartpos.time_utils import utcnow, normalize_datetime
from . import stock_ledger, pricing_service, promotions_service
from .cash_session_service import session_for_new_ticket, assert_writable
from .catalog_service import get_customer
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_ticket_number
from .errors import ProductNotFound, TicketNotFound, AlreadyCancelled, ValidationError
from .notification_service import SaleSummary, dispatch_sale_notification


@dataclass(frozen=True)
class TicketLineRequest:
    product_id: int
    quantity: int
    is_defective: bool = False


@dataclass(frozen=True)
class CreateTicketRequest:
    ticket_type: str
    lines: list[TicketLineRequest] = field(default_factory=list)
    customer_id: int | None = None
    coupon_code: str | None = None
    discount_id: int | None = None


def _validate_request(request: CreateTicketRequest) -> None:
    if request.ticket_type not in TICKET_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TICKET_TYPES)}")
    if not request.lines:
        raise ValidationError("A ticket needs at least one line")
    for index, line in enumerate(request.lines):
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"line": index, "product_id": line.product_id},
            )
        if line.is_defective and request.ticket_type != TICKET_TYPE_RETURN:
            raise ValidationError(
                "Only RETURN lines can be marked defective",
                details={"line": index, "product_id": line.product_id},
            )


def _resolve_products(product_ids) -> dict[int, Product]:
    """Load every referenced product or fail before anything is written."""
    wanted = set(product_ids)
    found = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_(wanted)).all()
    } if wanted else {}
    missing = sorted(wanted - set(found))
    if missing:
        raise ProductNotFound(
            f"Product not found: {missing[0]}",
            details={"product_ids": missing},
        )
    return found


def _lock_ticket(ticket_id: int) -> Ticket:
    ticket = lock_for_update(db.session.query(Ticket).filter_by(id=ticket_id)).first()
    if ticket is None:
        raise TicketNotFound("Ticket not found", details={"ticket_id": ticket_id})
    return ticket


# =============================================================================
# CREATE
# =============================================================================

def create_ticket(request: CreateTicketRequest, now: datetime | None = None) -> Ticket:
    """
    Create and complete a SALE or RETURN ticket as one atomic unit.

    Any failure (missing product, reconciled session, invalid promotion,
    stock row missing) rolls back the ticket, its lines and its movements.
    """
    _validate_request(request)
    now = normalize_datetime(now) or utcnow()
    movement_type = MOVEMENT_SALE if request.ticket_type == TICKET_TYPE_SALE else MOVEMENT_RETURN

    def _op():
        products = _resolve_products(line.product_id for line in request.lines)
        customer = get_customer(request.customer_id) if request.customer_id is not None else None

        session = session_for_new_ticket(now)
        assert_writable(session)

        ticket = Ticket(
            number=next_ticket_number(),
            ticket_type=request.ticket_type,
            status=TICKET_STATUS_PENDING,
            created_at=now,
            subtotal=ZERO,
            tax_amount=ZERO,
            discount_amount=ZERO,
            total=ZERO,
            customer_id=customer.id if customer else None,
            cash_session_id=session.id if session else None,
        )
        db.session.add(ticket)
        db.session.flush()

        stock_ledger.lock_stock_rows(products)

        priced = []
        for line in request.lines:
            pricing = pricing_service.price_line(products[line.product_id], line.quantity, request.ticket_type)
            movement, _ = stock_ledger.record_movement(
                ticket_id=ticket.id,
                product_id=line.product_id,
                quantity=line.quantity,
                movement_type=movement_type,
                is_defective=line.is_defective,
                now=now,
            )
            db.session.add(TicketLine(
                ticket_id=ticket.id,
                product_id=line.product_id,
                quantity=pricing.quantity,
                unit_price=pricing.unit_price,
                tax_percentage=pricing.tax_percentage,
                line_subtotal=pricing.line_subtotal,
                tax_amount=pricing.tax_amount,
                is_defective=line.is_defective,
                stock_movement_id=movement.id,
                created_at=now,
            ))
            priced.append(pricing)

        subtotal, tax = pricing_service.aggregate(priced)

        coupon_amount = ZERO
        if request.coupon_code:
            coupon_amount = promotions_service.apply_coupon(request.coupon_code, subtotal, now)
            ticket.coupon_code = request.coupon_code
        discount_amount = ZERO
        if request.discount_id is not None:
            discount_amount = promotions_service.apply_discount(
                request.discount_id, subtotal, now, customer_id=ticket.customer_id,
            )
            ticket.discount_id = request.discount_id
        discount_total = promotions_service.total_discount(coupon_amount, discount_amount)

        ticket.subtotal = subtotal
        ticket.tax_amount = tax
        ticket.discount_amount = discount_total
        ticket.total = pricing_service.compute_total(subtotal, tax, discount_total)
        ticket.status = TICKET_STATUS_COMPLETED
        ticket.completed_at = now

        if request.coupon_code:
            promotions_service.record_coupon_use(request.coupon_code)

        db.session.flush()
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info(
        "Ticket %s completed: type=%s total=%s session=%s",
        ticket.number, ticket.ticket_type, ticket.total, ticket.cash_session_id,
    )

    if ticket.ticket_type == TICKET_TYPE_SALE:
        dispatch_sale_notification(SaleSummary(
            ticket_number=ticket.number,
            customer_name=ticket.customer.display_name if ticket.customer else None,
            item_count=len(request.lines),
            total=str(ticket.total),
            created_at=ticket.created_at,
            status=ticket.status,
        ))

    return ticket


# =============================================================================
# CANCEL
# =============================================================================

def cancel_ticket(ticket_id: int, now: datetime | None = None) -> Ticket:
    """
    Cancel a ticket and reverse its stock movements in one transaction.

    Raises:
        TicketNotFound, AlreadyCancelled
        SessionReconciled: the ticket belongs to a reconciled session
        StockRecordMissing: a stock row vanished; the ticket stays as it was
    """
    now = normalize_datetime(now) or utcnow()

    def _op():
        ticket = _lock_ticket(ticket_id)
        if ticket.status == TICKET_STATUS_CANCELLED:
            raise AlreadyCancelled(
                f"Ticket {ticket.number} is already cancelled",
                details={"ticket_id": ticket.id},
            )
        assert_writable(ticket.cash_session)

        stock_ledger.reverse(ticket.id, now)

        ticket.status = TICKET_STATUS_CANCELLED
        ticket.cancelled_at = now
        db.session.flush()
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Ticket %s cancelled", ticket.number)
    return ticket


# =============================================================================
# BULK ADJUSTMENT
# =============================================================================

def bulk_adjustment(adjustments: Mapping[int, int], reason: str, now: datetime | None = None) -> Ticket:
    """
    Apply signed stock corrections to several products at once.

    Records one adjustment ticket (type RETURN, zero totals) with a line and
    an ADJUSTMENT movement per product. If any product would go negative
    the whole batch is rejected with InsufficientStock.
    """
    if not adjustments:
        raise ValidationError("adjustments must not be empty")
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    for product_id, delta in adjustments.items():
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError(
                "Adjustment delta must be a non-zero integer",
                details={"product_id": product_id},
            )
    now = normalize_datetime(now) or utcnow()

    def _op():
        products = _resolve_products(adjustments.keys())

        ticket = Ticket(
            number=next_ticket_number(),
            ticket_type=TICKET_TYPE_RETURN,
            status=TICKET_STATUS_PENDING,
            created_at=now,
            subtotal=ZERO,
            tax_amount=ZERO,
            discount_amount=ZERO,
            total=ZERO,
            reason=reason.strip(),
        )
        db.session.add(ticket)
        db.session.flush()

        stock_ledger.lock_stock_rows(products)

        for product_id in sorted(adjustments):
            delta = adjustments[product_id]
            movement, _ = stock_ledger.record_movement(
                ticket_id=ticket.id,
                product_id=product_id,
                quantity=delta,
                movement_type=MOVEMENT_ADJUSTMENT,
                now=now,
            )
            db.session.add(TicketLine(
                ticket_id=ticket.id,
                product_id=product_id,
                quantity=abs(delta),
                unit_price=products[product_id].purchase_price,
                tax_percentage=ZERO,
                line_subtotal=ZERO,
                tax_amount=ZERO,
                stock_movement_id=movement.id,
                created_at=now,
            ))

        ticket.status = TICKET_STATUS_COMPLETED
        ticket.completed_at = now
        db.session.flush()
        return ticket

    ticket = run_in_transaction(_op)
    current_app.logger.info("Stock adjustment %s applied to %d product(s): %s", ticket.number, len(adjustments), reason)
    return ticket


# =============================================================================
# QUERIES
# =============================================================================

def get_ticket(ticket_id: int) -> Ticket:
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None:
        raise TicketNotFound("Ticket not found", details={"ticket_id": ticket_id})
    return ticket


def get_ticket_by_number(number: str) -> Ticket:
    ticket = db.session.query(Ticket).filter_by(number=number).first()
    if ticket is None:
        raise TicketNotFound("Ticket not found", details={"number": number})
    return ticket


def list_tickets_for_customer(customer_id: int) -> list[Ticket]:
    return (
        db.session.query(Ticket)
        .filter_by(customer_id=customer_id)
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        .all()
    )


def list_tickets_between(start: datetime, end: datetime) -> list[Ticket]:
    """Tickets created in [start, end], oldest first."""
    start, end = normalize_datetime(start), normalize_datetime(end)
    if start > end:
        raise ValidationError("start must not be after end")
    return (
        db.session.query(Ticket)
        .filter(Ticket.created_at >= start, Ticket.created_at <= end)
        .order_by(Ticket.created_at, Ticket.id)
        .all()
    )


def list_recent_tickets(limit: int = 10) -> list[Ticket]:
    if limit <= 0:
        raise ValidationError("limit must be positive")
    return (
        db.session.query(Ticket)
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        .limit(limit)
        .all()
    )


def ticket_summary(ticket: Ticket) -> dict:
    return {
        "ticket": ticket.to_dict(),
        "lines": [line.to_dict() for line in ticket.lines],
    }
