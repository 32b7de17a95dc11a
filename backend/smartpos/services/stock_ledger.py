# Overview: Service-layer operations for stock; the only writer of CurrentStock.

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CurrentStock, StockMovement
from ..models.stock import MOVEMENT_SALE, MOVEMENT_RETURN, MOVEMENT_ADJUSTMENT, MOVEMENT_TYPES
from smartpos.time_utils import utcnow
from .concurrency import lock_for_update
from .errors import InsufficientStock, StockRecordMissing, ValidationError
"""
Stock Ledger Invariants (authoritative)

- CurrentStock.quantity changes only together with a new StockMovement row,
  in the same DB transaction.
- StockMovement rows are append-only. Cancellation writes counterbalancing
  rows (reverses_movement_id) instead of updating or deleting.
- Replaying SUM(quantity_change) from zero equals CurrentStock.quantity.

Movement effects:
- SALE: quantity_change = -quantity. Not blocked on insufficient stock.
- RETURN: quantity_change = +quantity; 0 when the goods are defective
  (written off, movement still recorded).
- ADJUSTMENT: quantity_change = signed delta; rejected if the result
  would be negative.

Reversal (ticket cancellation):
- SALE movements add their quantity back.
- Non-defective RETURN movements take their quantity back out.
- Defective RETURNs and ADJUSTMENTs are not reversed.
"""


def _lock_stock(product_id: int) -> CurrentStock:
    stock = lock_for_update(
        db.session.query(CurrentStock).filter_by(product_id=product_id)
    ).first()
    if stock is None:
        raise StockRecordMissing(
            f"No stock record for product {product_id}",
            details={"product_id": product_id},
        )
    return stock


def lock_stock_rows(product_ids: Iterable[int]) -> dict[int, CurrentStock]:
    """
    Lock the stock rows for several products.

    Rows are locked in ascending product_id order so two tickets touching
    the same products cannot deadlock each other.
    """
    return {pid: _lock_stock(pid) for pid in sorted(set(product_ids))}


def _quantity_change(movement_type: str, quantity: int, is_defective: bool) -> int:
    if movement_type == MOVEMENT_SALE:
        return -quantity
    if movement_type == MOVEMENT_RETURN:
        return 0 if is_defective else quantity
    return quantity  # ADJUSTMENT: already signed


def record_movement(
    *,
    ticket_id: int,
    product_id: int,
    quantity: int,
    movement_type: str,
    is_defective: bool = False,
    now: datetime | None = None,
) -> tuple[StockMovement, int]:
    """
    Record one stock movement and apply it to current stock.

    For SALE and RETURN, quantity is the (positive) number of units. For
    ADJUSTMENT it is the signed delta.

    Returns:
        (movement, new stock level)

    Raises:
        ValidationError: unknown type, zero quantity, or non-positive
            quantity for SALE/RETURN
        InsufficientStock: ADJUSTMENT would drive stock below zero
        StockRecordMissing: product has no stock row
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("Adjustment delta must be non-zero", details={"product_id": product_id})
        is_defective = False
    elif quantity <= 0:
        raise ValidationError("quantity must be positive", details={"product_id": product_id})

    stock = _lock_stock(product_id)
    change = _quantity_change(movement_type, quantity, is_defective)
    new_level = stock.quantity + change

    if movement_type == MOVEMENT_ADJUSTMENT and new_level < 0:
        raise InsufficientStock(
            "Adjustment would make stock negative",
            details={
                "product_id": product_id,
                "current_quantity": stock.quantity,
                "requested_change": change,
            },
        )

    movement = StockMovement(
        ticket_id=ticket_id,
        product_id=product_id,
        movement_type=movement_type,
        quantity=abs(quantity),
        quantity_change=change,
        is_defective=is_defective,
        created_at=now or utcnow(),
    )
    db.session.add(movement)

    if change:
        stock.quantity = new_level
    db.session.flush()

    return movement, stock.quantity


def _reversal_change(movement: StockMovement) -> int:
    if movement.movement_type == MOVEMENT_SALE:
        return movement.quantity
    if movement.movement_type == MOVEMENT_RETURN and not movement.is_defective:
        return -movement.quantity
    return 0


def reverse(ticket_id: int, now: datetime | None = None) -> list[StockMovement]:
    """
    Counterbalance every reversible movement of a ticket.

    Movements that were already reversed are skipped, so calling this twice
    never moves stock twice.
    """
    now = now or utcnow()

    originals = (
        db.session.query(StockMovement)
        .filter(
            StockMovement.ticket_id == ticket_id,
            StockMovement.reverses_movement_id.is_(None),
        )
        .order_by(StockMovement.id)
        .all()
    )
    already_reversed = {
        row.reverses_movement_id
        for row in db.session.query(StockMovement.reverses_movement_id).filter(
            StockMovement.ticket_id == ticket_id,
            StockMovement.reverses_movement_id.isnot(None),
        )
    }

    to_reverse = [
        m for m in originals
        if m.id not in already_reversed and _reversal_change(m) != 0
    ]
    stocks = lock_stock_rows(m.product_id for m in to_reverse)

    reversals: list[StockMovement] = []
    for original in to_reverse:
        change = _reversal_change(original)
        stock = stocks[original.product_id]
        stock.quantity = stock.quantity + change

        reversal = StockMovement(
            ticket_id=ticket_id,
            product_id=original.product_id,
            movement_type=original.movement_type,
            quantity=original.quantity,
            quantity_change=change,
            is_defective=False,
            reverses_movement_id=original.id,
            created_at=now,
        )
        db.session.add(reversal)
        reversals.append(reversal)

    db.session.flush()
    current_app.logger.debug("Reversed %d movement(s) for ticket %s", len(reversals), ticket_id)
    return reversals


# =============================================================================
# QUERIES
# =============================================================================

def get_current_stock(product_id: int) -> int:
    stock = db.session.query(CurrentStock).filter_by(product_id=product_id).first()
    if stock is None:
        raise StockRecordMissing(
            f"No stock record for product {product_id}",
            details={"product_id": product_id},
        )
    return stock.quantity


def list_movements(*, product_id: int | None = None, ticket_id: int | None = None) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if ticket_id is not None:
        q = q.filter(StockMovement.ticket_id == ticket_id)
    return q.order_by(StockMovement.id).all()


def replay_stock(product_id: int) -> int:
    """Sum of signed movement changes from zero; must equal current stock."""
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_change), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)
