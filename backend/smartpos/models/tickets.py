from __future__ import annotations

from ..extensions import db
from smartpos.money import money_str
from smartpos.time_utils import to_utc_z, utcnow

TICKET_TYPE_SALE = "SALE"
TICKET_TYPE_RETURN = "RETURN"
TICKET_TYPES = (TICKET_TYPE_SALE, TICKET_TYPE_RETURN)

TICKET_STATUS_PENDING = "PENDING"
TICKET_STATUS_COMPLETED = "COMPLETED"
TICKET_STATUS_CANCELLED = "CANCELLED"


class Ticket(db.Model):
    """
    Sale or return ticket, the unit of atomicity for the POS engine.

    LIFECYCLE:
    - PENDING: only ever visible inside the creating transaction
    - COMPLETED: lines and totals are final
    - CANCELLED: stock reversed; terminal

    total = max(0, subtotal + tax_amount - discount_amount)
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.Index("ix_tickets_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "TICKET-000042")
    number = db.Column(db.String(64), nullable=False, unique=True)
    ticket_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=TICKET_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)

    # Promotions applied (at most one of each)
    coupon_code = db.Column(db.String(50), nullable=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)

    # Free-text reason, set for stock adjustments
    reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("tickets", lazy=True))
    cash_session = db.relationship("CashSession", backref=db.backref("tickets", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_adjustment(self) -> bool:
        return self.reason is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "type": self.ticket_type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "discount_amount": money_str(self.discount_amount),
            "total": money_str(self.total),
            "customer_id": self.customer_id,
            "customer_name": self.customer.display_name if self.customer else None,
            "cash_session_id": self.cash_session_id,
            "coupon_code": self.coupon_code,
            "discount_id": self.discount_id,
            "reason": self.reason,
        }


class TicketLine(db.Model):
    """Priced line on a ticket. Immutable once written."""
    __tablename__ = "ticket_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    is_defective = db.Column(db.Boolean, nullable=False, default=False)

    # Movement written for this line
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = db.relationship("Ticket", backref=db.backref("lines", lazy=True, order_by="TicketLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "tax_percentage": money_str(self.tax_percentage),
            "line_subtotal": money_str(self.line_subtotal),
            "tax_amount": money_str(self.tax_amount),
            "is_defective": self.is_defective,
            "stock_movement_id": self.stock_movement_id,
        }
