from __future__ import annotations

from ..extensions import db
from smartpos.time_utils import to_utc_z, utcnow

MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = (MOVEMENT_SALE, MOVEMENT_RETURN, MOVEMENT_ADJUSTMENT)


class CurrentStock(db.Model):
    """
    Current on-hand quantity, one row per product.

    Written only by stock_ledger, always together with a StockMovement.
    version_id gives optimistic concurrency on top of row locking.
    """
    __tablename__ = "current_stock"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("current_stock", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only stock audit record.

    quantity is unsigned; quantity_change is the signed effect actually
    applied to CurrentStock (0 for defective returns). A cancelled ticket
    is counterbalanced by new rows pointing back via reverses_movement_id;
    existing rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)  # SALE, RETURN, ADJUSTMENT
    quantity = db.Column(db.Integer, nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    is_defective = db.Column(db.Boolean, nullable=False, default=False)

    reverses_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def has_quantity_changed(self) -> bool:
        return self.quantity_change != 0

    @property
    def is_reversal(self) -> bool:
        return self.reverses_movement_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "quantity_change": self.quantity_change,
            "has_quantity_changed": self.has_quantity_changed,
            "is_defective": self.is_defective,
            "reverses_movement_id": self.reverses_movement_id,
            "created_at": to_utc_z(self.created_at),
        }
