from __future__ import annotations

from ..extensions import db
from smartpos.money import money_str
from smartpos.time_utils import to_utc_z, utcnow


class CashSession(db.Model):
    """
    Cash register session.

    LIFECYCLE:
    - open: closed_at IS NULL, tickets attach to it
    - closed: totals summed from COMPLETED tickets, closed_at stamped
    - reconciled: totals accepted as final; irreversible

    At most one session is open at a time (enforced by open_session).
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index("ix_cash_sessions_open", "closed_at", "reconciled"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    total_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_returns = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    reconciled = db.Column(db.Boolean, nullable=False, default=False, index=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_name": self.cashier_name,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "total_sales": money_str(self.total_sales),
            "total_returns": money_str(self.total_returns),
            "net_amount": money_str(self.net_amount),
            "reconciled": self.reconciled,
            "reconciled_at": to_utc_z(self.reconciled_at),
            "is_open": self.is_open,
        }
