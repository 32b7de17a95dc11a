from __future__ import annotations

from ..extensions import db
from smartpos.money import money_str
from smartpos.time_utils import to_utc_z, utcnow

DISCOUNT_TYPE_PERCENTAGE = "PERCENTAGE"
DISCOUNT_TYPE_FIXED_AMOUNT = "FIXED_AMOUNT"
DISCOUNT_TYPES = (DISCOUNT_TYPE_PERCENTAGE, DISCOUNT_TYPE_FIXED_AMOUNT)

APPLIES_TO_TOTAL = "TOTAL"
APPLIES_TO_PRODUCT_CATEGORY = "PRODUCT_CATEGORY"
APPLIES_TO_SPECIFIC_PRODUCT = "SPECIFIC_PRODUCT"
APPLICABLE_ON = (APPLIES_TO_TOTAL, APPLIES_TO_PRODUCT_CATEGORY, APPLIES_TO_SPECIFIC_PRODUCT)


class Coupon(db.Model):
    """
    Customer-presented coupon code.

    discount_value is a percentage (0-100) for PERCENTAGE coupons and an
    amount for FIXED_AMOUNT coupons. current_usage_count is only
    incremented by a ticket that completed with this coupon.
    """
    __tablename__ = "coupons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)  # PERCENTAGE, FIXED_AMOUNT
    discount_value = db.Column(db.Numeric(12, 2), nullable=False)

    minimum_purchase_amount = db.Column(db.Numeric(12, 2), nullable=True)
    maximum_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    max_usage_count = db.Column(db.Integer, nullable=True)
    current_usage_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": money_str(self.discount_value),
            "minimum_purchase_amount": money_str(self.minimum_purchase_amount),
            "maximum_discount_amount": money_str(self.maximum_discount_amount),
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "max_usage_count": self.max_usage_count,
            "current_usage_count": self.current_usage_count,
            "created_at": to_utc_z(self.created_at),
        }


class Discount(db.Model):
    """
    Store-defined discount selected by the cashier.

    Only applicable_on=TOTAL discounts reduce a ticket total; category and
    product scoped discounts are stored but contribute nothing at ticket level.
    """
    __tablename__ = "discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False)

    applicable_on = db.Column(db.String(32), nullable=False, default=APPLIES_TO_TOTAL)
    applicable_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    minimum_purchase_amount = db.Column(db.Numeric(12, 2), nullable=True)
    maximum_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    requires_customer = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": money_str(self.discount_value),
            "applicable_on": self.applicable_on,
            "applicable_product_id": self.applicable_product_id,
            "minimum_purchase_amount": money_str(self.minimum_purchase_amount),
            "maximum_discount_amount": money_str(self.maximum_discount_amount),
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "is_active": self.is_active,
            "requires_customer": self.requires_customer,
            "created_at": to_utc_z(self.created_at),
        }
