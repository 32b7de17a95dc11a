# Overview: Coupon and discount eligibility and amounts.

"""
Promotion rules.

- A ticket applies at most one coupon and at most one discount; both are
  computed against the pre-tax subtotal and added together.
- Validity windows are inclusive: valid_from <= now <= valid_until.
- PERCENTAGE amounts round half-up to cents; FIXED_AMOUNT is the value as
  stored. Either is capped by maximum_discount_amount when set.
- Coupon usage is only counted by a ticket that completes
  (record_coupon_use, called by the ticket service).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from ..extensions import db
from ..models import Coupon, Discount
from ..models.promotions import (
    DISCOUNT_TYPES,
    DISCOUNT_TYPE_PERCENTAGE,
    APPLICABLE_ON,
    APPLIES_TO_TOTAL,
)
from smartpos.money import ZERO, HUNDRED, round_money, percent_of, to_decimal
from smartpos.time_utils import utcnow, normalize_datetime
from .concurrency import lock_for_update
from .errors import (
    CouponNotFound,
    CouponInactive,
    CouponExpired,
    CouponUsageExceeded,
    DiscountNotFound,
    DiscountInactive,
    DiscountExpired,
    MinimumPurchaseNotMet,
    CustomerRequired,
    ValidationError,
)


def _calculate(discount_type: str, value, subtotal: Decimal, maximum) -> Decimal:
    if discount_type == DISCOUNT_TYPE_PERCENTAGE:
        amount = percent_of(subtotal, value)
    else:
        amount = round_money(value)
    if maximum is not None and amount > round_money(maximum):
        amount = round_money(maximum)
    return amount


def _optional_money(value) -> Decimal | None:
    return None if value is None else round_money(value)


def _optional_count(value, field: str) -> int | None:
    """Strict non-negative integer: ints or plain digit strings; no bools or floats."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    return value


def _in_window(valid_from: datetime, valid_until: datetime, now: datetime) -> bool:
    return normalize_datetime(valid_from) <= now <= normalize_datetime(valid_until)


# =============================================================================
# COUPONS
# =============================================================================

def get_coupon_by_code(code: str, *, lock: bool = False) -> Coupon:
    q = db.session.query(Coupon).filter_by(code=code)
    if lock:
        q = lock_for_update(q)
    coupon = q.first()
    if coupon is None:
        raise CouponNotFound(f"Coupon not found: {code!r}", details={"code": code})
    return coupon


def apply_coupon(code: str, subtotal, now: datetime | None = None, *, coupon: Coupon | None = None) -> Decimal:
    """
    Validate a coupon against a subtotal and return the amount to subtract.

    Does not touch the usage count.
    """
    now = normalize_datetime(now) or utcnow()
    subtotal = round_money(subtotal)
    if coupon is None:
        coupon = get_coupon_by_code(code)

    if not coupon.is_active:
        raise CouponInactive(f"Coupon {coupon.code} is not active", details={"code": coupon.code})
    if not _in_window(coupon.valid_from, coupon.valid_until, now):
        raise CouponExpired(f"Coupon {coupon.code} is not valid at this time", details={"code": coupon.code})
    if coupon.max_usage_count is not None and coupon.current_usage_count >= coupon.max_usage_count:
        raise CouponUsageExceeded(
            f"Coupon {coupon.code} has reached its usage limit",
            details={"code": coupon.code, "max_usage_count": coupon.max_usage_count},
        )
    if coupon.minimum_purchase_amount is not None and subtotal < round_money(coupon.minimum_purchase_amount):
        raise MinimumPurchaseNotMet(
            "Purchase amount does not meet coupon minimum",
            details={
                "code": coupon.code,
                "minimum_purchase_amount": str(round_money(coupon.minimum_purchase_amount)),
                "subtotal": str(subtotal),
            },
        )

    return _calculate(coupon.discount_type, coupon.discount_value, subtotal, coupon.maximum_discount_amount)


def preview_coupon(code: str, subtotal, now: datetime | None = None) -> dict:
    """Read-only check used by the register before a ticket is submitted."""
    amount = apply_coupon(code, subtotal, now)
    return {"code": code, "subtotal": str(round_money(subtotal)), "discount_amount": str(amount)}


def record_coupon_use(code: str) -> Coupon:
    """
    Count one use of a coupon, under a row lock, in the caller's transaction.

    Re-checks the cap so two concurrent tickets cannot both take the last use.
    """
    coupon = get_coupon_by_code(code, lock=True)
    if coupon.max_usage_count is not None and coupon.current_usage_count >= coupon.max_usage_count:
        raise CouponUsageExceeded(
            f"Coupon {coupon.code} has reached its usage limit",
            details={"code": coupon.code, "max_usage_count": coupon.max_usage_count},
        )
    coupon.current_usage_count = coupon.current_usage_count + 1
    db.session.flush()
    return coupon


def _validate_definition(data: dict) -> None:
    if data.get("discount_type") not in DISCOUNT_TYPES:
        raise ValidationError("discount_type must be PERCENTAGE or FIXED_AMOUNT")
    try:
        value = to_decimal(data.get("discount_value"))
    except (InvalidOperation, ValueError):
        raise ValidationError("discount_value must be a decimal amount")
    if value <= 0:
        raise ValidationError("discount_value must be positive")
    if data["discount_type"] == DISCOUNT_TYPE_PERCENTAGE and value > HUNDRED:
        raise ValidationError("Percentage discounts cannot exceed 100")
    if not data.get("valid_from") or not data.get("valid_until"):
        raise ValidationError("valid_from and valid_until are required")
    if normalize_datetime(data["valid_from"]) > normalize_datetime(data["valid_until"]):
        raise ValidationError("valid_from must be before valid_until")


def create_coupon(data: dict, *, commit: bool = True) -> Coupon:
    code = (data.get("code") or "").strip()
    if not code:
        raise ValidationError("code is required")
    _validate_definition(data)
    max_usage_count = _optional_count(data.get("max_usage_count"), "max_usage_count")
    if db.session.query(Coupon).filter_by(code=code).first():
        raise ValidationError(f"Coupon code {code!r} already exists")

    coupon = Coupon(
        code=code,
        description=data.get("description"),
        discount_type=data["discount_type"],
        discount_value=round_money(data["discount_value"]),
        minimum_purchase_amount=_optional_money(data.get("minimum_purchase_amount")),
        maximum_discount_amount=_optional_money(data.get("maximum_discount_amount")),
        valid_from=normalize_datetime(data["valid_from"]),
        valid_until=normalize_datetime(data["valid_until"]),
        is_active=data.get("is_active", True),
        max_usage_count=max_usage_count,
        current_usage_count=0,
    )
    db.session.add(coupon)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return coupon


def list_active_coupons() -> list[Coupon]:
    return db.session.query(Coupon).filter_by(is_active=True).order_by(Coupon.code).all()


# =============================================================================
# DISCOUNTS
# =============================================================================

def get_discount(discount_id: int) -> Discount:
    discount = db.session.get(Discount, discount_id)
    if discount is None:
        raise DiscountNotFound("Discount not found", details={"discount_id": discount_id})
    return discount


def apply_discount(
    discount_id: int,
    subtotal,
    now: datetime | None = None,
    *,
    customer_id: int | None = None,
) -> Decimal:
    """
    Validate a discount against a subtotal and return the amount to subtract.

    Discounts scoped to a category or a product are valid but contribute 0
    at ticket-total level.
    """
    now = normalize_datetime(now) or utcnow()
    subtotal = round_money(subtotal)
    discount = get_discount(discount_id)

    if not discount.is_active:
        raise DiscountInactive(f"Discount {discount.name!r} is not active", details={"discount_id": discount.id})
    if not _in_window(discount.valid_from, discount.valid_until, now):
        raise DiscountExpired(f"Discount {discount.name!r} is not valid at this time", details={"discount_id": discount.id})
    if discount.minimum_purchase_amount is not None and subtotal < round_money(discount.minimum_purchase_amount):
        raise MinimumPurchaseNotMet(
            "Purchase amount does not meet discount minimum",
            details={
                "discount_id": discount.id,
                "minimum_purchase_amount": str(round_money(discount.minimum_purchase_amount)),
                "subtotal": str(subtotal),
            },
        )
    if discount.requires_customer and customer_id is None:
        raise CustomerRequired(
            f"Discount {discount.name!r} requires a customer on the ticket",
            details={"discount_id": discount.id},
        )

    if discount.applicable_on != APPLIES_TO_TOTAL:
        return ZERO

    return _calculate(discount.discount_type, discount.discount_value, subtotal, discount.maximum_discount_amount)


def create_discount(data: dict, *, commit: bool = True) -> Discount:
    if not (data.get("name") or "").strip():
        raise ValidationError("name is required")
    _validate_definition(data)
    applicable_on = data.get("applicable_on", APPLIES_TO_TOTAL)
    if applicable_on not in APPLICABLE_ON:
        raise ValidationError(f"applicable_on must be one of {', '.join(APPLICABLE_ON)}")

    discount = Discount(
        name=data["name"].strip(),
        description=data.get("description"),
        discount_type=data["discount_type"],
        discount_value=round_money(data["discount_value"]),
        applicable_on=applicable_on,
        applicable_product_id=data.get("applicable_product_id"),
        minimum_purchase_amount=_optional_money(data.get("minimum_purchase_amount")),
        maximum_discount_amount=_optional_money(data.get("maximum_discount_amount")),
        valid_from=normalize_datetime(data["valid_from"]),
        valid_until=normalize_datetime(data["valid_until"]),
        is_active=data.get("is_active", True),
        requires_customer=data.get("requires_customer", False),
    )
    db.session.add(discount)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return discount


def total_discount(coupon_amount, discount_amount) -> Decimal:
    return round_money(to_decimal(coupon_amount) + to_decimal(discount_amount))
