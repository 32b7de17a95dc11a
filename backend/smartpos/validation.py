# Overview: Request payload parsing for ticket and adjustment endpoints.

from __future__ import annotations

from datetime import datetime

from smartpos.time_utils import parse_iso_datetime
from .models.tickets import TICKET_TYPES
from .services.errors import ValidationError
from .services.ticket_service import CreateTicketRequest, TicketLineRequest


def coerce_int(value, field: str, *, allow_none: bool = False) -> int | None:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings (optional leading minus). Rejects
    bools, floats, decimals and scientific notation.
    """
    if value is None:
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_datetime(value, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        if dt is not None:
            return dt
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_create_ticket(payload) -> CreateTicketRequest:
    """
    {
        "type": "SALE" | "RETURN",
        "customer_id": 3,            (optional)
        "coupon_code": "WELCOME10",  (optional)
        "discount_id": 2,            (optional)
        "lines": [{"product_id": 1, "quantity": 2, "is_defective": false}]
    }
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    ticket_type = str(payload.get("type") or "").strip().upper()
    if ticket_type not in TICKET_TYPES:
        raise ValidationError(f"type must be one of {', '.join(TICKET_TYPES)}")

    raw_lines = payload.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        quantity = coerce_int(raw.get("quantity"), f"lines[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"lines[{index}].quantity must be positive")
        is_defective = raw.get("is_defective", False)
        if not isinstance(is_defective, bool):
            raise ValidationError(f"lines[{index}].is_defective must be a boolean")
        lines.append(TicketLineRequest(
            product_id=coerce_int(raw.get("product_id"), f"lines[{index}].product_id"),
            quantity=quantity,
            is_defective=is_defective,
        ))

    coupon_code = payload.get("coupon_code")
    if coupon_code is not None:
        coupon_code = str(coupon_code).strip() or None

    return CreateTicketRequest(
        ticket_type=ticket_type,
        lines=lines,
        customer_id=coerce_int(payload.get("customer_id"), "customer_id", allow_none=True),
        coupon_code=coupon_code,
        discount_id=coerce_int(payload.get("discount_id"), "discount_id", allow_none=True),
    )


def parse_bulk_adjustment(payload) -> tuple[dict[int, int], str]:
    """
    {
        "adjustments": {"1": 10, "2": -5},
        "reason": "Physical inventory count correction"
    }
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw = payload.get("adjustments")
    if not isinstance(raw, dict) or not raw:
        raise ValidationError("adjustments must be a non-empty object")

    adjustments: dict[int, int] = {}
    for key, delta in raw.items():
        product_id = coerce_int(key, "adjustments key")
        if product_id in adjustments:
            raise ValidationError(f"Duplicate product in adjustments: {product_id}")
        adjustments[product_id] = coerce_int(delta, f"adjustments[{key}]")

    reason = str(payload.get("reason") or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    return adjustments, reason
