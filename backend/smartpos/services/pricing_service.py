# Overview: Line pricing and ticket total arithmetic.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..models import Product
from ..models.tickets import TICKET_TYPE_SALE, TICKET_TYPE_RETURN
from smartpos.money import ZERO, round_money, percent_of, to_decimal
from .catalog_service import get_product
from .errors import ValidationError


@dataclass(frozen=True)
class LinePricing:
    product_id: int
    quantity: int
    unit_price: Decimal
    tax_percentage: Decimal
    line_subtotal: Decimal
    tax_amount: Decimal


def price_line(product: Product | int, quantity: int, ticket_type: str) -> LinePricing:
    """
    Price one ticket line.

    SALE lines use the product's sale price, RETURN lines its purchase
    price. Subtotal and tax are each rounded half-up to cents; a missing
    tax percentage counts as 0.

    Raises:
        ProductNotFound: product id does not resolve
        ValidationError: non-positive quantity or unit price, bad type
    """
    if not isinstance(product, Product):
        product = get_product(product)

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"product_id": product.id})

    if ticket_type == TICKET_TYPE_SALE:
        unit_price = product.sale_price
    elif ticket_type == TICKET_TYPE_RETURN:
        unit_price = product.purchase_price
    else:
        raise ValidationError(f"Unknown ticket type: {ticket_type}")

    unit_price = round_money(unit_price)
    if unit_price <= 0:
        raise ValidationError("Product has no positive price", details={"product_id": product.id})

    tax_percentage = to_decimal(product.tax_percentage) if product.tax_percentage is not None else ZERO
    line_subtotal = round_money(unit_price * quantity)
    tax_amount = percent_of(line_subtotal, tax_percentage)

    return LinePricing(
        product_id=product.id,
        quantity=quantity,
        unit_price=unit_price,
        tax_percentage=round_money(tax_percentage),
        line_subtotal=line_subtotal,
        tax_amount=tax_amount,
    )


def aggregate(lines: Iterable[LinePricing]) -> tuple[Decimal, Decimal]:
    """
    Sum line subtotals and line taxes independently.

    Tax is never recomputed from the subtotal so per-line rounding is kept.
    """
    subtotal = ZERO
    tax_total = ZERO
    for line in lines:
        subtotal += line.line_subtotal
        tax_total += line.tax_amount
    return round_money(subtotal), round_money(tax_total)


def compute_total(subtotal, tax, discount) -> Decimal:
    """total = subtotal + tax - discount, never below zero."""
    total = round_money(to_decimal(subtotal) + to_decimal(tax) - to_decimal(discount))
    return total if total > 0 else ZERO
