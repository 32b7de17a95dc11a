# Overview: Product and customer lookups consumed by the ticket engine.

"""
Catalogue collaborator.

Only the lookups the ticket engine needs plus the creation helpers used to
seed data. Creating a product also creates its CurrentStock row at 0, the
single place a stock row comes into existence.
"""

from __future__ import annotations

from decimal import InvalidOperation

from ..extensions import db
from ..models import Product, Customer, CurrentStock
from smartpos.money import round_money, HUNDRED
from .errors import ProductNotFound, CustomerNotFound, ValidationError


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product not found: {product_id}", details={"product_id": product_id})
    return product


def get_product_by_code(code: str) -> Product:
    product = db.session.query(Product).filter_by(code=code).first()
    if product is None:
        raise ProductNotFound(f"Product not found: {code!r}", details={"code": code})
    return product


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def create_product(
    *,
    code: str,
    name: str,
    sale_price,
    purchase_price,
    tax_percentage=None,
    description: str | None = None,
    commit: bool = True,
) -> Product:
    """
    Create a product and its zero-quantity stock row.

    Raises:
        ValidationError: missing code/name, non-positive prices,
            sale price below purchase price, or tax outside 0-100
    """
    if not code or not code.strip():
        raise ValidationError("code is required")
    if not name or not name.strip():
        raise ValidationError("name is required")

    try:
        sale = round_money(sale_price)
        purchase = round_money(purchase_price)
        tax = None if tax_percentage is None else round_money(tax_percentage)
    except (InvalidOperation, ValueError):
        raise ValidationError("Prices and tax_percentage must be decimal amounts")
    if sale <= 0 or purchase <= 0:
        raise ValidationError("Prices must be positive")
    if sale < purchase:
        raise ValidationError(
            "Sale price must be greater than or equal to purchase price",
            details={"sale_price": str(sale), "purchase_price": str(purchase)},
        )

    if tax is not None and (tax < 0 or tax > HUNDRED):
        raise ValidationError("tax_percentage must be between 0 and 100")

    if db.session.query(Product).filter_by(code=code.strip()).first():
        raise ValidationError(f"Product code {code!r} already exists")

    product = Product(
        code=code.strip(),
        name=name.strip(),
        description=description,
        sale_price=sale,
        purchase_price=purchase,
        tax_percentage=tax,
    )
    db.session.add(product)
    db.session.flush()

    db.session.add(CurrentStock(product_id=product.id, quantity=0))

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return product


def create_customer(
    *,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    commit: bool = True,
) -> Customer:
    if not first_name or not last_name:
        raise ValidationError("first_name and last_name are required")

    customer = Customer(first_name=first_name, last_name=last_name, email=email, phone=phone)
    db.session.add(customer)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return customer
