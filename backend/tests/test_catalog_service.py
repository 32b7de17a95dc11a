from decimal import Decimal

import pytest

from smartpos.services import catalog_service, stock_ledger
from smartpos.services.errors import CustomerNotFound, ProductNotFound, ValidationError


def test_create_product_creates_zero_stock_row(db_session):
    product = catalog_service.create_product(
        code="COLA-330", name="Cola 330ml", sale_price="1.50", purchase_price=0.9, tax_percentage="16",
    )

    assert product.sale_price == Decimal("1.50")
    assert product.purchase_price == Decimal("0.90")
    assert product.tax_percentage == Decimal("16.00")
    assert stock_ledger.get_current_stock(product.id) == 0
    assert catalog_service.get_product_by_code("COLA-330").id == product.id


@pytest.mark.parametrize("sale,purchase,tax", [
    ("0", "1.00", None),
    ("5.00", "-1.00", None),
    ("5.00", "6.00", None),
    ("5.00", "4.00", "101"),
    ("abc", "4.00", None),
    ("5.00", "4.00", "abc"),
    ("5.00", "4.00", "-1"),
])
def test_create_product_rejects_bad_values(db_session, sale, purchase, tax):
    with pytest.raises(ValidationError):
        catalog_service.create_product(
            code="BAD", name="Bad", sale_price=sale, purchase_price=purchase, tax_percentage=tax,
        )


def test_duplicate_product_code(make_product):
    make_product(code="DUP")

    with pytest.raises(ValidationError):
        make_product(code="DUP")


def test_lookups_raise_not_found(db_session):
    with pytest.raises(ProductNotFound):
        catalog_service.get_product(31337)
    with pytest.raises(ProductNotFound):
        catalog_service.get_product_by_code("NOPE")
    with pytest.raises(CustomerNotFound):
        catalog_service.get_customer(31337)


def test_customer_display_name(customer):
    assert customer.display_name == "Maria Lopez"
