from datetime import date
from decimal import Decimal

import pytest

from wims.errors import ValidationError
from wims.models import Batch, Product
from wims.money import money2, money_str
from wims.validation import (
    ModelValidationPolicy,
    enforce_rules_batch,
    enforce_rules_party,
    enforce_rules_product,
    parse_amount,
    parse_int_arg,
    validate_payload,
)

POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "category", "price", "current_stock"},
    required_on_create={"sku", "name"},
    immutable_fields={"sku"},
)


def test_payload_is_coerced_by_column_type():
    patch = validate_payload(
        model=Product,
        payload={"sku": " abc ", "name": "Tea", "price": "3.455", "current_stock": "7"},
        policy=POLICY,
        partial=False,
    )
    assert patch == {"sku": "abc", "name": "Tea", "price": Decimal("3.46"), "current_stock": 7}


@pytest.mark.parametrize("payload,partial", [
    ({"name": "Tea"}, False),
    ({"sku": "A", "name": "Tea", "unit": "kg"}, False),
    ({"sku": "A"}, True),
    ({"sku": "A", "name": ""}, False),
    ({"sku": "A", "name": "Tea", "current_stock": 1.5}, False),
    ({"sku": "A", "name": "Tea", "price": "cheap"}, False),
    ({"sku": "A" * 65, "name": "Tea"}, False),
])
def test_payload_rejections(payload, partial):
    with pytest.raises(ValidationError):
        validate_payload(model=Product, payload=payload, policy=POLICY, partial=partial)


def test_batch_dates_are_parsed():
    policy = ModelValidationPolicy(writable_fields={"manufactured_date", "expiry_date"})
    patch = validate_payload(
        model=Batch,
        payload={"manufactured_date": "2026-01-01", "expiry_date": "2026-06-30T00:00:00Z"},
        policy=policy,
        partial=True,
    )
    assert patch == {"manufactured_date": date(2026, 1, 1), "expiry_date": date(2026, 6, 30)}


def test_product_rules():
    patch = {"sku": "tea-01", "price": Decimal("-1")}
    with pytest.raises(ValidationError):
        enforce_rules_product(patch)
    assert patch["sku"] == "TEA-01"


def test_batch_rules_use_stored_dates():
    enforce_rules_batch({"quantity": 0}, manufactured_date=date(2026, 1, 1), expiry_date=date(2026, 1, 2))
    with pytest.raises(ValidationError):
        enforce_rules_batch({"expiry_date": date(2025, 12, 31)}, manufactured_date=date(2026, 1, 1))


def test_party_rules():
    patch = {"email": "Sales@Example.COM", "phone": "0123456789", "tax_id": "ab12"}
    enforce_rules_party(patch)
    assert patch == {"email": "sales@example.com", "phone": "0123456789", "tax_id": "AB12"}

    with pytest.raises(ValidationError):
        enforce_rules_party({"phone": "012-345-678"})


@pytest.mark.parametrize("value,expected", [(None, None), (5, 5), (" 12 ", 12)])
def test_parse_int_arg(value, expected):
    assert parse_int_arg(value, "n") == expected


@pytest.mark.parametrize("value", [True, 1.0, "1e3", "x", 0])
def test_parse_int_arg_rejects(value):
    with pytest.raises(ValidationError):
        parse_int_arg(value, "n", minimum=1)


def test_parse_amount():
    assert parse_amount(None, "discount") == Decimal("0.00")
    assert parse_amount("2.345", "discount") == Decimal("2.35")
    for bad in ("-0.01", "NaN", "abc", False):
        with pytest.raises(ValidationError):
            parse_amount(bad, "discount")


def test_money_helpers():
    assert money2("2.675") == Decimal("2.68")
    assert money2(0.1) == Decimal("0.10")
    assert money_str(None) is None
    assert money_str(5) == "5.00"
