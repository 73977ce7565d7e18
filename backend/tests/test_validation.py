"""validate_payload and the business-rule helpers."""

import pytest

from repairdesk.models import Product, Sale
from repairdesk.validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_inventory,
    enforce_rules_product,
    enforce_rules_sale_item,
    require_choice,
    validate_payload,
)

POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "selling_price_cents", "is_active", "commission_rate_bps"},
    required_on_create={"sku", "name"},
    min_lengths={"name": 2},
)


class TestValidatePayload:
    def test_missing_required_fields(self):
        with pytest.raises(ValidationError, match="Missing required fields: name, sku"):
            validate_payload(model=Product, payload={}, policy=POLICY, partial=False)

    def test_blank_required_field_counts_as_missing(self):
        with pytest.raises(ValidationError, match="Missing required fields: name"):
            validate_payload(model=Product, payload={"sku": "X", "name": ""}, policy=POLICY, partial=False)

    def test_partial_skips_required(self):
        assert validate_payload(model=Product, payload={"name": "Mouse"}, policy=POLICY, partial=True) == {
            "name": "Mouse"
        }

    def test_field_not_writable(self):
        with pytest.raises(ValidationError, match="Field not allowed: id"):
            validate_payload(model=Product, payload={"id": 5}, policy=POLICY, partial=True)

    def test_coerces_and_strips(self):
        patch = validate_payload(
            model=Product,
            payload={"sku": "  A-1 ", "name": "Mouse", "selling_price_cents": "1999", "is_active": "false"},
            policy=POLICY,
            partial=False,
        )
        assert patch == {"sku": "A-1", "name": "Mouse", "selling_price_cents": 1999, "is_active": False}

    @pytest.mark.parametrize("value", [19.99, "19.99", "1e3", "abc", True])
    def test_rejects_non_integer_money(self, value):
        with pytest.raises(ValidationError):
            validate_payload(model=Product, payload={"selling_price_cents": value}, policy=POLICY, partial=True)

    def test_not_nullable(self):
        with pytest.raises(ValidationError, match="name cannot be null"):
            validate_payload(model=Product, payload={"name": None}, policy=POLICY, partial=True)

    def test_min_length(self):
        with pytest.raises(ValidationError, match="at least 2"):
            validate_payload(model=Product, payload={"name": "X"}, policy=POLICY, partial=True)

    def test_max_length_from_column(self):
        with pytest.raises(ValidationError, match="exceeds max length 64"):
            validate_payload(model=Product, payload={"sku": "S" * 65}, policy=POLICY, partial=True)

    def test_datetime_columns_accept_iso_strings(self):
        policy = ModelValidationPolicy(writable_fields={"sale_date"})
        patch = validate_payload(model=Sale, payload={"sale_date": "2024-01-01T10:00:00Z"}, policy=policy, partial=True)
        assert patch["sale_date"].isoformat() == "2024-01-01T10:00:00"


class TestBusinessRules:
    def test_negative_price(self):
        with pytest.raises(ValidationError):
            enforce_rules_product({"selling_price_cents": -1})

    def test_rate_above_100_percent(self):
        with pytest.raises(ValidationError):
            enforce_rules_product({"commission_rate_bps": 10001})

    def test_inventory_quantity_not_negative(self):
        with pytest.raises(ValidationError):
            enforce_rules_inventory({"quantity": -3})

    def test_sale_item_quantity_positive(self):
        with pytest.raises(ValidationError, match="quantity must be > 0"):
            enforce_rules_sale_item({"quantity": 0, "unit_price_cents": 100})

    def test_require_choice(self):
        require_choice({"status": None}, "status", ("a", "b"))
        with pytest.raises(ValidationError, match="must be one of: a, b"):
            require_choice({"status": "c"}, "status", ("a", "b"))
