"""Tests for request guards."""

import uuid

import pytest

from product_catalog.middleware.request_validator import RateLimiter, validate_product_id
from product_catalog.utils.exceptions import ValidationError


class TestValidateProductId:
    """Tests for validate_product_id."""

    def test_accepts_uuid4(self):
        """Test that a generated id passes through unchanged."""
        product_id = str(uuid.uuid4())

        assert validate_product_id(product_id) == product_id

    def test_accepts_uppercase(self):
        product_id = str(uuid.uuid4()).upper()

        assert validate_product_id(product_id) == product_id

    @pytest.mark.parametrize("value", ["", None, "123", "not-a-uuid", "5f0c6c1e3a574d0e9a4c7b8e2f1d9c10"])
    def test_rejects_malformed(self, value):
        """Test that malformed ids raise ValidationError."""
        with pytest.raises(ValidationError, match="Parameter 'id' must be a valid UUID"):
            validate_product_id(value)

    def test_error_names_parameter(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_product_id("nope", param_name="productId")

        assert excinfo.value.details == {"param": "productId", "value": "nope"}


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_limit(self):
        limiter = RateLimiter(limit=2, window_seconds=60)

        assert limiter.hit("1.2.3.4", now=0) is True
        assert limiter.hit("1.2.3.4", now=1) is True
        assert limiter.hit("1.2.3.4", now=2) is False

    def test_clients_are_counted_separately(self):
        limiter = RateLimiter(limit=1, window_seconds=60)

        assert limiter.hit("a", now=0) is True
        assert limiter.hit("b", now=0) is True
        assert limiter.hit("a", now=0) is False

    def test_window_resets(self):
        limiter = RateLimiter(limit=1, window_seconds=60)
        limiter.hit("a", now=0)

        assert limiter.hit("a", now=30) is False
        assert limiter.hit("a", now=61) is True

    def test_expired_clients_are_pruned(self):
        limiter = RateLimiter(limit=5, window_seconds=60)
        for client in ("a", "b", "c"):
            limiter.hit(client, now=0)

        limiter.hit("d", now=61)

        assert len(limiter) == 1

    def test_live_clients_are_kept(self):
        limiter = RateLimiter(limit=1, window_seconds=60)
        limiter.hit("a", now=0)
        limiter.hit("b", now=50)

        limiter.hit("c", now=61)

        assert len(limiter) == 2
        assert limiter.hit("b", now=62) is False

    def test_reset_clears_counts(self):
        limiter = RateLimiter(limit=1, window_seconds=60)
        limiter.hit("a", now=0)

        limiter.reset()

        assert limiter.hit("a", now=1) is True
