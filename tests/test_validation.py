"""Tests for install / region / token validation."""

import pytest

from deputy.auth.validation import validate_geo, validate_install, validate_token
from deputy.exceptions import ValidationError


class TestValidateInstall:
    @pytest.mark.parametrize("name", ["acme", "my-company", "company_123", "A", "x" * 64])
    def test_valid(self, name):
        validate_install(name)

    def test_empty(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_install("")

    def test_too_long(self):
        with pytest.raises(ValidationError, match="max 64 characters"):
            validate_install("x" * 65)

    @pytest.mark.parametrize(
        "name",
        ["acme corp", "acme.au", "acme/..", "<script>", "acme\n", "acéme"],
    )
    def test_invalid_characters(self, name):
        with pytest.raises(ValidationError, match="invalid characters"):
            validate_install(name)


class TestValidateGeo:
    @pytest.mark.parametrize("geo", ["au", "uk", "na"])
    def test_valid(self, geo):
        validate_geo(geo)

    @pytest.mark.parametrize("geo", ["", "us", "AU", "eu", " au"])
    def test_invalid(self, geo):
        with pytest.raises(ValidationError, match="must be au, uk, or na"):
            validate_geo(geo)


class TestValidateToken:
    def test_valid(self):
        validate_token("abc123")

    def test_max_length_accepted(self):
        validate_token("t" * 512)

    def test_empty(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_token("")

    def test_too_long(self):
        with pytest.raises(ValidationError, match="too long"):
            validate_token("t" * 513)
