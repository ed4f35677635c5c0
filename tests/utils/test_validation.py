"""Tests for the account and site field validators."""

from statichost.utils.validation import (
    mask_email,
    validate_email,
    validate_password,
    validate_site_name,
    validate_slug,
)


class TestMaskEmail:
    def test_masks_local_part(self):
        assert mask_email("user@example.com") == "u***r@example.com"

    def test_short_local_part(self):
        assert mask_email("ab@example.com") == "a***@example.com"

    def test_invalid_address(self):
        assert mask_email("not-an-email") == "***@***.***"


class TestValidateEmail:
    def test_valid(self):
        assert validate_email("someone@example.com")

    def test_invalid(self):
        assert not validate_email("someone@example")
        assert not validate_email("some one@example.com")
        assert not validate_email("")
        assert not validate_email(None)

    def test_trailing_newline_rejected(self):
        assert not validate_email("a@b.co\n")


class TestValidatePassword:
    def test_accepts_policy_compliant_password(self):
        assert validate_password("Password123") is None

    def test_too_short(self):
        assert validate_password("Pa1") == "Password must be at least 8 characters long"

    def test_missing_uppercase(self):
        assert "uppercase" in validate_password("password123")

    def test_missing_lowercase(self):
        assert "lowercase" in validate_password("PASSWORD123")

    def test_missing_digit(self):
        assert "number" in validate_password("Passwordxyz")


class TestValidateSiteName:
    def test_valid_name(self):
        assert validate_site_name("My Portfolio") == []

    def test_too_short_after_strip(self):
        assert validate_site_name("  a  ") == [
            "Site name must be at least 2 characters long"
        ]

    def test_too_long(self):
        assert validate_site_name("x" * 51) == ["Site name cannot exceed 50 characters"]

    def test_invalid_characters_are_listed(self):
        errors = validate_site_name("My<Site>")
        assert errors == ["Site name contains invalid characters: <, >"]


class TestValidateSlug:
    def test_valid_slug(self):
        assert validate_slug("my-site-2") == []

    def test_required(self):
        assert validate_slug("") == ["Slug is required"]

    def test_uppercase_and_spaces_rejected(self):
        assert validate_slug("My Site") == [
            "Slug can only contain lowercase letters, numbers, and hyphens"
        ]

    def test_trailing_newline_rejected(self):
        assert validate_slug("slug\n") == [
            "Slug can only contain lowercase letters, numbers, and hyphens"
        ]
