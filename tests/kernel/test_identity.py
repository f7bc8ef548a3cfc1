"""Tests for identity key derivation (loanbook_kernel/domain/identity.py)."""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from loanbook_kernel.domain.identity import (
    clean_display_name,
    is_malformed_key,
    make_identity_key,
    normalize_email,
    normalize_phone,
    phone_key_variants,
)


class TestNormalizePhone:

    @pytest.mark.parametrize(
        "raw",
        [
            "0978559684",
            "978559684",
            "260978559684",
            "+260 97 855 9684",
            "(0)97-855-9684",
            "+260 0978559684",
            "2600978559684",
        ],
    )
    def test_spellings_collapse_to_national_form(self, raw):
        assert normalize_phone(raw) == "0978559684"

    def test_no_digits_is_none(self):
        assert normalize_phone("n/a") is None
        assert normalize_phone(None) is None

    def test_unrecognised_length_keeps_digits(self):
        assert normalize_phone("12345") == "12345"

    def test_other_country_code(self):
        assert normalize_phone("+27 82 123 4567", country_code="27") == "0821234567"

    @given(st.from_regex(r"[1-9][0-9]{8}", fullmatch=True))
    def test_all_forms_of_a_subscriber_number_agree(self, subscriber):
        national = normalize_phone("0" + subscriber)
        assert normalize_phone(subscriber) == national
        assert normalize_phone("260" + subscriber) == national
        assert normalize_phone("+260 " + subscriber) == national
        assert normalize_phone("+260 0" + subscriber) == national
        assert normalize_phone("2600" + subscriber) == national
        assert national == "0" + subscriber


class TestMakeIdentityKey:

    def test_phone_wins_over_email_and_name(self):
        key = make_identity_key(phone="978559684", email="A@B.ZM", name="Jane")
        assert key == "phone:0978559684"

    def test_email_when_no_phone(self):
        assert make_identity_key(email="  Jane@Example.COM ", name="Jane") == "email:jane@example.com"

    def test_name_and_dob_fallback(self):
        key = make_identity_key(name="  Jane   BANDA ", dob=date(1990, 5, 17))
        assert key == "name:jane banda|dob:1990-05-17"

    def test_name_without_dob(self):
        assert make_identity_key(name="Jane Banda") == "name:jane banda|dob:nodob"

    def test_nothing_is_none(self):
        assert make_identity_key() is None
        assert make_identity_key(phone="", email="  ", name=None) is None


class TestHelpers:

    def test_normalize_email(self):
        assert normalize_email(" X@Y.Z ") == "x@y.z"
        assert normalize_email("   ") is None

    def test_clean_display_name_strips_honorific(self):
        assert clean_display_name("  MRS  jane   BANDA ") == "Jane Banda"
        assert clean_display_name("Dr. peter phiri") == "Peter Phiri"

    def test_clean_display_name_keeps_bare_honorific(self):
        assert clean_display_name("Mr") == "Mr"

    def test_phone_key_variants(self):
        assert phone_key_variants("0978559684") == [
            "phone:0978559684",
            "phone:978559684",
            "phone:260978559684",
        ]

    @pytest.mark.parametrize(
        "key,malformed",
        [
            ("phone:0978559684", False),
            ("email:jane@example.com", False),
            ("name:jane banda|dob:nodob", False),
            ("phone:", True),
            ("email:", True),
            ("email:not-an-email", True),
            ("name:|dob:nodob", True),
            ("", True),
        ],
    )
    def test_is_malformed_key(self, key, malformed):
        assert is_malformed_key(key) is malformed
