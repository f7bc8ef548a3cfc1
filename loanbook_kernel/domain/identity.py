"""
Identity -- borrower identity key derivation.

Responsibility:
    Turns the borrower attributes found on a statement row into the
    deterministic identity key that unifies records across extracts.
    Shared by the Record Normalizer and the Reconciliation Rebuilder so both
    paths agree on which rows belong to the same borrower.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Priority is fixed: phone > email > name+dob.
    - Phones are keyed in the national ``0XXXXXXXXX`` form, so
      ``978559684``, ``260978559684`` and ``+260 97 855 9684`` all collapse
      onto ``phone:0978559684``.
"""

import re
from datetime import date, datetime

DEFAULT_COUNTRY_CODE = "260"

PHONE_PREFIX = "phone:"
EMAIL_PREFIX = "email:"
NAME_PREFIX = "name:"
NO_DOB = "nodob"

_NON_DIGIT = re.compile(r"\D+")
_WHITESPACE = re.compile(r"\s+")
_HONORIFIC = re.compile(r"^(mr|mrs|miss|ms|dr|prof)\.?\s+", re.IGNORECASE)


def normalize_phone(phone: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    """
    Canonical national form of a phone number.

    Examples (country_code="260"):
        "+260 97 855 9684" -> "0978559684"
        "978559684"        -> "0978559684"
        "0978559684"       -> "0978559684"
        "+260 0978559684"  -> "0978559684"
        "12345"            -> "12345"   (unrecognised, digits kept)

    Returns None when the input holds no digits at all.
    """
    if phone is None:
        return None
    digits = _NON_DIGIT.sub("", str(phone))
    if not digits:
        return None
    if digits.startswith(country_code) and len(digits) >= len(country_code) + 9:
        return "0" + digits[len(country_code):].lstrip("0")
    if len(digits) == 9:
        return "0" + digits.lstrip("0")
    return digits


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    cleaned = str(email).strip().lower()
    return cleaned or None


def normalize_name(name: str | None) -> str | None:
    """Lowercased, whitespace-collapsed name used inside name keys."""
    if name is None:
        return None
    cleaned = _WHITESPACE.sub(" ", str(name)).strip().lower()
    return cleaned or None


def clean_display_name(name: str | None) -> str | None:
    """
    Display form of a borrower name.

    Collapses whitespace, drops a leading honorific and title-cases:
        "  MRS  jane   BANDA " -> "Jane Banda"
    """
    if name is None:
        return None
    collapsed = _WHITESPACE.sub(" ", str(name)).strip()
    stripped = _HONORIFIC.sub("", collapsed)
    if not stripped:
        stripped = collapsed
    return stripped.title() or None


def _dob_part(dob: date | datetime | None) -> str:
    if dob is None:
        return NO_DOB
    if isinstance(dob, datetime):
        dob = dob.date()
    return dob.isoformat()


def make_identity_key(
    phone: str | None = None,
    email: str | None = None,
    name: str | None = None,
    dob: date | datetime | None = None,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> str | None:
    """
    Derive the identity key for a borrower.

    Returns None when the row carries no phone, email or name; such a row
    cannot be attributed to anyone.
    """
    normalized_phone = normalize_phone(phone, country_code)
    if normalized_phone:
        return f"{PHONE_PREFIX}{normalized_phone}"

    normalized_email = normalize_email(email)
    if normalized_email:
        return f"{EMAIL_PREFIX}{normalized_email}"

    normalized_name = normalize_name(name)
    if normalized_name:
        return f"{NAME_PREFIX}{normalized_name}|dob:{_dob_part(dob)}"

    return None


def phone_key_variants(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> list[str]:
    """
    Identity keys a phone number may have been stored under.

    Older rows were keyed before normalization was applied consistently,
    so lookups try the national, bare and international forms.
    """
    digits = _NON_DIGIT.sub("", phone)
    if not digits:
        return []
    national = normalize_phone(digits, country_code) or digits
    variants = [national]
    if national.startswith("0"):
        bare = national[1:]
        variants.append(bare)
        variants.append(country_code + bare)
    if digits not in variants:
        variants.append(digits)
    return [f"{PHONE_PREFIX}{v}" for v in variants]


def is_malformed_key(identity_key: str | None) -> bool:
    """
    True for keys left behind by older, buggier imports.

    Malformed: empty, bare ``phone:`` or ``email:``, an ``email:`` key
    without ``@``, or a ``name:`` key whose name part is empty.
    """
    if not identity_key:
        return True
    if identity_key.startswith(PHONE_PREFIX):
        return identity_key == PHONE_PREFIX
    if identity_key.startswith(EMAIL_PREFIX):
        value = identity_key[len(EMAIL_PREFIX):]
        return not value or "@" not in value
    if identity_key.startswith(NAME_PREFIX):
        name_part = identity_key[len(NAME_PREFIX):].split("|dob:", 1)[0]
        return not name_part.strip()
    return False
