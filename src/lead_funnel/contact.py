"""Contact validation and normalisation.

Rules (applied to the terminal contact step and, for the subset of fields
it collects, to early capture):

  - first_name / last_name: non-empty after trimming
  - phone: exactly 10 digits once every non-digit is stripped
  - email: ``local@domain.tld`` shape

Validation returns a list of :class:`FieldError`; it never raises, so the
caller can re-prompt with per-field hints.
"""

from __future__ import annotations

import re

from lead_funnel.constants import EMAIL_PATTERN, PHONE_DIGITS
from lead_funnel.models.session import Contact, EarlyContact, FieldError

_EMAIL_RE = re.compile(EMAIL_PATTERN)
_NON_DIGIT_RE = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """Strip everything but digits."""
    return _NON_DIGIT_RE.sub("", phone or "")


def _required(field: str, value: str) -> list[FieldError]:
    if not (value or "").strip():
        return [FieldError(field=field, message="This field is required")]
    return []


def _email_errors(email: str) -> list[FieldError]:
    email = (email or "").strip()
    if not email:
        return [FieldError(field="email", message="This field is required")]
    if not _EMAIL_RE.match(email):
        return [FieldError(field="email", message="Enter a valid email address")]
    return []


def _phone_errors(phone: str) -> list[FieldError]:
    if not (phone or "").strip():
        return [FieldError(field="phone", message="This field is required")]
    if len(normalize_phone(phone)) != PHONE_DIGITS:
        return [FieldError(
            field="phone",
            message=f"Phone number must contain exactly {PHONE_DIGITS} digits",
        )]
    return []


def validate_contact(contact: Contact) -> list[FieldError]:
    """Return every field problem in *contact* (empty list when valid)."""
    errors: list[FieldError] = []
    errors += _required("first_name", contact.first_name)
    errors += _required("last_name", contact.last_name)
    errors += _phone_errors(contact.phone)
    errors += _email_errors(contact.email)
    return errors


def validate_early_contact(early: EarlyContact) -> list[FieldError]:
    """Early capture only collects a first name and an email."""
    return _required("first_name", early.first_name) + _email_errors(early.email)


def normalize_contact(contact: Contact) -> Contact:
    """Trimmed names and email, digits-only phone.  Call after validation."""
    return Contact(
        first_name=contact.first_name.strip(),
        last_name=contact.last_name.strip(),
        phone=normalize_phone(contact.phone),
        email=contact.email.strip(),
    )


def normalize_early_contact(early: EarlyContact) -> EarlyContact:
    return EarlyContact(first_name=early.first_name.strip(), email=early.email.strip())
