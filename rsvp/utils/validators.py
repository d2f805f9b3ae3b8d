"""
Guest details validation utilities.

Every validator returns (is_valid, normalized_value). The normalized value is
what gets persisted when the check passes.
"""

import re
from typing import Tuple

PHONE_PATTERN = re.compile(r"^[0-9+][0-9]+$")

DIETARY_MAX_LENGTH = 500
DIETARY_TOKEN_MAX_LENGTH = 100
# Letters (incl. accented Latin), digits and common punctuation
DIETARY_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9À-ÖØ-öø-ÿ.,;:!?'\"()&/%+\-]+$")

NEWLINES_PATTERN = re.compile(r"\r\n|\r|\n")

EMAIL_MIN_LENGTH = 6


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Loose email check: must contain '@' and '.' and be at least 6 characters.
    Not an RFC 5322 validator.
    """
    clean_email = email.strip()

    is_valid = (
        "@" in clean_email
        and "." in clean_email
        and len(clean_email) >= EMAIL_MIN_LENGTH
    )
    return is_valid, clean_email


def validate_phone(phone: str) -> Tuple[bool, str]:
    """
    Phone number: optional leading '+', digits only after it.
    Spaces, hyphens and brackets are rejected, not stripped.
    """
    clean_phone = phone.strip()
    return bool(PHONE_PATTERN.match(clean_phone)), clean_phone


def normalize_dietary(text: str) -> str:
    return NEWLINES_PATTERN.sub(" ", text).strip()


def validate_dietary(text: str) -> Tuple[bool, str]:
    clean_text = normalize_dietary(text)

    if len(clean_text) > DIETARY_MAX_LENGTH:
        return False, clean_text

    # Empty is allowed: the guest has no requirements
    for token in clean_text.split():
        if len(token) > DIETARY_TOKEN_MAX_LENGTH:
            return False, clean_text
        if not DIETARY_TOKEN_PATTERN.match(token):
            return False, clean_text

    return True, clean_text


def normalize_meal_choice(meal_choice: str) -> str:
    return meal_choice.strip()
