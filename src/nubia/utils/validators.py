import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email


class ValidationUtils:
    """
    Input normalisation shared by the request schemas and services.

    Emails go through email-validator (syntax only, no DNS lookups at
    checkout time); phone numbers are reduced to digits for CallMeBot and
    for length checks.
    """

    PATTERNS = {
        "slug": re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$"),
        "promo_code": re.compile(r"^[A-Z0-9_-]{1,50}$"),
    }

    MIN_PASSWORD_LENGTH = 8
    MAX_PASSWORD_LENGTH = 128
    MIN_PHONE_DIGITS = 8

    @classmethod
    def normalize_email(cls, email: str) -> str:
        """Normalize email address for consistent storage"""
        try:
            validated = validate_email(email.strip(), check_deliverability=False)
        except EmailNotValidError:
            raise ValueError(f"Invalid email address: {email}")
        return validated.normalized.lower()

    @classmethod
    def digits_only(cls, phone: Optional[str]) -> str:
        return re.sub(r"\D", "", phone or "")

    @classmethod
    def normalize_promo_code(cls, code: str) -> str:
        return code.strip().upper()

    @classmethod
    def is_valid_promo_code(cls, code: str) -> bool:
        return cls.PATTERNS["promo_code"].match(code) is not None

    @classmethod
    def slugify(cls, text: str) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
        return slug or "item"

    @classmethod
    def sanitize_text(cls, text: str, max_length: Optional[int] = None) -> str:
        """
        Strip whitespace and control characters (except newlines and tabs)
        before text lands in a WhatsApp message or email body.
        """
        if not isinstance(text, str):
            text = str(text)

        sanitized = text.strip()
        sanitized = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", sanitized)

        if max_length:
            sanitized = sanitized[:max_length]

        return sanitized
