import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email


class ValidationUtils:
    """
    Validation and normalisation helpers shared by services and schemas

    Features:
    - Email normalisation (syntax only, no DNS lookups)
    - URL slug generation
    - SKU normalisation
    - Free-text sanitisation
    """

    PATTERNS = {
        'slug_separator': re.compile(r'[^a-z0-9]+'),
    }

    MAX_TEXT_LENGTH = 2000

    @classmethod
    def normalize_email(cls, email: str) -> str:
        """Normalize email address for consistent storage"""
        try:
            validated = validate_email(email, check_deliverability=False)
            return validated.normalized.lower()
        except EmailNotValidError:
            raise ValueError(f"Invalid email address: {email}")

    @classmethod
    def generate_slug(cls, name: str) -> str:
        """
        URL slug for a product or category name

        "Summer Dress (Blue)" -> "summer-dress-blue"
        """
        slug = cls.PATTERNS['slug_separator'].sub('-', (name or '').lower())
        return slug.strip('-')

    @classmethod
    def normalize_sku(cls, sku: str) -> str:
        normalized = (sku or '').strip()
        if not normalized:
            raise ValueError("SKU must not be empty")
        return normalized

    @classmethod
    def sanitize_text(cls, text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
        """
        Sanitize text input for safe storage and display

        - Strips whitespace
        - Removes control characters except newlines and tabs
        - Enforces length limits
        """
        if text is None:
            return None
        if not isinstance(text, str):
            text = str(text)

        sanitized = text.strip()
        sanitized = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', sanitized)

        if max_length:
            sanitized = sanitized[:max_length]

        return sanitized
