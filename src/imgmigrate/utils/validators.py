"""
URL Validation Utilities

This module validates image references before any network request is made.
"""

from urllib.parse import urlparse
from typing import Tuple, Optional
import logging


ALLOWED_SCHEMES = ('http', 'https')


class URLValidator:
    """
    Validates image references for download.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate_reference(self, url: str) -> Tuple[bool, str]:
        """
        Check that a reference is an absolute http(s) URL.

        Args:
            url: The reference to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not url or not isinstance(url, str):
            return False, "URL cannot be empty"

        if url != url.strip() or any(ch.isspace() for ch in url):
            return False, "URL contains whitespace"

        try:
            parsed = urlparse(url)
            host = parsed.hostname
        except ValueError as e:
            return False, f"URL validation error: {e}"

        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            if not parsed.scheme:
                return False, "URL is not absolute"
            return False, "URL must use HTTP or HTTPS protocol"

        if not host:
            return False, "URL must have a valid domain"

        return True, ""


_validator_instance: Optional[URLValidator] = None


def get_validator() -> URLValidator:
    """
    Get the global URL validator instance.

    Returns:
        URLValidator instance
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = URLValidator()
    return _validator_instance


def validate_reference(url: str) -> Tuple[bool, str]:
    """Convenience wrapper returning (is_valid, error_message)."""
    return get_validator().validate_reference(url)
